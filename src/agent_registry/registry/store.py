"""RegistryStore — the registry's single logical store.

Owns the agent records and every derived index:

* address -> record (primary store)
* id -> address
* did -> id (``0`` means absent)
* service endpoint -> address
* address -> replay-guard nonce

Writes go through a staged-changes pattern. A caller builds a
:class:`StagedAdmission` or :class:`StagedEndpointUpdate`, the store checks
it against the current indexes, and only then applies every write in one
step. A staged change that no longer fits the store raises
:class:`~agent_registry.registry.errors.RegistryStateError` before anything
is written.

The store itself is not locked; :class:`~agent_registry.registry.AgentRegistry`
serialises access to it.
"""
from __future__ import annotations

import dataclasses
import datetime
from dataclasses import dataclass

from agent_registry.registry.errors import RegistryStateError
from agent_registry.registry.records import AgentRecord


@dataclass(frozen=True)
class StagedAdmission:
    """A prospective new record plus its nonce consumption, if delegated."""

    record: AgentRecord
    consumes_nonce: bool = False
    expected_nonce: int = 0


@dataclass(frozen=True)
class StagedEndpointUpdate:
    """A prospective replacement of one agent's service endpoint."""

    address: str
    old_endpoint: str
    new_endpoint: str


class RegistryStore:
    """In-memory store of agent records and their uniqueness indexes."""

    def __init__(self) -> None:
        self._records: dict[str, AgentRecord] = {}
        self._id_to_address: dict[int, str] = {}
        self._did_to_id: dict[str, int] = {}
        self._endpoint_to_address: dict[str, str] = {}
        self._nonces: dict[str, int] = {}
        self._next_id: int = 1

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def next_id(self) -> int:
        return self._next_id

    def record_for_address(self, address: str) -> AgentRecord | None:
        return self._records.get(address)

    def address_for_id(self, agent_id: int) -> str | None:
        return self._id_to_address.get(agent_id)

    def id_for_did(self, did: str) -> int:
        return self._did_to_id.get(did, 0)

    def address_for_endpoint(self, endpoint: str) -> str | None:
        return self._endpoint_to_address.get(endpoint)

    def nonce(self, address: str) -> int:
        return self._nonces.get(address, 0)

    def records(self) -> list[AgentRecord]:
        """Return all records ordered by id."""
        return sorted(self._records.values(), key=lambda r: r.agent_id)

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage_admission(
        self,
        address: str,
        did: str,
        description: str,
        service_endpoint: str,
        consumes_nonce: bool = False,
    ) -> StagedAdmission:
        """Build the record the next admission would create."""
        record = AgentRecord(
            agent_id=self._next_id,
            owner_address=address,
            did=did,
            description=description,
            service_endpoint=service_endpoint,
            registered_at=datetime.datetime.now(datetime.timezone.utc),
        )
        return StagedAdmission(
            record=record,
            consumes_nonce=consumes_nonce,
            expected_nonce=self.nonce(address),
        )

    def stage_endpoint_update(self, address: str, new_endpoint: str) -> StagedEndpointUpdate:
        record = self._records.get(address)
        if record is None:
            raise RegistryStateError(f"Cannot stage endpoint update for unknown {address}.")
        return StagedEndpointUpdate(
            address=address,
            old_endpoint=record.service_endpoint,
            new_endpoint=new_endpoint,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def apply_admission(self, staged: StagedAdmission) -> AgentRecord:
        """Check *staged* against the indexes, then write it in one step."""
        record = staged.record
        if record.agent_id != self._next_id:
            raise RegistryStateError(
                f"Staged id {record.agent_id} is stale; next id is {self._next_id}."
            )
        if record.owner_address in self._records:
            raise RegistryStateError(f"Address {record.owner_address} already has a record.")
        if self._did_to_id.get(record.did, 0) != 0:
            raise RegistryStateError(f"DID {record.did!r} is already indexed.")
        if record.service_endpoint in self._endpoint_to_address:
            raise RegistryStateError(
                f"Endpoint {record.service_endpoint!r} is already indexed."
            )
        if staged.consumes_nonce and self.nonce(record.owner_address) != staged.expected_nonce:
            raise RegistryStateError(f"Nonce for {record.owner_address} changed while staged.")

        stored = dataclasses.replace(record)
        if staged.consumes_nonce:
            self._nonces[record.owner_address] = staged.expected_nonce + 1
        self._records[record.owner_address] = stored
        self._id_to_address[record.agent_id] = record.owner_address
        self._did_to_id[record.did] = record.agent_id
        self._endpoint_to_address[record.service_endpoint] = record.owner_address
        self._next_id = record.agent_id + 1
        return dataclasses.replace(stored)

    def apply_endpoint_update(self, staged: StagedEndpointUpdate) -> AgentRecord:
        """Check *staged* against the indexes, then swap the endpoint."""
        record = self._records.get(staged.address)
        if record is None:
            raise RegistryStateError(f"Address {staged.address} has no record.")
        if record.service_endpoint != staged.old_endpoint:
            raise RegistryStateError(f"Endpoint for {staged.address} changed while staged.")
        holder = self._endpoint_to_address.get(staged.new_endpoint)
        if holder is not None and holder != staged.address:
            raise RegistryStateError(f"Endpoint {staged.new_endpoint!r} is held by {holder}.")

        del self._endpoint_to_address[staged.old_endpoint]
        self._endpoint_to_address[staged.new_endpoint] = staged.address
        record.service_endpoint = staged.new_endpoint
        return dataclasses.replace(record)

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def check_invariants(self) -> None:
        """Raise :class:`RegistryStateError` if any index disagrees with the records."""
        seen_ids: set[int] = set()
        for address, record in self._records.items():
            if record.owner_address != address:
                raise RegistryStateError(
                    f"Record keyed by {address} names owner {record.owner_address}."
                )
            if record.agent_id <= 0 or record.agent_id in seen_ids:
                raise RegistryStateError(f"Record id {record.agent_id} is invalid or shared.")
            seen_ids.add(record.agent_id)
            if record.agent_id >= self._next_id:
                raise RegistryStateError(
                    f"Record id {record.agent_id} is not below next id {self._next_id}."
                )
            if self._id_to_address.get(record.agent_id) != address:
                raise RegistryStateError(f"Id index does not map {record.agent_id} to {address}.")
            if self._did_to_id.get(record.did) != record.agent_id:
                raise RegistryStateError(f"DID index does not map {record.did!r}.")
            if self._endpoint_to_address.get(record.service_endpoint) != address:
                raise RegistryStateError(
                    f"Endpoint index does not map {record.service_endpoint!r}."
                )

        count = len(self._records)
        if not (len(self._id_to_address) == len(self._did_to_id) == len(self._endpoint_to_address) == count):
            raise RegistryStateError("Index sizes disagree with the record count.")
        if any(nonce < 0 for nonce in self._nonces.values()):
            raise RegistryStateError("Nonces must be non-negative.")

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Serialize the store to a JSON-compatible dictionary."""
        return {
            "next_id": self._next_id,
            "records": [record.to_dict() for record in self.records()],
            "nonces": dict(sorted(self._nonces.items())),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "RegistryStore":
        """Rebuild a store from :meth:`to_dict` output and verify it.

        Raises
        ------
        RegistryStateError
            If the snapshot is malformed or breaks an invariant.
        """
        if not isinstance(data, dict):
            raise RegistryStateError(
                f"Registry snapshot must be an object, got {type(data).__name__}."
            )
        store = cls()
        try:
            raw_records = list(data.get("records") or [])  # type: ignore[call-overload]
            for entry in raw_records:
                record = AgentRecord.from_dict(entry)
                if record.owner_address in store._records:
                    raise RegistryStateError(f"Duplicate address {record.owner_address}.")
                if record.did in store._did_to_id:
                    raise RegistryStateError(f"Duplicate DID {record.did!r}.")
                if record.service_endpoint in store._endpoint_to_address:
                    raise RegistryStateError(f"Duplicate endpoint {record.service_endpoint!r}.")
                store._records[record.owner_address] = record
                store._id_to_address[record.agent_id] = record.owner_address
                store._did_to_id[record.did] = record.agent_id
                store._endpoint_to_address[record.service_endpoint] = record.owner_address

            highest = max((r.agent_id for r in store._records.values()), default=0)
            store._next_id = int(data.get("next_id", highest + 1))  # type: ignore[call-overload]
            nonces = data.get("nonces") or {}
            store._nonces = {str(k): int(v) for k, v in nonces.items()}  # type: ignore[union-attr]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise RegistryStateError(f"Malformed registry snapshot: {exc}") from exc

        store.check_invariants()
        return store


__all__ = [
    "RegistryStore",
    "StagedAdmission",
    "StagedEndpointUpdate",
]
