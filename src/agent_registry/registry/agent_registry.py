"""AgentRegistry — admission controller for agent identity records.

An address moves from *Unregistered* to *Registered* exactly once, through
either admission path:

* :meth:`AgentRegistry.register_direct` — the caller registers itself.
* :meth:`AgentRegistry.register_delegated` — a relayer submits a request
  the agent signed off-path; a per-agent nonce stops replays.

Both paths check, in order: fee floor, request shape, uniqueness of
address, DID and endpoint, delegate authenticity (delegated only), and
finally that the DID encodes the registering address. Any failure raises
a :class:`~agent_registry.registry.errors.RegistryError` and leaves the
store untouched. On success the record and all indexes are committed in
one step and an :class:`~agent_registry.registry.records.AgentRegistered`
event is emitted.

Mutations are serialised by a single lock, so concurrent admission
attempts for the same address, DID or endpoint admit at most one.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from agent_registry.addresses import InvalidAddressError, normalize_address
from agent_registry.config import RegistryConfig
from agent_registry.did.validator import AddressValidator, DIDValidator
from agent_registry.registry.errors import (
    AddressAlreadyRegisteredError,
    AgentNotFoundError,
    DIDAlreadyRegisteredError,
    DIDValidationError,
    EmptyDIDError,
    EmptyServiceEndpointError,
    EndpointAlreadyRegisteredError,
    InsufficientFeeError,
    InvalidAgentAddressError,
    NonceMismatchError,
    RegistryError,
    RequestExpiredError,
    SignatureMismatchError,
)
from agent_registry.registry.events import EventLog
from agent_registry.registry.records import (
    AgentRecord,
    AgentRegistered,
    RegistryEvent,
    ServiceEndpointUpdated,
)
from agent_registry.registry.store import RegistryStore
from agent_registry.signing.typed_data import (
    DelegatedRegistration,
    SignatureRecoverer,
    SignatureRecoveryError,
    StructuredDataHasher,
    TypedDataEncodingError,
    TypedDataSigner,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[RegistryEvent], None]


def _system_clock() -> int:
    return int(time.time())


class AgentRegistry:
    """Registry of agents bound to DIDs that encode their addresses.

    Parameters
    ----------
    config:
        Fee floor and signing domain. Defaults to :class:`RegistryConfig()`.
    validator:
        DID validator; any :class:`~agent_registry.did.AddressValidator`.
    hasher:
        Structured-data hasher for delegated requests. Defaults to a
        :class:`~agent_registry.signing.TypedDataSigner` over the config's
        domain.
    recoverer:
        Signature recoverer; defaults to the same signer as ``hasher``.
    clock:
        Returns the current Unix time in seconds.
    event_log:
        Optional JSONL sink receiving every emitted event.
    store:
        Pre-populated store (used by :meth:`restore`).

    Example
    -------
    ::

        registry = AgentRegistry(RegistryConfig(registration_fee=10))
        record = registry.register_direct(
            did=did_for_address(address),
            description="bot",
            service_endpoint="https://a.example/ep",
            caller=address,
            attached_value=10,
        )
        assert record.agent_id == 1
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        validator: AddressValidator | None = None,
        hasher: StructuredDataHasher | None = None,
        recoverer: SignatureRecoverer | None = None,
        clock: Callable[[], int] | None = None,
        event_log: EventLog | None = None,
        store: RegistryStore | None = None,
    ) -> None:
        self._config = config or RegistryConfig()
        self._validator: AddressValidator = validator or DIDValidator()
        signer = TypedDataSigner(self._config.domain)
        self._hasher: StructuredDataHasher = hasher or signer
        self._recoverer: SignatureRecoverer = recoverer or signer
        self._clock: Callable[[], int] = clock or _system_clock
        self._event_log = event_log
        self._store = store or RegistryStore()
        self._listeners: list[EventListener] = []
        self._events: list[RegistryEvent] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def registration_fee(self) -> int:
        return self._config.registration_fee

    @property
    def validator(self) -> AddressValidator:
        return self._validator

    def domain_separator(self) -> bytes:
        """Return the EIP-712 domain separator delegated requests are signed under."""
        if isinstance(self._hasher, TypedDataSigner):
            return self._hasher.domain_separator()
        return TypedDataSigner(self._config.domain).domain_separator()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> None:
        """Call *listener* with every event emitted after this point."""
        self._listeners.append(listener)

    @property
    def events(self) -> list[RegistryEvent]:
        """All events emitted by this registry instance, oldest first."""
        return list(self._events)

    def _emit(self, event: RegistryEvent) -> None:
        # Lock held; the operation has already committed.
        self._events.append(event)
        if self._event_log is not None:
            try:
                self._event_log.record(event)
            except Exception:
                logger.exception("Event log failed to record %s", event.event_type)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener %r failed on %s", listener, event.event_type)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def register_direct(
        self,
        did: str,
        description: str,
        service_endpoint: str,
        caller: str,
        attached_value: int,
    ) -> AgentRecord:
        """Register *caller* with a DID that encodes its own address.

        Parameters
        ----------
        did:
            DID that must encode ``caller``.
        description:
            Free-form description of the agent.
        service_endpoint:
            Endpoint to claim; must be unclaimed.
        caller:
            Address submitting the registration.
        attached_value:
            Value attached to the call; must reach the registration fee.

        Returns
        -------
        AgentRecord
            The committed record.

        Raises
        ------
        InsufficientFeeError, EmptyDIDError, EmptyServiceEndpointError,
        AddressAlreadyRegisteredError, DIDAlreadyRegisteredError,
        EndpointAlreadyRegisteredError, DIDValidationError
        """
        try:
            self._check_fee(attached_value)
            if not did:
                raise EmptyDIDError()
            if not service_endpoint:
                raise EmptyServiceEndpointError()
            address = _normalize_agent(caller)

            with self._lock:
                self._check_unique(address, did, service_endpoint)
                self._check_did(did, address)
                staged = self._store.stage_admission(
                    address, did, description, service_endpoint
                )
                record = self._store.apply_admission(staged)
                self._emit(
                    AgentRegistered(
                        address=record.owner_address, did=record.did, agent_id=record.agent_id
                    )
                )
        except RegistryError as exc:
            logger.debug("Direct registration rejected for %s: %s", caller, exc)
            raise

        logger.info("Registered agent %d for %s (direct)", record.agent_id, record.owner_address)
        return record

    def register_delegated(
        self,
        request: DelegatedRegistration,
        signature: bytes | str,
        relayer: str,
        attached_value: int,
    ) -> AgentRecord:
        """Register ``request.agent_address`` on the strength of its signature.

        The relayer pays the fee; the agent is the registrant. On success the
        agent's nonce is incremented by exactly one.

        Raises
        ------
        InsufficientFeeError, RequestExpiredError, NonceMismatchError,
        AddressAlreadyRegisteredError, DIDAlreadyRegisteredError,
        EndpointAlreadyRegisteredError, SignatureMismatchError,
        DIDValidationError, EmptyServiceEndpointError
        """
        try:
            self._check_fee(attached_value)
            address = _normalize_agent(request.agent_address)
            now = self._clock()
            if now > request.expiry:
                raise RequestExpiredError(request.expiry, now)
            if not request.service_endpoint:
                raise EmptyServiceEndpointError()

            with self._lock:
                expected_nonce = self._store.nonce(address)
                if request.nonce != expected_nonce:
                    raise NonceMismatchError(address, expected_nonce, request.nonce)
                self._check_unique(address, request.did, request.service_endpoint)
                self._check_signature(request, signature, address)
                self._check_did(request.did, address)
                staged = self._store.stage_admission(
                    address,
                    request.did,
                    request.description,
                    request.service_endpoint,
                    consumes_nonce=True,
                )
                record = self._store.apply_admission(staged)
                self._emit(
                    AgentRegistered(
                        address=record.owner_address, did=record.did, agent_id=record.agent_id
                    )
                )
        except RegistryError as exc:
            logger.debug(
                "Delegated registration rejected for %s via %s: %s",
                request.agent_address,
                relayer,
                exc,
            )
            raise

        logger.info(
            "Registered agent %d for %s (relayed by %s)",
            record.agent_id,
            record.owner_address,
            relayer,
        )
        return record

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_service_endpoint(self, caller: str, new_endpoint: str) -> AgentRecord:
        """Replace *caller*'s service endpoint with *new_endpoint*.

        Re-submitting the caller's current endpoint is allowed and leaves
        the indexes unchanged.

        Raises
        ------
        AgentNotFoundError
            If *caller* is not registered.
        EmptyServiceEndpointError
            If *new_endpoint* is empty.
        EndpointAlreadyRegisteredError
            If another agent holds *new_endpoint*.
        """
        try:
            if not new_endpoint:
                raise EmptyServiceEndpointError()
            address = _normalize_agent(caller)
            with self._lock:
                if self._store.record_for_address(address) is None:
                    raise AgentNotFoundError("address", address)
                holder = self._store.address_for_endpoint(new_endpoint)
                if holder is not None and holder != address:
                    raise EndpointAlreadyRegisteredError(new_endpoint)
                staged = self._store.stage_endpoint_update(address, new_endpoint)
                record = self._store.apply_endpoint_update(staged)
                self._emit(
                    ServiceEndpointUpdated(agent_id=record.agent_id, new_endpoint=new_endpoint)
                )
        except RegistryError as exc:
            logger.debug("Endpoint update rejected for %s: %s", caller, exc)
            raise

        logger.info("Agent %d endpoint set to %s", record.agent_id, new_endpoint)
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_agent_by_address(self, address: str) -> AgentRecord:
        """Return the record owned by *address*.

        Raises
        ------
        AgentNotFoundError
            If *address* is not registered (or not an address at all).
        """
        key = _lookup_key(address)
        with self._lock:
            record = self._store.record_for_address(key) if key else None
            if record is None:
                raise AgentNotFoundError("address", address)
            return _copy(record)

    def get_agent_by_id(self, agent_id: int) -> AgentRecord:
        """Return the record with *agent_id*."""
        with self._lock:
            address = self._store.address_for_id(agent_id)
            if address is None:
                raise AgentNotFoundError("id", agent_id)
            return _copy(self._store.record_for_address(address))  # type: ignore[arg-type]

    def get_agent_did(self, address: str) -> str:
        """Return the DID bound to *address*."""
        return self.get_agent_by_address(address).did

    def get_agent_service_endpoint(self, address: str) -> str:
        """Return the current service endpoint of *address*."""
        return self.get_agent_by_address(address).service_endpoint

    def get_agent_by_service_endpoint(self, endpoint: str) -> AgentRecord:
        """Return the record currently holding *endpoint*."""
        with self._lock:
            address = self._store.address_for_endpoint(endpoint)
            if address is None:
                raise AgentNotFoundError("service endpoint", endpoint)
            return _copy(self._store.record_for_address(address))  # type: ignore[arg-type]

    def get_nonce(self, address: str) -> int:
        """Return the replay-guard nonce the next delegated request must carry."""
        key = _lookup_key(address)
        if key is None:
            return 0
        with self._lock:
            return self._store.nonce(key)

    def is_registered(self, address: str) -> bool:
        key = _lookup_key(address)
        if key is None:
            return False
        with self._lock:
            return self._store.record_for_address(key) is not None

    def list_agents(self) -> list[AgentRecord]:
        """Return every record ordered by id."""
        with self._lock:
            return [_copy(record) for record in self._store.records()]

    def agent_count(self) -> int:
        with self._lock:
            return len(self._store)

    def __len__(self) -> int:
        return self.agent_count()

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self.is_registered(address)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def check_invariants(self) -> None:
        """Raise :class:`RegistryStateError` if the store is inconsistent."""
        with self._lock:
            self._store.check_invariants()

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-compatible snapshot of records, nonces and next id."""
        with self._lock:
            return self._store.to_dict()

    @classmethod
    def restore(
        cls,
        snapshot: dict[str, object],
        config: RegistryConfig | None = None,
        **kwargs: object,
    ) -> "AgentRegistry":
        """Build a registry from :meth:`snapshot` output.

        Raises
        ------
        RegistryStateError
            If the snapshot is malformed or inconsistent.
        """
        store = RegistryStore.from_dict(snapshot)
        return cls(config=config, store=store, **kwargs)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Checks (caller holds the lock where noted)
    # ------------------------------------------------------------------

    def _check_fee(self, attached_value: int) -> None:
        if attached_value < self._config.registration_fee:
            raise InsufficientFeeError(attached_value, self._config.registration_fee)

    def _check_unique(self, address: str, did: str, endpoint: str) -> None:
        # Lock held.
        if self._store.record_for_address(address) is not None:
            raise AddressAlreadyRegisteredError(address)
        if self._store.id_for_did(did) != 0:
            raise DIDAlreadyRegisteredError(did)
        if self._store.address_for_endpoint(endpoint) is not None:
            raise EndpointAlreadyRegisteredError(endpoint)

    def _check_signature(
        self,
        request: DelegatedRegistration,
        signature: bytes | str,
        address: str,
    ) -> None:
        try:
            digest = self._hasher.hash_structured(request)
        except TypedDataEncodingError as exc:
            logger.debug("Could not hash request for %s: %s", address, exc)
            raise SignatureMismatchError(address, None) from exc
        try:
            recovered = normalize_address(self._recoverer.recover_signer(digest, signature))
        except (SignatureRecoveryError, InvalidAddressError) as exc:
            logger.debug("Signer recovery failed for %s: %s", address, exc)
            raise SignatureMismatchError(address, None) from exc
        if recovered != address:
            raise SignatureMismatchError(address, recovered)

    def _check_did(self, did: str, address: str) -> None:
        if not self._validator.validate_did(did, address):
            result = self._validator.get_validation_details(did, address)
            raise DIDValidationError(did, address, result)


def _normalize_agent(address: str) -> str:
    try:
        return normalize_address(address)
    except InvalidAddressError as exc:
        raise InvalidAgentAddressError(address, str(exc)) from exc


def _lookup_key(address: str) -> str | None:
    try:
        return normalize_address(address)
    except InvalidAddressError:
        return None


def _copy(record: AgentRecord) -> AgentRecord:
    return AgentRecord(
        agent_id=record.agent_id,
        owner_address=record.owner_address,
        did=record.did,
        description=record.description,
        service_endpoint=record.service_endpoint,
        registered_at=record.registered_at,
    )


__all__ = ["AgentRegistry", "EventListener"]
