"""AgentRecord and the lifecycle events the registry emits."""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field


@dataclass
class AgentRecord:
    """The canonical record for a registered agent.

    Parameters
    ----------
    agent_id:
        Sequential identifier, starting at 1 and never reused.
    owner_address:
        Checksummed account address controlling the record. Immutable.
    did:
        Decentralized Identifier bound to the address. Immutable.
    description:
        Free-form description supplied at registration.
    service_endpoint:
        Reachable endpoint for the agent; the only field that can change
        after registration.
    registered_at:
        UTC datetime of registration.
    """

    agent_id: int
    owner_address: str
    did: str
    description: str
    service_endpoint: str
    registered_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "agent_id": self.agent_id,
            "owner_address": self.owner_address,
            "did": self.did,
            "description": self.description,
            "service_endpoint": self.service_endpoint,
            "registered_at": self.registered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "AgentRecord":
        """Reconstruct a record from :meth:`to_dict` output."""
        registered_at = data.get("registered_at")
        return cls(
            agent_id=int(data["agent_id"]),  # type: ignore[call-overload]
            owner_address=str(data["owner_address"]),
            did=str(data["did"]),
            description=str(data.get("description", "")),
            service_endpoint=str(data["service_endpoint"]),
            registered_at=(
                datetime.datetime.fromisoformat(str(registered_at))
                if registered_at
                else datetime.datetime.now(datetime.timezone.utc)
            ),
        )


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------


@dataclass(frozen=True)
class AgentRegistered:
    """Emitted when a registration commits."""

    address: str
    did: str
    agent_id: int

    event_type = "agent_registered"

    def to_dict(self) -> dict[str, object]:
        return {"address": self.address, "did": self.did, "agent_id": self.agent_id}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "AgentRegistered":
        return cls(
            address=str(data["address"]),
            did=str(data["did"]),
            agent_id=int(data["agent_id"]),  # type: ignore[call-overload]
        )


@dataclass(frozen=True)
class ServiceEndpointUpdated:
    """Emitted when an agent's service endpoint is replaced."""

    agent_id: int
    new_endpoint: str

    event_type = "service_endpoint_updated"

    def to_dict(self) -> dict[str, object]:
        return {"agent_id": self.agent_id, "new_endpoint": self.new_endpoint}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ServiceEndpointUpdated":
        return cls(
            agent_id=int(data["agent_id"]),  # type: ignore[call-overload]
            new_endpoint=str(data["new_endpoint"]),
        )


RegistryEvent = AgentRegistered | ServiceEndpointUpdated

_EVENT_TYPES: dict[str, type[AgentRegistered] | type[ServiceEndpointUpdated]] = {
    AgentRegistered.event_type: AgentRegistered,
    ServiceEndpointUpdated.event_type: ServiceEndpointUpdated,
}


def event_from_dict(data: dict[str, object]) -> RegistryEvent:
    """Rebuild an event from its ``event_type`` tag and :meth:`to_dict` fields.

    Raises
    ------
    ValueError
        If ``event_type`` names no known event.
    KeyError
        If a required field is missing.
    """
    event_type = data.get("event_type")
    event_cls = _EVENT_TYPES.get(str(event_type))
    if event_cls is None:
        raise ValueError(f"Unknown event type {event_type!r}.")
    return event_cls.from_dict(data)


__all__ = [
    "AgentRecord",
    "AgentRegistered",
    "RegistryEvent",
    "ServiceEndpointUpdated",
    "event_from_dict",
]
