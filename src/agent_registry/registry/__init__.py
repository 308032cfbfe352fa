"""Agent registry.

Provides :class:`AgentRegistry`, the admission controller that binds agent
addresses to DIDs, together with its store, records, events and errors.

Quick start
-----------
::

    from agent_registry.did import did_for_address
    from agent_registry.registry import AgentRegistry

    registry = AgentRegistry()
    address = "0x1111111111111111111111111111111111111111"
    record = registry.register_direct(
        did=did_for_address(address),
        description="bot",
        service_endpoint="https://a.example/ep",
        caller=address,
        attached_value=registry.registration_fee,
    )
"""
from __future__ import annotations

from agent_registry.registry.agent_registry import AgentRegistry, EventListener
from agent_registry.registry.errors import (
    AddressAlreadyRegisteredError,
    AgentNotFoundError,
    AlreadyRegisteredError,
    AuthenticationError,
    DIDAlreadyRegisteredError,
    DIDValidationError,
    EmptyDIDError,
    EmptyServiceEndpointError,
    EndpointAlreadyRegisteredError,
    InsufficientFeeError,
    InvalidAgentAddressError,
    NonceMismatchError,
    RegistryError,
    RegistryStateError,
    RequestExpiredError,
    SignatureMismatchError,
)
from agent_registry.registry.events import EventLog
from agent_registry.registry.records import (
    AgentRecord,
    AgentRegistered,
    RegistryEvent,
    ServiceEndpointUpdated,
    event_from_dict,
)
from agent_registry.registry.store import RegistryStore, StagedAdmission, StagedEndpointUpdate
from agent_registry.signing.typed_data import DelegatedRegistration

__all__ = [
    "AddressAlreadyRegisteredError",
    "AgentNotFoundError",
    "AgentRecord",
    "AgentRegistered",
    "AgentRegistry",
    "AlreadyRegisteredError",
    "AuthenticationError",
    "DIDAlreadyRegisteredError",
    "DIDValidationError",
    "DelegatedRegistration",
    "EmptyDIDError",
    "EmptyServiceEndpointError",
    "EndpointAlreadyRegisteredError",
    "EventListener",
    "EventLog",
    "InsufficientFeeError",
    "InvalidAgentAddressError",
    "NonceMismatchError",
    "RegistryError",
    "RegistryEvent",
    "RegistryStateError",
    "RegistryStore",
    "RequestExpiredError",
    "ServiceEndpointUpdated",
    "SignatureMismatchError",
    "StagedAdmission",
    "StagedEndpointUpdate",
    "event_from_dict",
]
