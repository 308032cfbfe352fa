"""agent-registry — DID-bound identity records for autonomous agents.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import agent_registry
>>> agent_registry.__version__
'0.1.0'

Quick start
-----------
::

    from agent_registry import (
        # DID validation
        DIDValidator, ValidationResult, ValidationStage,
        validate_did, get_validation_details, extract_address_from_did,
        did_for_address,
        # Registry
        AgentRegistry, AgentRecord, DelegatedRegistration, RegistryConfig,
        # Signing
        TypedDataSigner, TypedDataDomain,
    )
"""
from __future__ import annotations

__version__: str = "0.1.0"

from agent_registry.addresses import NULL_ADDRESS, InvalidAddressError, normalize_address
from agent_registry.config import ConfigError, RegistryConfig, load_config

# ------------------------------------------------------------------
# DID validation
# ------------------------------------------------------------------
from agent_registry.did import (
    AddressValidator,
    DIDParseError,
    DIDValidator,
    ParsedDID,
    ValidationResult,
    ValidationStage,
    did_for_address,
    encode_address,
    extract_address_from_did,
    get_validation_details,
    parse_did,
    validate_did,
)

# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------
from agent_registry.registry import (
    AddressAlreadyRegisteredError,
    AgentNotFoundError,
    AgentRecord,
    AgentRegistered,
    AgentRegistry,
    AlreadyRegisteredError,
    AuthenticationError,
    DIDAlreadyRegisteredError,
    DIDValidationError,
    DelegatedRegistration,
    EmptyDIDError,
    EmptyServiceEndpointError,
    EndpointAlreadyRegisteredError,
    EventLog,
    InsufficientFeeError,
    InvalidAgentAddressError,
    NonceMismatchError,
    RegistryError,
    RegistryStateError,
    RegistryStore,
    RequestExpiredError,
    ServiceEndpointUpdated,
    SignatureMismatchError,
)

# ------------------------------------------------------------------
# Signing
# ------------------------------------------------------------------
from agent_registry.signing import (
    SignatureRecoverer,
    SignatureRecoveryError,
    StructuredDataHasher,
    TypedDataDomain,
    TypedDataSigner,
)

__all__ = [
    # version
    "__version__",
    # addresses / config
    "ConfigError",
    "InvalidAddressError",
    "NULL_ADDRESS",
    "RegistryConfig",
    "load_config",
    "normalize_address",
    # did
    "AddressValidator",
    "DIDParseError",
    "DIDValidator",
    "ParsedDID",
    "ValidationResult",
    "ValidationStage",
    "did_for_address",
    "encode_address",
    "extract_address_from_did",
    "get_validation_details",
    "parse_did",
    "validate_did",
    # registry
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
    "EventLog",
    "InsufficientFeeError",
    "InvalidAgentAddressError",
    "NonceMismatchError",
    "RegistryError",
    "RegistryStateError",
    "RegistryStore",
    "RequestExpiredError",
    "ServiceEndpointUpdated",
    "SignatureMismatchError",
    # signing
    "SignatureRecoverer",
    "SignatureRecoveryError",
    "StructuredDataHasher",
    "TypedDataDomain",
    "TypedDataSigner",
]
