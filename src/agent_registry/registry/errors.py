"""Registry error taxonomy.

Every failure aborts the operation with no state change. None is retried
internally; callers correct the input and resubmit.
"""
from __future__ import annotations

from agent_registry.did.validator import ValidationResult


class RegistryError(Exception):
    """Base class for all registry failures."""


# ------------------------------------------------------------------
# Input shape
# ------------------------------------------------------------------


class EmptyDIDError(RegistryError, ValueError):
    """Raised when a direct registration supplies an empty DID."""

    def __init__(self) -> None:
        super().__init__("DID must not be empty.")


class EmptyServiceEndpointError(RegistryError, ValueError):
    """Raised when a registration or update supplies an empty endpoint."""

    def __init__(self) -> None:
        super().__init__("Service endpoint must not be empty.")


class InvalidAgentAddressError(RegistryError, ValueError):
    """Raised when a caller or agent address is not a 20-byte address."""

    def __init__(self, address: object, reason: str) -> None:
        self.address = address
        super().__init__(f"Invalid agent address {address!r}: {reason}")


# ------------------------------------------------------------------
# Economic
# ------------------------------------------------------------------


class InsufficientFeeError(RegistryError, ValueError):
    """Raised when the attached value is below the registration fee."""

    def __init__(self, attached_value: int, required: int) -> None:
        self.attached_value = attached_value
        self.required = required
        super().__init__(
            f"Attached value {attached_value} is below the registration fee {required}."
        )


# ------------------------------------------------------------------
# Uniqueness
# ------------------------------------------------------------------


class AlreadyRegisteredError(RegistryError, ValueError):
    """Base class for uniqueness conflicts."""


class AddressAlreadyRegisteredError(AlreadyRegisteredError):
    """Raised when the registering address already owns a record."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(
            f"Address {address} is already registered. "
            "Use update_service_endpoint() to change its endpoint."
        )


class DIDAlreadyRegisteredError(AlreadyRegisteredError):
    """Raised when the DID is already bound to another record."""

    def __init__(self, did: str) -> None:
        self.did = did
        super().__init__(f"DID {did!r} is already registered.")


class EndpointAlreadyRegisteredError(AlreadyRegisteredError):
    """Raised when the service endpoint is already claimed."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        super().__init__(f"Service endpoint {endpoint!r} is already registered.")


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


class DIDValidationError(RegistryError, ValueError):
    """Raised when the DID does not decode to the claimed address.

    ``result`` carries the validator's stage-by-stage diagnosis.
    """

    def __init__(self, did: str, address: str, result: ValidationResult | None = None) -> None:
        self.did = did
        self.address = address
        self.result = result
        reason = f" ({result.stage.value}: {result.message})" if result is not None else ""
        super().__init__(f"DID {did!r} does not match address {address}{reason}.")


# ------------------------------------------------------------------
# Authentication (delegated path)
# ------------------------------------------------------------------


class AuthenticationError(RegistryError):
    """Base class for delegated-request authentication failures."""


class RequestExpiredError(AuthenticationError):
    """Raised when a delegated request is submitted after its expiry."""

    def __init__(self, expiry: int, now: int) -> None:
        self.expiry = expiry
        self.now = now
        super().__init__(f"Request expired at {expiry}; current time is {now}.")


class NonceMismatchError(AuthenticationError):
    """Raised when a delegated request's nonce is not the stored nonce."""

    def __init__(self, address: str, expected: int, received: int) -> None:
        self.address = address
        self.expected = expected
        self.received = received
        super().__init__(
            f"Nonce mismatch for {address}: expected {expected}, got {received}."
        )


class SignatureMismatchError(AuthenticationError):
    """Raised when the recovered signer is not the request's agent address."""

    def __init__(self, expected: str, recovered: str | None) -> None:
        self.expected = expected
        self.recovered = recovered
        got = recovered if recovered is not None else "no signer"
        super().__init__(f"Signature was made by {got}, not {expected}.")


# ------------------------------------------------------------------
# Not found / state
# ------------------------------------------------------------------


class AgentNotFoundError(RegistryError, KeyError):
    """Raised when a lookup has no matching record."""

    def __init__(self, kind: str, key: object) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"No agent registered for {kind} {key!r}.")

    def __str__(self) -> str:
        return str(self.args[0])


class RegistryStateError(RegistryError):
    """Raised when restored or stored state breaks a registry invariant."""


__all__ = [
    "AddressAlreadyRegisteredError",
    "AgentNotFoundError",
    "AlreadyRegisteredError",
    "AuthenticationError",
    "DIDAlreadyRegisteredError",
    "DIDValidationError",
    "EmptyDIDError",
    "EmptyServiceEndpointError",
    "EndpointAlreadyRegisteredError",
    "InsufficientFeeError",
    "InvalidAgentAddressError",
    "NonceMismatchError",
    "RegistryError",
    "RegistryStateError",
    "RequestExpiredError",
    "SignatureMismatchError",
]
