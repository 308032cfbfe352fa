"""Route handler functions for the agent-registry HTTP server.

Each function accepts parsed request data and returns a tuple of
(status_code, response_dict). The HTTP handler in app.py calls these
functions and serializes the results to JSON.

Registry failures map to status codes as follows:

=================================  ======
Failure                            Status
=================================  ======
Request body validation            422
Insufficient fee                   402
Authentication (delegated path)    401
Uniqueness conflict                409
DID / input shape validation       400
Not found                          404
=================================  ======
"""
from __future__ import annotations

from typing import Callable

from pydantic import ValidationError

from agent_registry.config import RegistryConfig
from agent_registry.did import get_validation_details
from agent_registry.registry import (
    AgentNotFoundError,
    AgentRecord,
    AgentRegistry,
    AlreadyRegisteredError,
    AuthenticationError,
    DelegatedRegistration,
    InsufficientFeeError,
    RegistryError,
)
from agent_registry.server.models import (
    AgentResponse,
    ErrorResponse,
    HealthResponse,
    RegisterDelegatedRequest,
    RegisterDirectRequest,
    UpdateEndpointRequest,
    ValidateDIDRequest,
    ValidationResponse,
)


# Module-level shared state
_registry: AgentRegistry = AgentRegistry()


def reset_state(
    config: RegistryConfig | None = None,
    clock: Callable[[], int] | None = None,
) -> AgentRegistry:
    """Replace the shared registry — used in tests and for clean restarts."""
    global _registry
    _registry = AgentRegistry(config=config, clock=clock)
    return _registry


def get_registry() -> AgentRegistry:
    return _registry


def _record_to_response(record: AgentRecord) -> AgentResponse:
    return AgentResponse(
        agent_id=record.agent_id,
        owner_address=record.owner_address,
        did=record.did,
        description=record.description,
        service_endpoint=record.service_endpoint,
        registered_at=record.registered_at.isoformat(),
        nonce=_registry.get_nonce(record.owner_address),
    )


def _error(status: int, error: str, detail: str) -> tuple[int, dict[str, object]]:
    return status, ErrorResponse(error=error, detail=detail).model_dump()


def _registry_error(exc: RegistryError) -> tuple[int, dict[str, object]]:
    if isinstance(exc, AgentNotFoundError):
        return _error(404, "Not found", str(exc))
    if isinstance(exc, AlreadyRegisteredError):
        return _error(409, "Conflict", str(exc))
    if isinstance(exc, InsufficientFeeError):
        return _error(402, "Insufficient fee", str(exc))
    if isinstance(exc, AuthenticationError):
        return _error(401, "Authentication failed", str(exc))
    return _error(400, "Rejected", str(exc))


# ------------------------------------------------------------------
# Admission
# ------------------------------------------------------------------


def handle_register_direct(body: dict[str, object]) -> tuple[int, dict[str, object]]:
    """Handle POST /agents."""
    try:
        request = RegisterDirectRequest.model_validate(body)
    except ValidationError as exc:
        return _error(422, "Validation error", str(exc))

    try:
        record = _registry.register_direct(
            did=request.did,
            description=request.description,
            service_endpoint=request.service_endpoint,
            caller=request.caller,
            attached_value=request.attached_value,
        )
    except RegistryError as exc:
        return _registry_error(exc)

    return 201, _record_to_response(record).model_dump()


def handle_register_delegated(body: dict[str, object]) -> tuple[int, dict[str, object]]:
    """Handle POST /agents/delegated."""
    try:
        request = RegisterDelegatedRequest.model_validate(body)
    except ValidationError as exc:
        return _error(422, "Validation error", str(exc))

    delegated = DelegatedRegistration(**request.request.model_dump())
    try:
        record = _registry.register_delegated(
            request=delegated,
            signature=request.signature,
            relayer=request.relayer,
            attached_value=request.attached_value,
        )
    except RegistryError as exc:
        return _registry_error(exc)

    return 201, _record_to_response(record).model_dump()


def handle_update_endpoint(
    address: str, body: dict[str, object]
) -> tuple[int, dict[str, object]]:
    """Handle POST /agents/{address}/endpoint."""
    try:
        request = UpdateEndpointRequest.model_validate(body)
    except ValidationError as exc:
        return _error(422, "Validation error", str(exc))

    try:
        record = _registry.update_service_endpoint(address, request.service_endpoint)
    except RegistryError as exc:
        return _registry_error(exc)

    return 200, _record_to_response(record).model_dump()


# ------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------


def handle_get_agent_by_id(agent_id: str) -> tuple[int, dict[str, object]]:
    """Handle GET /agents/{id}."""
    try:
        numeric_id = int(agent_id)
    except ValueError:
        return _error(422, "Validation error", f"Agent id {agent_id!r} is not an integer.")
    try:
        record = _registry.get_agent_by_id(numeric_id)
    except AgentNotFoundError as exc:
        return _registry_error(exc)
    return 200, _record_to_response(record).model_dump()


def handle_get_agent_by_address(address: str) -> tuple[int, dict[str, object]]:
    """Handle GET /agents/by-address/{address}."""
    try:
        record = _registry.get_agent_by_address(address)
    except AgentNotFoundError as exc:
        return _registry_error(exc)
    return 200, _record_to_response(record).model_dump()


def handle_get_agent_by_endpoint(endpoint: str | None) -> tuple[int, dict[str, object]]:
    """Handle GET /agents?endpoint=..."""
    if not endpoint:
        return _error(422, "Validation error", "Query parameter 'endpoint' is required.")
    try:
        record = _registry.get_agent_by_service_endpoint(endpoint)
    except AgentNotFoundError as exc:
        return _registry_error(exc)
    return 200, _record_to_response(record).model_dump()


# ------------------------------------------------------------------
# DID diagnostics
# ------------------------------------------------------------------


def handle_validate_did(body: dict[str, object]) -> tuple[int, dict[str, object]]:
    """Handle POST /did/validate.

    Always 200 for a well-formed body; ``valid`` and ``stage`` carry the
    outcome.
    """
    try:
        request = ValidateDIDRequest.model_validate(body)
    except ValidationError as exc:
        return _error(422, "Validation error", str(exc))

    result = get_validation_details(request.did, request.address)
    return 200, ValidationResponse(**result.to_dict()).model_dump()


def handle_health() -> tuple[int, dict[str, object]]:
    """Handle GET /health."""
    response = HealthResponse(
        agent_count=len(_registry),
        registration_fee=_registry.registration_fee,
    )
    return 200, response.model_dump()


__all__ = [
    "get_registry",
    "handle_get_agent_by_address",
    "handle_get_agent_by_endpoint",
    "handle_get_agent_by_id",
    "handle_health",
    "handle_register_delegated",
    "handle_register_direct",
    "handle_update_endpoint",
    "handle_validate_did",
    "reset_state",
]
