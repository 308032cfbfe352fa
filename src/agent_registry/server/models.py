"""Pydantic request/response models for the agent-registry HTTP server."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from agent_registry.signing import UINT256_MAX


class RegisterDirectRequest(BaseModel):
    """Request body for POST /agents."""

    did: str
    description: str = ""
    service_endpoint: str
    caller: str
    attached_value: int = Field(ge=0)


class DelegatedRequestBody(BaseModel):
    """The signed fields of a delegated registration."""

    agent_address: str
    did: str
    description: str = ""
    service_endpoint: str
    nonce: int = Field(ge=0, le=UINT256_MAX)
    expiry: int = Field(ge=0, le=UINT256_MAX)


class RegisterDelegatedRequest(BaseModel):
    """Request body for POST /agents/delegated."""

    request: DelegatedRequestBody
    signature: str
    relayer: str
    attached_value: int = Field(ge=0)


class UpdateEndpointRequest(BaseModel):
    """Request body for POST /agents/{address}/endpoint."""

    service_endpoint: str


class ValidateDIDRequest(BaseModel):
    """Request body for POST /did/validate."""

    did: str
    address: str


class AgentResponse(BaseModel):
    """Response body representing a single agent record."""

    agent_id: int
    owner_address: str
    did: str
    description: str = ""
    service_endpoint: str
    registered_at: str
    nonce: int = 0


class ValidationResponse(BaseModel):
    """Response body for POST /did/validate."""

    valid: bool
    stage: str
    message: str
    did: str
    expected_address: Optional[str] = None
    recovered_address: Optional[str] = None
    method: Optional[str] = None
    namespace: list[str] = Field(default_factory=list)
    payload: Optional[str] = None
    suffix: str = ""


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    service: str = "agent-registry"
    version: str = "0.1.0"
    agent_count: int = 0
    registration_fee: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str = ""


__all__ = [
    "AgentResponse",
    "DelegatedRequestBody",
    "ErrorResponse",
    "HealthResponse",
    "RegisterDelegatedRequest",
    "RegisterDirectRequest",
    "UpdateEndpointRequest",
    "ValidateDIDRequest",
    "ValidationResponse",
]
