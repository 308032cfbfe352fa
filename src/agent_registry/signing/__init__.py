"""Delegated-request signing primitives.

Wraps EIP-712 typed-data hashing and secp256k1 signer recovery behind the
narrow interfaces the registry depends on.
"""
from __future__ import annotations

from agent_registry.signing.typed_data import (
    DelegatedRegistration,
    SignatureRecoverer,
    SignatureRecoveryError,
    StructuredDataHasher,
    TypedDataDomain,
    TypedDataEncodingError,
    TypedDataSigner,
    UINT256_MAX,
)

__all__ = [
    "DelegatedRegistration",
    "SignatureRecoverer",
    "SignatureRecoveryError",
    "StructuredDataHasher",
    "TypedDataDomain",
    "TypedDataEncodingError",
    "TypedDataSigner",
    "UINT256_MAX",
]
