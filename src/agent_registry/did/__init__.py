"""DID validation subsystem.

Parses DIDs, decodes their Base58 payload, and checks that the payload is
exactly a claimed 20-byte account address.

Quick start
-----------
::

    from agent_registry.did import did_for_address, validate_did

    address = "0x1111111111111111111111111111111111111111"
    did = did_for_address(address, method="agent")
    assert validate_did(did, address)
"""
from __future__ import annotations

from agent_registry.did.base58 import (
    ADDRESS_WIDTH,
    BASE58_ALPHABET,
    Base58Error,
    InvalidBase58CharacterError,
    PayloadLengthError,
)
from agent_registry.did.validator import (
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
    split_suffix,
    validate_did,
)

__all__ = [
    "ADDRESS_WIDTH",
    "AddressValidator",
    "BASE58_ALPHABET",
    "Base58Error",
    "DIDParseError",
    "DIDValidator",
    "InvalidBase58CharacterError",
    "ParsedDID",
    "PayloadLengthError",
    "ValidationResult",
    "ValidationStage",
    "did_for_address",
    "encode_address",
    "extract_address_from_did",
    "get_validation_details",
    "parse_did",
    "split_suffix",
    "validate_did",
]
