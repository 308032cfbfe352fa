"""Account address normalisation.

Addresses travel through the package as EIP-55 checksummed hex strings
(``0x`` followed by 40 hex digits). Input may be a hex string in any
all-lowercase or all-uppercase form, a correctly checksummed mixed-case
string, or the raw 20 bytes. Mixed-case strings with a wrong checksum are
rejected because they usually indicate a typo.
"""
from __future__ import annotations

from eth_utils import (
    is_checksum_address,
    is_checksum_formatted_address,
    is_hex_address,
    to_canonical_address,
    to_checksum_address,
)

NULL_ADDRESS: str = "0x0000000000000000000000000000000000000000"


class InvalidAddressError(ValueError):
    """Raised when a value cannot be interpreted as a 20-byte account address."""

    def __init__(self, value: object, reason: str = "") -> None:
        self.value = value
        detail = f" {reason}" if reason else ""
        super().__init__(f"Invalid account address {value!r}.{detail}")


def normalize_address(value: str | bytes) -> str:
    """Return *value* as an EIP-55 checksummed address string.

    Raises
    ------
    InvalidAddressError
        If *value* is not a 20-byte address, or is mixed-case with a bad
        checksum.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise InvalidAddressError(value, f"Expected 20 bytes, got {len(value)}.")
        return to_checksum_address(bytes(value))
    if not isinstance(value, str):
        raise InvalidAddressError(value, "Expected a hex string or 20 raw bytes.")
    if not is_hex_address(value):
        raise InvalidAddressError(value, "Expected 0x followed by 40 hex digits.")
    if is_checksum_formatted_address(value) and not is_checksum_address(value):
        raise InvalidAddressError(value, "Mixed-case address has an invalid EIP-55 checksum.")
    return to_checksum_address(value)


def address_bytes(value: str | bytes) -> bytes:
    """Return the raw 20 bytes of a normalised address."""
    return to_canonical_address(normalize_address(value))


def is_null_address(value: str) -> bool:
    """Return True if *value* is the all-zero address."""
    return normalize_address(value) == NULL_ADDRESS


__all__ = [
    "InvalidAddressError",
    "NULL_ADDRESS",
    "address_bytes",
    "is_null_address",
    "normalize_address",
]
