"""Base58 (Bitcoin alphabet) codec for fixed-width account addresses.

Addresses are carried inside DIDs as a Base58 payload. Decoding is strict:

1. Every character must belong to the Bitcoin alphabet (digits 1-9, A-Z
   without I and O, a-z without l). One bad character fails the whole
   payload; nothing is partially decoded.
2. The value is accumulated as a big integer by multiply-by-58-and-add.
3. The integer is converted to minimal big-endian bytes and left-padded
   with zero bytes to the target width (20 bytes for an account address).

Leading ``1`` characters stand for explicit leading zero bytes, exactly as
in Bitcoin's encoding. They are optional: a payload produced by a plain
big-integer encoder (no leading ``1`` characters) pads to the same bytes.
"""
from __future__ import annotations

ADDRESS_WIDTH: int = 20

BASE58_ALPHABET: str = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

_ALPHABET_INDEX: dict[str, int] = {char: index for index, char in enumerate(BASE58_ALPHABET)}

# 20 leading '1's plus the 28 characters needed for a full 160-bit value.
MAX_PAYLOAD_CHARS: int = 48


class Base58Error(ValueError):
    """Base class for Base58 decoding failures."""


class InvalidBase58CharacterError(Base58Error):
    """Raised when the payload contains a character outside the alphabet."""

    def __init__(self, char: str, position: int) -> None:
        self.char = char
        self.position = position
        super().__init__(
            f"Invalid Base58 character {char!r} at position {position}."
        )


class PayloadLengthError(Base58Error):
    """Raised when the decoded payload does not fit the target width."""


def encode(data: bytes) -> str:
    """Encode *data* to a Base58 string.

    Leading zero bytes are preserved as ``1`` characters.
    """
    n = int.from_bytes(data, "big")
    chars: list[str] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        chars.append(BASE58_ALPHABET[remainder])
    for byte in data:
        if byte == 0:
            chars.append("1")
        else:
            break
    return "".join(reversed(chars))


def check_alphabet(encoded: str) -> None:
    """Raise :class:`InvalidBase58CharacterError` on the first bad character."""
    for position, char in enumerate(encoded):
        if char not in _ALPHABET_INDEX:
            raise InvalidBase58CharacterError(char, position)


def decode_int(encoded: str) -> int:
    """Decode *encoded* to its big-integer value.

    Raises
    ------
    InvalidBase58CharacterError
        If any character lies outside the alphabet.
    PayloadLengthError
        If *encoded* is empty.
    """
    if not encoded:
        raise PayloadLengthError("Base58 payload is empty.")
    check_alphabet(encoded)
    return _accumulate(encoded)


def _accumulate(encoded: str) -> int:
    # Caller has already checked the alphabet.
    n = 0
    for char in encoded:
        n = n * 58 + _ALPHABET_INDEX[char]
    return n


def decode_fixed(encoded: str, width: int = ADDRESS_WIDTH) -> bytes:
    """Decode *encoded* into exactly *width* bytes.

    Parameters
    ----------
    encoded:
        The Base58 payload.
    width:
        Target byte width. Shorter values are left-padded with zero bytes.

    Returns
    -------
    bytes
        The decoded value, ``width`` bytes long.

    Raises
    ------
    InvalidBase58CharacterError
        If any character lies outside the alphabet.
    PayloadLengthError
        If the payload is empty, too long, or holds more than *width*
        bytes once explicit leading zeros are counted.
    """
    if not encoded:
        raise PayloadLengthError("Base58 payload is empty.")
    check_alphabet(encoded)
    if len(encoded) > MAX_PAYLOAD_CHARS:
        raise PayloadLengthError(
            f"Base58 payload is {len(encoded)} characters; "
            f"at most {MAX_PAYLOAD_CHARS} can encode {width} bytes."
        )

    n = _accumulate(encoded)
    significant = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""

    explicit_zeros = len(encoded) - len(encoded.lstrip("1"))
    # An all-'1' payload is a run of zero bytes with no significant part.
    if n == 0:
        explicit_zeros = len(encoded)

    if explicit_zeros + len(significant) > width:
        raise PayloadLengthError(
            f"Decoded payload is {explicit_zeros + len(significant)} bytes; "
            f"expected at most {width}."
        )
    return significant.rjust(width, b"\x00")


__all__ = [
    "ADDRESS_WIDTH",
    "BASE58_ALPHABET",
    "Base58Error",
    "InvalidBase58CharacterError",
    "MAX_PAYLOAD_CHARS",
    "PayloadLengthError",
    "check_alphabet",
    "decode_fixed",
    "decode_int",
    "encode",
]
