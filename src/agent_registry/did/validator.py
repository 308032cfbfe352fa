"""DID validation — prove that a DID embeds a given account address.

A DID accepted by this module has the shape::

    did:<method>[:<namespace>...]:<base58-payload>[<suffix>]

Splitting rule
--------------
1. The string must start with the literal scheme ``did:``.
2. The DID-URL suffix begins at the first ``/``, ``?``, ``#`` or ``;``
   after the scheme. It is ignored for extraction; registries still
   compare the full string for uniqueness.
3. What remains is split on ``:``. At least two segments are required
   (method and payload), none may be empty, and the method must be
   lowercase alphanumeric.
4. The payload is the segment after the *last* ``:``. Any segments between
   the method and the payload (network, namespace) are kept in the parse
   result but play no part in extraction.

The payload is Base58-decoded into exactly 20 bytes (see
:mod:`agent_registry.did.base58`) and read as an account address.

Nothing here raises for malformed DIDs. :func:`validate_did` answers yes or
no, :func:`extract_address_from_did` returns ``(address, ok)``, and
:func:`get_validation_details` reports which stage failed.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from agent_registry.addresses import NULL_ADDRESS, InvalidAddressError, normalize_address
from agent_registry.did import base58

DID_SCHEME: str = "did:"

_SUFFIX_DELIMITERS: tuple[str, ...] = ("/", "?", "#", ";")
_METHOD_PATTERN = re.compile(r"^[a-z0-9]+$")


class ValidationStage(str, Enum):
    """The stage at which DID validation stopped."""

    OK = "ok"
    EMPTY_INPUT = "empty_input"
    INVALID_PREFIX = "invalid_prefix"
    MALFORMED = "malformed"
    INVALID_BASE58 = "invalid_base58"
    LENGTH_MISMATCH = "length_mismatch"
    FORMAT_VIOLATION = "format_violation"
    INVALID_EXPECTED_ADDRESS = "invalid_expected_address"
    ADDRESS_MISMATCH = "address_mismatch"


class DIDParseError(ValueError):
    """Raised by :func:`parse_did` when a DID does not have the expected shape."""

    def __init__(self, stage: ValidationStage, message: str) -> None:
        self.stage = stage
        super().__init__(message)


@dataclass(frozen=True)
class ParsedDID:
    """The structural pieces of a DID string.

    Parameters
    ----------
    did:
        The original DID string.
    method:
        The DID method segment (e.g. ``"agent"``).
    namespace:
        Segments between the method and the payload, in order.
    payload:
        The Base58 payload segment.
    suffix:
        The DID-URL suffix (path, query, fragment or parameters),
        including its leading delimiter. Empty when absent.
    """

    did: str
    method: str
    namespace: tuple[str, ...]
    payload: str
    suffix: str = ""


@dataclass
class ValidationResult:
    """Structured diagnosis of a DID validation attempt.

    ``recovered_address`` is populated whenever extraction succeeded, even
    if the address then failed to match ``expected_address``.
    """

    valid: bool
    stage: ValidationStage
    message: str
    did: str
    expected_address: str | None = None
    recovered_address: str | None = None
    method: str | None = None
    namespace: tuple[str, ...] = field(default_factory=tuple)
    payload: str | None = None
    suffix: str = ""

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "valid": self.valid,
            "stage": self.stage.value,
            "message": self.message,
            "did": self.did,
            "expected_address": self.expected_address,
            "recovered_address": self.recovered_address,
            "method": self.method,
            "namespace": list(self.namespace),
            "payload": self.payload,
            "suffix": self.suffix,
        }


class _ExtractionError(Exception):
    def __init__(self, stage: ValidationStage, message: str, parsed: ParsedDID | None) -> None:
        self.stage = stage
        self.message = message
        self.parsed = parsed
        super().__init__(message)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def split_suffix(did: str) -> tuple[str, str]:
    """Split *did* into its bare identifier and DID-URL suffix."""
    cut = len(did)
    for delimiter in _SUFFIX_DELIMITERS:
        index = did.find(delimiter, len(DID_SCHEME))
        if index != -1 and index < cut:
            cut = index
    return did[:cut], did[cut:]


def parse_did(did: str) -> ParsedDID:
    """Split a DID string into method, namespace, payload and suffix.

    Raises
    ------
    DIDParseError
        If the string is empty, lacks the ``did:`` scheme, or has an empty
        or missing segment.
    """
    if not isinstance(did, str) or not did:
        raise DIDParseError(ValidationStage.EMPTY_INPUT, "DID is empty.")
    if not did.startswith(DID_SCHEME):
        raise DIDParseError(
            ValidationStage.INVALID_PREFIX,
            f"DID {did!r} does not start with {DID_SCHEME!r}.",
        )

    bare, suffix = split_suffix(did)
    segments = bare[len(DID_SCHEME):].split(":")
    if len(segments) < 2:
        raise DIDParseError(
            ValidationStage.MALFORMED,
            f"DID {did!r} needs a method and a payload segment.",
        )
    if any(not segment for segment in segments):
        raise DIDParseError(
            ValidationStage.MALFORMED,
            f"DID {did!r} contains an empty segment.",
        )

    method = segments[0]
    if not _METHOD_PATTERN.match(method):
        raise DIDParseError(
            ValidationStage.MALFORMED,
            f"DID method {method!r} must be lowercase letters and digits.",
        )

    return ParsedDID(
        did=did,
        method=method,
        namespace=tuple(segments[1:-1]),
        payload=segments[-1],
        suffix=suffix,
    )


def encode_address(address: str | bytes) -> str:
    """Encode an account address as a Base58 DID payload."""
    raw = bytes.fromhex(normalize_address(address)[2:])
    return base58.encode(raw)


def did_for_address(
    address: str | bytes,
    method: str = "agent",
    namespace: tuple[str, ...] | list[str] = (),
) -> str:
    """Build a DID whose payload encodes *address*.

    Example
    -------
    ::

        did_for_address("0x00000000000000000000000000000000000000ff", method="ethr")
        # 'did:ethr:' + '1' * 19 + '5Q'
    """
    if not _METHOD_PATTERN.match(method):
        raise ValueError(f"DID method {method!r} must be lowercase letters and digits.")
    segments = [method, *namespace, encode_address(address)]
    return DID_SCHEME + ":".join(segments)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class AddressValidator(ABC):
    """Capability interface the registry uses to check DIDs.

    Implementations must never raise for malformed DIDs.
    """

    @abstractmethod
    def validate_did(self, did: str, expected_address: str) -> bool:
        """Return True iff *did* encodes exactly *expected_address*."""

    @abstractmethod
    def get_validation_details(self, did: str, expected_address: str) -> ValidationResult:
        """Return a stage-by-stage diagnosis of validating *did*."""

    @abstractmethod
    def extract_address_from_did(self, did: str) -> tuple[str, bool]:
        """Return ``(address, True)`` or ``(NULL_ADDRESS, False)``."""


class DIDValidator(AddressValidator):
    """Stateless Base58 DID validator.

    Example
    -------
    ::

        validator = DIDValidator()
        did = did_for_address("0x1111111111111111111111111111111111111111")
        assert validator.validate_did(did, "0x1111111111111111111111111111111111111111")
    """

    def validate_did(self, did: str, expected_address: str) -> bool:
        return self.get_validation_details(did, expected_address).valid

    def get_validation_details(self, did: str, expected_address: str) -> ValidationResult:
        did_text = did if isinstance(did, str) else repr(did)
        try:
            parsed, recovered = self._extract(did)
        except _ExtractionError as exc:
            return _failure(did_text, exc.stage, exc.message, exc.parsed, expected=None)

        try:
            expected = normalize_address(expected_address)
        except InvalidAddressError as exc:
            result = _failure(
                did_text,
                ValidationStage.INVALID_EXPECTED_ADDRESS,
                str(exc),
                parsed,
                expected=None,
            )
            result.recovered_address = recovered
            return result

        if recovered != expected:
            result = _failure(
                did_text,
                ValidationStage.ADDRESS_MISMATCH,
                f"DID encodes {recovered}, not {expected}.",
                parsed,
                expected=expected,
            )
            result.recovered_address = recovered
            return result

        return ValidationResult(
            valid=True,
            stage=ValidationStage.OK,
            message=f"DID encodes {recovered}.",
            did=did_text,
            expected_address=expected,
            recovered_address=recovered,
            method=parsed.method,
            namespace=parsed.namespace,
            payload=parsed.payload,
            suffix=parsed.suffix,
        )

    def extract_address_from_did(self, did: str) -> tuple[str, bool]:
        try:
            _, recovered = self._extract(did)
        except _ExtractionError:
            return NULL_ADDRESS, False
        return recovered, True

    @staticmethod
    def _extract(did: str) -> tuple[ParsedDID, str]:
        try:
            parsed = parse_did(did)
        except DIDParseError as exc:
            raise _ExtractionError(exc.stage, str(exc), None) from exc

        try:
            raw = base58.decode_fixed(parsed.payload, base58.ADDRESS_WIDTH)
        except base58.InvalidBase58CharacterError as exc:
            raise _ExtractionError(ValidationStage.INVALID_BASE58, str(exc), parsed) from exc
        except base58.PayloadLengthError as exc:
            raise _ExtractionError(ValidationStage.LENGTH_MISMATCH, str(exc), parsed) from exc

        recovered = normalize_address(raw)
        if recovered == NULL_ADDRESS:
            raise _ExtractionError(
                ValidationStage.FORMAT_VIOLATION,
                "DID payload decodes to the null address.",
                parsed,
            )
        return parsed, recovered


def _failure(
    did: str,
    stage: ValidationStage,
    message: str,
    parsed: ParsedDID | None,
    expected: str | None,
) -> ValidationResult:
    return ValidationResult(
        valid=False,
        stage=stage,
        message=message,
        did=did,
        expected_address=expected,
        method=parsed.method if parsed else None,
        namespace=parsed.namespace if parsed else (),
        payload=parsed.payload if parsed else None,
        suffix=parsed.suffix if parsed else "",
    )


# ---------------------------------------------------------------------------
# Module-level convenience API
# ---------------------------------------------------------------------------

_DEFAULT_VALIDATOR = DIDValidator()


def validate_did(did: str, expected_address: str) -> bool:
    """Return True iff *did* encodes exactly *expected_address*. Never raises."""
    return _DEFAULT_VALIDATOR.validate_did(did, expected_address)


def get_validation_details(did: str, expected_address: str) -> ValidationResult:
    """Diagnose validation of *did* against *expected_address*. Never raises."""
    return _DEFAULT_VALIDATOR.get_validation_details(did, expected_address)


def extract_address_from_did(did: str) -> tuple[str, bool]:
    """Return the address embedded in *did* as ``(address, ok)``. Never raises."""
    return _DEFAULT_VALIDATOR.extract_address_from_did(did)


__all__ = [
    "AddressValidator",
    "DIDParseError",
    "DIDValidator",
    "DID_SCHEME",
    "ParsedDID",
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
