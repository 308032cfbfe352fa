"""Structured-data (EIP-712) hashing and signer recovery for delegated requests.

A delegated registration is authorised by the agent's signature over an
EIP-712 digest of exactly these fields::

    AgentRegistration(
        address agentAddress,
        string did,
        string description,
        string serviceEndpoint,
        uint256 nonce,
        uint256 expiry
    )

under a domain separator built from the registry's ``(name, version)``
and, when configured, its chain id and verifying contract.

The elliptic-curve work is delegated to ``eth-account`` (typed-data
encoding and signing) and ``eth-keys`` (public-key recovery). The
registry sees only the two narrow interfaces :class:`StructuredDataHasher`
and :class:`SignatureRecoverer`, so either can be swapped for a test
double.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from eth_abi.exceptions import EncodingError
from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak

from agent_registry.addresses import NULL_ADDRESS, normalize_address

PRIMARY_TYPE: str = "AgentRegistration"

REGISTRATION_TYPE: list[dict[str, str]] = [
    {"name": "agentAddress", "type": "address"},
    {"name": "did", "type": "string"},
    {"name": "description", "type": "string"},
    {"name": "serviceEndpoint", "type": "string"},
    {"name": "nonce", "type": "uint256"},
    {"name": "expiry", "type": "uint256"},
]

SIGNATURE_LENGTH: int = 65

UINT256_MAX: int = 2**256 - 1


class SignatureRecoveryError(ValueError):
    """Raised when no signer can be recovered from a digest and signature."""


class TypedDataEncodingError(ValueError):
    """Raised when a request cannot be encoded as EIP-712 typed data."""


# ---------------------------------------------------------------------------
# Request and domain
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DelegatedRegistration:
    """A registration request signed by the agent and submitted by a relayer.

    Parameters
    ----------
    agent_address:
        The account being registered; also the required signer.
    did:
        DID that must encode ``agent_address``.
    description:
        Free-form description of the agent.
    service_endpoint:
        Endpoint to claim for the agent.
    nonce:
        Must equal the registry's current nonce for ``agent_address``.
    expiry:
        Unix timestamp (seconds) after which the request is unusable.
    """

    agent_address: str
    did: str
    description: str
    service_endpoint: str
    nonce: int
    expiry: int

    def __post_init__(self) -> None:
        for field_name in ("nonce", "expiry"):
            value = getattr(self, field_name)
            if not 0 <= value <= UINT256_MAX:
                raise ValueError(f"{field_name} must fit in a uint256, got {value}.")

    def to_message(self) -> dict[str, object]:
        """Return the EIP-712 message body (camelCase field names)."""
        return {
            "agentAddress": normalize_address(self.agent_address),
            "did": self.did,
            "description": self.description,
            "serviceEndpoint": self.service_endpoint,
            "nonce": int(self.nonce),
            "expiry": int(self.expiry),
        }

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "agent_address": self.agent_address,
            "did": self.did,
            "description": self.description,
            "service_endpoint": self.service_endpoint,
            "nonce": self.nonce,
            "expiry": self.expiry,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DelegatedRegistration":
        """Reconstruct a request from :meth:`to_dict` output."""
        return cls(
            agent_address=str(data["agent_address"]),
            did=str(data["did"]),
            description=str(data.get("description", "")),
            service_endpoint=str(data["service_endpoint"]),
            nonce=int(data["nonce"]),  # type: ignore[call-overload]
            expiry=int(data["expiry"]),  # type: ignore[call-overload]
        )


@dataclass(frozen=True)
class TypedDataDomain:
    """EIP-712 domain bound to one registry instance.

    ``chain_id`` and ``verifying_contract`` are optional; when ``None`` they
    are left out of both the domain type and the domain value.
    """

    name: str
    version: str
    chain_id: int | None = None
    verifying_contract: str | None = None

    def types(self) -> list[dict[str, str]]:
        fields = [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
        ]
        if self.chain_id is not None:
            fields.append({"name": "chainId", "type": "uint256"})
        if self.verifying_contract is not None:
            fields.append({"name": "verifyingContract", "type": "address"})
        return fields

    def to_dict(self) -> dict[str, object]:
        domain: dict[str, object] = {"name": self.name, "version": self.version}
        if self.chain_id is not None:
            domain["chainId"] = self.chain_id
        if self.verifying_contract is not None:
            domain["verifyingContract"] = normalize_address(self.verifying_contract)
        return domain


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class StructuredDataHasher(ABC):
    """Computes the digest a delegated request's signature must cover."""

    @abstractmethod
    def hash_structured(self, request: DelegatedRegistration) -> bytes:
        """Return the 32-byte digest of *request*."""


class SignatureRecoverer(ABC):
    """Recovers the signing address from a digest and signature."""

    @abstractmethod
    def recover_signer(self, digest: bytes, signature: bytes | str) -> str:
        """Return the checksummed signer address.

        Raises
        ------
        SignatureRecoveryError
            If the signature is malformed or no key can be recovered.
        """


# ---------------------------------------------------------------------------
# eth-account backed implementation
# ---------------------------------------------------------------------------


class TypedDataSigner(StructuredDataHasher, SignatureRecoverer):
    """EIP-712 hasher and recoverer for :class:`DelegatedRegistration`.

    Example
    -------
    ::

        signer = TypedDataSigner(TypedDataDomain(name="AgentRegistry", version="1"))
        signature = signer.sign(request, private_key)
        digest = signer.hash_structured(request)
        assert signer.recover_signer(digest, signature) == request.agent_address
    """

    def __init__(self, domain: TypedDataDomain) -> None:
        self._domain = domain

    @property
    def domain(self) -> TypedDataDomain:
        return self._domain

    def typed_data(self, request: DelegatedRegistration) -> dict[str, object]:
        """Return the full EIP-712 typed-data document for *request*."""
        return {
            "types": {
                "EIP712Domain": self._domain.types(),
                PRIMARY_TYPE: REGISTRATION_TYPE,
            },
            "primaryType": PRIMARY_TYPE,
            "domain": self._domain.to_dict(),
            "message": request.to_message(),
        }

    def encode(self, request: DelegatedRegistration) -> SignableMessage:
        try:
            return encode_typed_data(full_message=self.typed_data(request))
        except (EncodingError, TypeError, ValueError) as exc:
            raise TypedDataEncodingError(f"Cannot encode {PRIMARY_TYPE}: {exc}") from exc

    def domain_separator(self) -> bytes:
        """Return the 32-byte EIP-712 domain separator."""
        # The header of an EIP-712 SignableMessage is the domain separator
        # and does not depend on the message body.
        placeholder = DelegatedRegistration(
            agent_address=NULL_ADDRESS,
            did="",
            description="",
            service_endpoint="",
            nonce=0,
            expiry=0,
        )
        return bytes(self.encode(placeholder).header)

    def hash_structured(self, request: DelegatedRegistration) -> bytes:
        signable = self.encode(request)
        return keccak(b"\x19" + signable.version + signable.header + signable.body)

    def recover_signer(self, digest: bytes, signature: bytes | str) -> str:
        raw = _signature_bytes(signature)
        v = raw[64]
        if v >= 27:
            v -= 27
        if v not in (0, 1):
            raise SignatureRecoveryError(f"Invalid signature recovery id {raw[64]}.")
        try:
            sig = keys.Signature(signature_bytes=raw[:64] + bytes([v]))
            public_key = sig.recover_public_key_from_msg_hash(digest)
        except (BadSignature, KeyValidationError, ValueError) as exc:
            raise SignatureRecoveryError(f"Could not recover signer: {exc}") from exc
        return public_key.to_checksum_address()

    def sign(self, request: DelegatedRegistration, private_key: bytes | str) -> bytes:
        """Sign *request* with *private_key*; returns the 65-byte signature."""
        signed = Account.sign_message(self.encode(request), private_key=private_key)
        return bytes(signed.signature)


def _signature_bytes(signature: bytes | str) -> bytes:
    if isinstance(signature, str):
        text = signature[2:] if signature.startswith(("0x", "0X")) else signature
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise SignatureRecoveryError("Signature is not valid hex.") from exc
    elif isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    else:
        raise SignatureRecoveryError(
            f"Signature must be bytes or a hex string, got {type(signature).__name__}."
        )
    if len(raw) != SIGNATURE_LENGTH:
        raise SignatureRecoveryError(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}."
        )
    return raw


__all__ = [
    "DelegatedRegistration",
    "PRIMARY_TYPE",
    "REGISTRATION_TYPE",
    "SignatureRecoverer",
    "SignatureRecoveryError",
    "StructuredDataHasher",
    "TypedDataDomain",
    "TypedDataEncodingError",
    "TypedDataSigner",
    "UINT256_MAX",
]
