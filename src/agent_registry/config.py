"""Registry configuration.

A registry is configured once, at construction, with a fee floor and the
EIP-712 domain that delegated requests are signed under. Values come from
a TOML file (a ``[registry]`` table or top-level keys) and may be
overridden by environment variables::

    [registry]
    registration_fee = 1000000
    domain_name = "AgentRegistry"
    domain_version = "1"
    chain_id = 1
    verifying_contract = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

The fee floor is an opaque positive integer. It is not
derived from a token ``decimals`` value.
"""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from agent_registry.addresses import InvalidAddressError, normalize_address
from agent_registry.signing.typed_data import TypedDataDomain

DEFAULT_REGISTRATION_FEE = 1
DEFAULT_DOMAIN_NAME = "AgentRegistry"
DEFAULT_DOMAIN_VERSION = "1"

FEE_ENV_VAR = "AGENT_REGISTRY_FEE"
DOMAIN_NAME_ENV_VAR = "AGENT_REGISTRY_DOMAIN_NAME"
DOMAIN_VERSION_ENV_VAR = "AGENT_REGISTRY_DOMAIN_VERSION"
CHAIN_ID_ENV_VAR = "AGENT_REGISTRY_CHAIN_ID"
VERIFYING_CONTRACT_ENV_VAR = "AGENT_REGISTRY_VERIFYING_CONTRACT"


class ConfigError(ValueError):
    """Raised when registry configuration is invalid."""


@dataclass(frozen=True)
class RegistryConfig:
    """Immutable registry configuration.

    Parameters
    ----------
    registration_fee:
        Minimum attached value for every registration. Must be positive.
    domain_name:
        EIP-712 domain name.
    domain_version:
        EIP-712 domain version.
    chain_id:
        Optional EIP-712 chain id.
    verifying_contract:
        Optional EIP-712 verifying contract address.
    """

    registration_fee: int = DEFAULT_REGISTRATION_FEE
    domain_name: str = DEFAULT_DOMAIN_NAME
    domain_version: str = DEFAULT_DOMAIN_VERSION
    chain_id: int | None = None
    verifying_contract: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.registration_fee, bool) or not isinstance(self.registration_fee, int):
            raise ConfigError("registration_fee must be an integer")
        if self.registration_fee <= 0:
            raise ConfigError("registration_fee must be positive")
        if not self.domain_name:
            raise ConfigError("domain_name must not be empty")
        if not self.domain_version:
            raise ConfigError("domain_version must not be empty")
        if self.chain_id is not None and (
            isinstance(self.chain_id, bool) or not isinstance(self.chain_id, int) or self.chain_id < 0
        ):
            raise ConfigError("chain_id must be a non-negative integer")
        if self.verifying_contract is not None:
            try:
                object.__setattr__(
                    self, "verifying_contract", normalize_address(self.verifying_contract)
                )
            except InvalidAddressError as exc:
                raise ConfigError(f"verifying_contract: {exc}") from exc

    @property
    def domain(self) -> TypedDataDomain:
        return TypedDataDomain(
            name=self.domain_name,
            version=self.domain_version,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )


def _load_toml(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _to_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            pass
    raise ConfigError(f"{field_name} must be an integer")


def load_config(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> RegistryConfig:
    """Load a :class:`RegistryConfig` from *path* and the environment.

    Parameters
    ----------
    path:
        Optional TOML file. A missing file is treated as empty.
    environ:
        Environment mapping; defaults to ``os.environ``.

    Raises
    ------
    ConfigError
        If the file or any value is invalid.
    """
    env = os.environ if environ is None else environ
    source: dict[str, Any] = {}

    if path is not None and Path(path).exists():
        parsed = _load_toml(Path(path))
        section = parsed.get("registry")
        if isinstance(section, dict):
            source = section
        elif section is None:
            source = parsed
        else:
            raise ConfigError("[registry] must be a table")

    config = RegistryConfig(
        registration_fee=_to_int(
            source.get("registration_fee", DEFAULT_REGISTRATION_FEE), "registration_fee"
        ),
        domain_name=str(source.get("domain_name", DEFAULT_DOMAIN_NAME)),
        domain_version=str(source.get("domain_version", DEFAULT_DOMAIN_VERSION)),
        chain_id=(
            _to_int(source["chain_id"], "chain_id") if source.get("chain_id") is not None else None
        ),
        verifying_contract=(
            str(source["verifying_contract"]) if source.get("verifying_contract") else None
        ),
    )

    overrides: dict[str, Any] = {}
    if env.get(FEE_ENV_VAR):
        overrides["registration_fee"] = _to_int(env[FEE_ENV_VAR], FEE_ENV_VAR)
    if env.get(DOMAIN_NAME_ENV_VAR):
        overrides["domain_name"] = env[DOMAIN_NAME_ENV_VAR]
    if env.get(DOMAIN_VERSION_ENV_VAR):
        overrides["domain_version"] = env[DOMAIN_VERSION_ENV_VAR]
    if env.get(CHAIN_ID_ENV_VAR):
        overrides["chain_id"] = _to_int(env[CHAIN_ID_ENV_VAR], CHAIN_ID_ENV_VAR)
    if env.get(VERIFYING_CONTRACT_ENV_VAR):
        overrides["verifying_contract"] = env[VERIFYING_CONTRACT_ENV_VAR]

    return replace(config, **overrides) if overrides else config


__all__ = [
    "ConfigError",
    "RegistryConfig",
    "load_config",
]
