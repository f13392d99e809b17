# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Configuration

Declarative Verifier-side configuration with YAML support. Secrets never
live here: the Prover secret comes from the environment or a file through
``load_secret``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from zkjoin.exceptions import ConfigurationError
from zkjoin.identity import BINDING_SIZE
from zkjoin.messages import GROUP_NAME_CAPACITY
from zkjoin.transport.base import RelayConfig
from zkjoin.transport.relay import InMemoryRelay
from zkjoin.trust.ledger import ChallengeLedger
from zkjoin.trust.nonce import create_nonce_generator
from zkjoin.trust.store import AclTrustStore, IssuerRegistry, TrustStore

logger = logging.getLogger(__name__)

SECRET_ENV_VAR = "ZKJOIN_PROVER_SECRET"


def _check_hex_key(value: str) -> str:
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"not a hex string: {value!r}") from None
    if len(raw) != BINDING_SIZE:
        raise ValueError(f"expected {BINDING_SIZE} bytes, got {len(raw)}")
    return value.lower()


def _check_group(name: str) -> str:
    if not name or len(name.encode("utf-8")) >= GROUP_NAME_CAPACITY:
        raise ValueError(f"group name must be 1-{GROUP_NAME_CAPACITY - 1} bytes: {name!r}")
    return name


class RelaySection(BaseModel):
    capacity: int = Field(default=1, gt=0, description="Messages buffered per channel")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Receive timeout")
    max_payload_bytes: int = Field(default=8192, gt=0, description="Largest payload accepted")


class LedgerSection(BaseModel):
    capacity: int = Field(default=ChallengeLedger.DEFAULT_CAPACITY, gt=0)
    ttl_seconds: int = Field(default=ChallengeLedger.DEFAULT_TTL_SECONDS, gt=0)
    max_tombstones: int = Field(default=ChallengeLedger.DEFAULT_MAX_TOMBSTONES, gt=0)


class NonceSection(BaseModel):
    generator: Literal["secure", "lcg"] = Field(
        default="secure", description="Nonce source; lcg is for compatibility testing only"
    )


class ZkJoinConfig(BaseModel):
    """Everything a Verifier needs besides its proof engine.

    Exactly one of ``acl`` and ``issuers`` selects the trust store variant.
    """

    relay: RelaySection = Field(default_factory=RelaySection)
    ledger: LedgerSection = Field(default_factory=LedgerSection)
    nonce: NonceSection = Field(default_factory=NonceSection)
    acl: dict[str, list[str]] = Field(
        default_factory=dict, description="Group name to allowed hex identities"
    )
    issuers: dict[str, str] = Field(
        default_factory=dict, description="Group name to trusted hex issuer key"
    )
    revoked_issuers: list[str] = Field(default_factory=list)

    @field_validator("acl")
    @classmethod
    def _validate_acl(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {
            _check_group(group): [_check_hex_key(member) for member in members]
            for group, members in v.items()
        }

    @field_validator("issuers")
    @classmethod
    def _validate_issuers(cls, v: dict[str, str]) -> dict[str, str]:
        return {_check_group(group): _check_hex_key(key) for group, key in v.items()}

    @field_validator("revoked_issuers")
    @classmethod
    def _validate_revoked(cls, v: list[str]) -> list[str]:
        return [_check_hex_key(key) for key in v]

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ZkJoinConfig":
        """Load a configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is unreadable or invalid.
        """
        path = Path(path)
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"config {path} must be a mapping")
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid config {path}: {exc}") from exc

    def to_yaml(self, path: str | Path) -> None:
        """Save this configuration to a YAML file."""
        path = Path(path)
        data = self.model_dump(mode="json")
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def build_trust_store(self) -> TrustStore:
        """Build the configured trust store variant.

        Raises:
            ConfigurationError: If both or neither of ``acl`` and
                ``issuers`` are set.
        """
        if self.acl and self.issuers:
            raise ConfigurationError("configure either acl or issuers, not both")
        if self.acl:
            return AclTrustStore(self.acl)
        if self.issuers:
            return IssuerRegistry(self.issuers, revoked=self.revoked_issuers)
        raise ConfigurationError("no trust store configured: set acl or issuers")

    def build_ledger(self) -> ChallengeLedger:
        return ChallengeLedger(
            capacity=self.ledger.capacity,
            ttl_seconds=self.ledger.ttl_seconds,
            nonce_generator=create_nonce_generator(self.nonce.generator),
            max_tombstones=self.ledger.max_tombstones,
        )

    def build_relay(self) -> InMemoryRelay:
        return InMemoryRelay(
            RelayConfig(
                capacity=self.relay.capacity,
                timeout_seconds=self.relay.timeout_seconds,
                max_payload_bytes=self.relay.max_payload_bytes,
            )
        )


def load_secret(env: str = SECRET_ENV_VAR, path: Optional[str | Path] = None) -> bytes:
    """Read the Prover secret from a file, or else from an environment variable.

    A trailing newline in the file is ignored.

    Raises:
        ConfigurationError: If no non-empty secret is found.
    """
    if path is not None:
        try:
            secret = Path(path).read_bytes().rstrip(b"\r\n")
        except OSError as exc:
            raise ConfigurationError(f"cannot read secret file {path}: {exc}") from exc
        source = str(path)
    else:
        secret = os.environ.get(env, "").encode("utf-8")
        source = f"${env}"
    if not secret:
        raise ConfigurationError(f"no prover secret in {source}")
    logger.debug("Loaded prover secret from %s", source)
    return secret


__all__ = [
    "SECRET_ENV_VAR",
    "RelaySection",
    "LedgerSection",
    "NonceSection",
    "ZkJoinConfig",
    "load_secret",
]
