# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Identities and Verifiable Credentials

Public handles that may cross the trust boundary (``Identity``) and the
private credential a Prover keeps to itself (``VerifiableCredential``).
"""

from __future__ import annotations

import hashlib
import hmac
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

BINDING_SIZE = 32
U64_MAX = 2**64 - 1


class BindingKind(str, Enum):
    """What a public binding refers to."""

    ACL_ID = "acl_id"
    ISSUER_KEY = "issuer_key"


def _coerce_bytes(value: Any) -> Any:
    """Accept hex strings wherever raw bytes are expected."""
    if isinstance(value, str):
        try:
            return bytes.fromhex(value)
        except ValueError as exc:
            raise ValueError(f"not a hex string: {value!r}") from exc
    return value


class Identity(BaseModel):
    """A principal's public-facing handle.

    Either the hash of a Prover's secret (ACL variant) or the raw Ed25519
    public key of a credential issuer (registry variant). Immutable.

    Attributes:
        kind: Which of the two variants this is.
        value: 32 raw bytes.
    """

    model_config = ConfigDict(frozen=True)

    kind: BindingKind
    value: bytes = Field(..., description="32-byte identity or issuer key")

    @field_validator("value", mode="before")
    @classmethod
    def _parse_value(cls, v: Any) -> Any:
        return _coerce_bytes(v)

    @field_validator("value")
    @classmethod
    def _check_length(cls, v: bytes) -> bytes:
        if len(v) != BINDING_SIZE:
            raise ValueError(f"identity must be {BINDING_SIZE} bytes, got {len(v)}")
        return v

    @field_serializer("value", when_used="json")
    def _serialize_value(self, v: bytes) -> str:
        return v.hex()

    @classmethod
    def acl(cls, value: bytes | str) -> "Identity":
        """Build an ACL identity from bytes or hex."""
        return cls(kind=BindingKind.ACL_ID, value=value)

    @classmethod
    def issuer(cls, value: bytes | str) -> "Identity":
        """Build an issuer-key binding from bytes or hex."""
        return cls(kind=BindingKind.ISSUER_KEY, value=value)

    @property
    def hex(self) -> str:
        return self.value.hex()

    def short(self) -> str:
        """Truncated form for log lines."""
        return f"{self.kind.value}:{self.hex[:16]}..."

    def matches(self, other: "Identity") -> bool:
        """Constant-time equality on kind and value."""
        if self.kind != other.kind:
            return False
        return hmac.compare_digest(self.value, other.value)


def derive_public_id(secret: bytes) -> Identity:
    """Derive the ACL identity ``SHA-256(secret)``. One-way and deterministic."""
    if not secret:
        raise ValueError("secret must not be empty")
    return Identity.acl(hashlib.sha256(secret).digest())


class VerifiableCredential(BaseModel):
    """A signed assertion about a holder, kept private by the Prover.

    Attributes:
        holder_id: Holder handle (e.g. ``alice@company.com``).
        issuer: Human-readable issuer label.
        issue_date: Unix seconds from which the credential is valid.
        expiry_date: Unix seconds after which it is no longer valid.
        claims: Ordered key/value claims covered by the signature.
        signature: Issuer's Ed25519 signature over ``message_hash()``.
    """

    holder_id: str = Field(..., min_length=1, max_length=128)
    issuer: str = Field(..., min_length=1, max_length=64)
    issue_date: int = Field(..., ge=0, le=U64_MAX)
    expiry_date: int = Field(..., ge=0, le=U64_MAX)
    claims: dict[str, str] = Field(default_factory=dict)
    signature: bytes = Field(default=b"", description="Ed25519 signature (64 bytes)")

    @field_validator("signature", mode="before")
    @classmethod
    def _parse_signature(cls, v: Any) -> Any:
        return _coerce_bytes(v)

    @field_serializer("signature", when_used="json")
    def _serialize_signature(self, v: bytes) -> str:
        return v.hex()

    def message_hash(self) -> bytes:
        """Digest the issuer signs: holder, issuer, dates (LE u64), then claims.

        Known weakness: the variable-length fields are concatenated without
        length prefixes or separators, so ``("ab", "c")`` and ``("a", "bc")``
        as holder and issuer (or as a claim key and value) hash the same.
        Issuers must not sign two credentials whose fields differ only in
        where one string ends and the next begins.
        """
        hasher = hashlib.sha256()
        hasher.update(self.holder_id.encode())
        hasher.update(self.issuer.encode())
        hasher.update(self.issue_date.to_bytes(8, "little"))
        hasher.update(self.expiry_date.to_bytes(8, "little"))
        for key, value in self.claims.items():
            hasher.update(key.encode())
            hasher.update(value.encode())
        return hasher.digest()

    def is_active_at(self, timestamp: int) -> bool:
        """True when ``issue_date <= timestamp <= expiry_date``."""
        return self.issue_date <= timestamp <= self.expiry_date

    @property
    def is_signed(self) -> bool:
        return len(self.signature) == 64


__all__ = [
    "BINDING_SIZE",
    "BindingKind",
    "Identity",
    "VerifiableCredential",
    "derive_public_id",
]
