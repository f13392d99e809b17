"""
Issuer Keys

Ed25519 key pairs for credential issuers, plus signature helpers. Issuer
keys are provisioned from configuration (hex) or from an integer seed for
reproducible test issuers; nothing is hardcoded.
"""

from __future__ import annotations

import hashlib
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from zkjoin.exceptions import IdentityError
from zkjoin.identity import U64_MAX, Identity

logger = logging.getLogger(__name__)

_SEED_DOMAIN = b"zkjoin-issuer"


class IssuerKeyPair:
    """An issuer's Ed25519 signing key.

    Example:
        >>> issuer = IssuerKeyPair.from_seed(12345)
        >>> sig = issuer.sign(b"payload")
        >>> verify_ed25519(issuer.public_bytes, sig, b"payload")
        True
    """

    def __init__(self, private_key: ed25519.Ed25519PrivateKey) -> None:
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "IssuerKeyPair":
        return cls(ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: int) -> "IssuerKeyPair":
        """Derive a deterministic key pair from a 64-bit seed."""
        if not 0 <= seed <= U64_MAX:
            raise IdentityError(f"seed must fit in 64 bits, got: {seed}")
        material = hashlib.sha256(_SEED_DOMAIN + seed.to_bytes(8, "little")).digest()
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(material))

    @classmethod
    def from_private_hex(cls, private_hex: str) -> "IssuerKeyPair":
        try:
            raw = bytes.fromhex(private_hex)
            return cls(ed25519.Ed25519PrivateKey.from_private_bytes(raw))
        except ValueError as exc:
            raise IdentityError(f"invalid Ed25519 private key: {exc}") from exc

    @property
    def public_bytes(self) -> bytes:
        return self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def public_hex(self) -> str:
        return self.public_bytes.hex()

    @property
    def private_hex(self) -> str:
        raw = self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return raw.hex()

    @property
    def identity(self) -> Identity:
        """The public binding challenges for this issuer are tied to."""
        return Identity.issuer(self.public_bytes)

    def sign(self, data: bytes) -> bytes:
        signature = self._private_key.sign(data)
        logger.debug("Issuer %s... signed %d bytes", self.public_hex[:16], len(data))
        return signature


def verify_ed25519(public_key: bytes, signature: bytes, data: bytes) -> bool:
    """Check an Ed25519 signature. Malformed keys or signatures are ``False``."""
    try:
        key = ed25519.Ed25519PublicKey.from_public_bytes(public_key)
        key.verify(signature, data)
        return True
    except (InvalidSignature, ValueError):
        return False


__all__ = ["IssuerKeyPair", "verify_ed25519"]
