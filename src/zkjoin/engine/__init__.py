"""
Proof Engine Adapter

The narrow boundary through which the protocol asks for proofs and
verdicts. ``DigestProofEngine`` is the bundled reference backend.
"""

from .base import ProofEngine
from .digest import DigestProofEngine
from .keys import IssuerKeyPair, verify_ed25519

__all__ = [
    "ProofEngine",
    "DigestProofEngine",
    "IssuerKeyPair",
    "verify_ed25519",
]
