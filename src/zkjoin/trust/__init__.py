"""
Trust Layer

Verifier-side policy and freshness state:

- **Trust Store**: who may join which group.
- **Nonce Generator**: unpredictable 64-bit challenge values.
- **Challenge Ledger**: bounded, single-use outstanding challenges.
"""

from .ledger import ChallengeLedger, ChallengeRecord
from .nonce import (
    LcgNonceGenerator,
    NonceGenerator,
    SecureNonceGenerator,
    create_nonce_generator,
)
from .store import AclTrustStore, IssuerRegistry, TrustBinding, TrustStore

__all__ = [
    "TrustStore",
    "TrustBinding",
    "AclTrustStore",
    "IssuerRegistry",
    "NonceGenerator",
    "SecureNonceGenerator",
    "LcgNonceGenerator",
    "create_nonce_generator",
    "ChallengeLedger",
    "ChallengeRecord",
]
