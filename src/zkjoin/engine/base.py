# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Abstract proof engine interface.

The protocol treats the proof engine as an oracle: it hands over private
material on the Prover side and public inputs on the Verifier side, and gets
back opaque proof bytes or a boolean. It never looks inside a proof.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from zkjoin.engine.keys import IssuerKeyPair, verify_ed25519
from zkjoin.exceptions import ProofEngineError
from zkjoin.identity import BindingKind, Identity, VerifiableCredential, derive_public_id

logger = logging.getLogger(__name__)


class ProofEngine(ABC):
    """Contract every proof backend must implement.

    ``init()`` must be called once per principal before any proof is derived,
    generated or verified; calling it again is a no-op. Credential signing
    and signature checks are plain Ed25519 and need no proving parameters.
    """

    name = "abstract"

    def __init__(self) -> None:
        self._ready = False

    @property
    def ready(self) -> bool:
        """Whether ``init()`` has completed."""
        return self._ready

    def init(self) -> None:
        """Load proving/verification parameters.

        Raises:
            ProofEngineError: If setup fails.
        """
        if self._ready:
            return
        try:
            self._setup()
        except ProofEngineError:
            raise
        except Exception as exc:
            raise ProofEngineError(f"{self.name} engine setup failed: {exc}") from exc
        self._ready = True
        logger.info("Proof engine %s initialized", self.name)

    def _setup(self) -> None:
        """Backend-specific one-time setup."""

    def _require_ready(self) -> None:
        if not self._ready:
            raise ProofEngineError(f"{self.name} engine used before init()")

    def derive_public_identity(self, secret: bytes) -> Identity:
        """Deterministic, one-way public identity for ``secret``."""
        self._require_ready()
        return derive_public_id(secret)

    # -- membership (ACL variant) --------------------------------------------

    @abstractmethod
    def generate_membership_proof(self, secret: bytes, binding: Identity, nonce: int) -> bytes:
        """Prove knowledge of a secret hashing to ``binding``, bound to ``nonce``.

        Raises:
            ProofGenerationError: If ``secret`` does not hash to ``binding``.
            ProofEngineError: On internal failure.
        """

    @abstractmethod
    def verify_membership_proof(self, proof: bytes, binding: Identity, nonce: int) -> bool:
        """Check a membership proof against public inputs only."""

    # -- credentials (registry variant) --------------------------------------

    def sign_credential(
        self, credential: VerifiableCredential, issuer: IssuerKeyPair
    ) -> VerifiableCredential:
        """Return a copy of ``credential`` signed by ``issuer``."""
        signature = issuer.sign(credential.message_hash())
        return credential.model_copy(update={"signature": signature})

    def verify_credential_signature(
        self, credential: VerifiableCredential, issuer: Identity
    ) -> bool:
        """Whether ``credential`` carries a valid signature by ``issuer``."""
        if issuer.kind != BindingKind.ISSUER_KEY or not credential.is_signed:
            return False
        return verify_ed25519(issuer.value, credential.signature, credential.message_hash())

    @abstractmethod
    def generate_credential_proof(
        self,
        credential: VerifiableCredential,
        issuer: Identity,
        current_time: int,
        nonce: int,
    ) -> bytes:
        """Prove holding a valid credential from ``issuer`` active at ``current_time``.

        Raises:
            ProofGenerationError: If the signature does not verify under
                ``issuer`` or the credential is not active at ``current_time``.
            ProofEngineError: On internal failure.
        """

    @abstractmethod
    def verify_credential_proof(
        self, proof: bytes, issuer: Identity, current_time: int, nonce: int
    ) -> bool:
        """Check a credential proof against public inputs only."""


__all__ = ["ProofEngine"]
