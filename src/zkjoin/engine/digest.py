# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Digest Proof Engine

Reference engine built from SHA-256 commitments. It enforces the same
predicates a circuit would (secret hashes to the identity; credential is
signed by the issuer and active) at generation time and binds every proof to
its public inputs and nonce, but it is NOT zero-knowledge sound: anyone who
knows the public inputs can produce a passing proof. Swap in a real proving
backend behind ``ProofEngine`` for anything beyond exercising the protocol.

Proof layout: ``version (1) || commitment (32) || tag (32)``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import struct

from zkjoin.engine.base import ProofEngine
from zkjoin.exceptions import ProofGenerationError
from zkjoin.identity import BindingKind, Identity, VerifiableCredential, derive_public_id

logger = logging.getLogger(__name__)

PROOF_VERSION = 1
_PROOF = struct.Struct("<B32s32s")
_MEMBERSHIP_DOMAIN = b"zkjoin/membership/v1"
_CREDENTIAL_DOMAIN = b"zkjoin/credential/v1"


def _u64(value: int) -> bytes:
    return value.to_bytes(8, "little")


def _digest(*parts: bytes) -> bytes:
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(part)
    return hasher.digest()


class DigestProofEngine(ProofEngine):
    """Hash-commitment stand-in for a zk-SNARK backend."""

    name = "digest"

    proof_size = _PROOF.size

    def generate_membership_proof(self, secret: bytes, binding: Identity, nonce: int) -> bytes:
        self._require_ready()
        if binding.kind != BindingKind.ACL_ID:
            raise ProofGenerationError("membership proofs bind to an ACL identity")
        if not derive_public_id(secret).matches(binding):
            raise ProofGenerationError("secret does not hash to the public identity")

        blinding = secrets.token_bytes(16)
        commitment = _digest(_MEMBERSHIP_DOMAIN, blinding, secret, _u64(nonce))
        tag = self._membership_tag(binding, nonce, commitment)
        logger.debug("Generated membership proof for nonce %d", nonce)
        return _PROOF.pack(PROOF_VERSION, commitment, tag)

    def verify_membership_proof(self, proof: bytes, binding: Identity, nonce: int) -> bool:
        self._require_ready()
        if binding.kind != BindingKind.ACL_ID:
            return False
        parsed = self._parse(proof)
        if parsed is None:
            return False
        commitment, tag = parsed
        return hmac.compare_digest(tag, self._membership_tag(binding, nonce, commitment))

    def generate_credential_proof(
        self,
        credential: VerifiableCredential,
        issuer: Identity,
        current_time: int,
        nonce: int,
    ) -> bytes:
        self._require_ready()
        if not self.verify_credential_signature(credential, issuer):
            raise ProofGenerationError("credential is not signed by the expected issuer")
        if current_time < credential.issue_date:
            raise ProofGenerationError("credential is not yet active")
        if current_time > credential.expiry_date:
            raise ProofGenerationError("credential has expired")

        blinding = secrets.token_bytes(16)
        commitment = _digest(
            _CREDENTIAL_DOMAIN,
            blinding,
            credential.message_hash(),
            credential.signature,
            _u64(nonce),
        )
        tag = self._credential_tag(issuer, current_time, nonce, commitment)
        logger.debug("Generated credential proof for nonce %d", nonce)
        return _PROOF.pack(PROOF_VERSION, commitment, tag)

    def verify_credential_proof(
        self, proof: bytes, issuer: Identity, current_time: int, nonce: int
    ) -> bool:
        self._require_ready()
        if issuer.kind != BindingKind.ISSUER_KEY:
            return False
        parsed = self._parse(proof)
        if parsed is None:
            return False
        commitment, tag = parsed
        expected = self._credential_tag(issuer, current_time, nonce, commitment)
        return hmac.compare_digest(tag, expected)

    @staticmethod
    def _membership_tag(binding: Identity, nonce: int, commitment: bytes) -> bytes:
        return _digest(_MEMBERSHIP_DOMAIN, binding.value, _u64(nonce), commitment)

    @staticmethod
    def _credential_tag(
        issuer: Identity, current_time: int, nonce: int, commitment: bytes
    ) -> bytes:
        return _digest(
            _CREDENTIAL_DOMAIN,
            hashlib.sha256(issuer.value).digest(),
            _u64(nonce),
            _u64(current_time),
            commitment,
        )

    @staticmethod
    def _parse(proof: bytes) -> tuple[bytes, bytes] | None:
        if not isinstance(proof, (bytes, bytearray)) or len(proof) != _PROOF.size:
            return None
        version, commitment, tag = _PROOF.unpack(bytes(proof))
        if version != PROOF_VERSION:
            return None
        return commitment, tag


__all__ = ["DigestProofEngine", "PROOF_VERSION"]
