# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for ZkJoin.

All ZkJoin exceptions inherit from ZkJoinError. Authentication failures
(denied, replayed, invalid) and infrastructure failures (proof engine,
transport) live on separate branches so callers can never confuse one
for the other.
"""


class ZkJoinError(Exception):
    """Base exception for all ZkJoin errors."""


class ConfigurationError(ZkJoinError):
    """Invalid or inconsistent configuration."""


class IdentityError(ZkJoinError):
    """Errors related to identities, issuer keys and credentials."""


class AuthorizationDeniedError(ZkJoinError):
    """The trust policy does not admit the requester."""


class ChallengeError(ZkJoinError):
    """Errors raised by the challenge ledger."""


class CapacityExceededError(ChallengeError):
    """Every ledger slot holds an outstanding challenge."""


class ChallengeNotFoundError(ChallengeError):
    """No active challenge matches the nonce and binding."""


class ChallengeExpiredError(ChallengeNotFoundError):
    """The matching challenge outlived its time-to-live."""


class ChallengeReplayError(ChallengeError):
    """The nonce was already consumed once."""


class ProofError(ZkJoinError):
    """Errors related to proof generation and verification."""


class ProofInvalidError(ProofError):
    """A proof was rejected by the proof engine."""


class ProofGenerationError(ProofError):
    """The private material does not satisfy the proven predicate."""


class ProofEngineError(ProofError):
    """The proof engine itself failed (setup, internal error)."""


class TransportError(ZkJoinError):
    """Errors raised by the relay transport."""


class TransportTimeoutError(TransportError):
    """No message arrived on a channel within the allowed time."""


class TransportClosedError(TransportError):
    """The channel was closed before a message arrived."""


class MalformedMessageError(TransportError):
    """A payload could not be encoded or decoded."""


class ProtocolError(ZkJoinError):
    """A principal was driven out of order (e.g. run twice)."""


class AttestationError(ZkJoinError):
    """Errors producing or checking attestation reports."""


__all__ = [
    "ZkJoinError",
    "ConfigurationError",
    "IdentityError",
    "AuthorizationDeniedError",
    "ChallengeError",
    "CapacityExceededError",
    "ChallengeNotFoundError",
    "ChallengeExpiredError",
    "ChallengeReplayError",
    "ProofError",
    "ProofInvalidError",
    "ProofGenerationError",
    "ProofEngineError",
    "TransportError",
    "TransportTimeoutError",
    "TransportClosedError",
    "MalformedMessageError",
    "ProtocolError",
    "AttestationError",
]
