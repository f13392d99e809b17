"""Tests for the centralized exception hierarchy."""

import pytest

from zkjoin.exceptions import (
    AttestationError,
    AuthorizationDeniedError,
    CapacityExceededError,
    ChallengeError,
    ChallengeExpiredError,
    ChallengeNotFoundError,
    ChallengeReplayError,
    ConfigurationError,
    IdentityError,
    MalformedMessageError,
    ProofEngineError,
    ProofError,
    ProofGenerationError,
    ProofInvalidError,
    ProtocolError,
    TransportClosedError,
    TransportError,
    TransportTimeoutError,
    ZkJoinError,
)


class TestExceptionHierarchy:
    """Verify the exception class hierarchy is correct."""

    def test_base_exception_exists(self):
        assert issubclass(ZkJoinError, Exception)

    @pytest.mark.parametrize(
        "exc_cls",
        [
            ConfigurationError,
            IdentityError,
            AuthorizationDeniedError,
            ChallengeError,
            ProofError,
            TransportError,
            ProtocolError,
            AttestationError,
        ],
    )
    def test_direct_subclasses_of_zkjoin_error(self, exc_cls):
        assert exc_cls.__bases__ == (ZkJoinError,)

    @pytest.mark.parametrize(
        "exc_cls",
        [CapacityExceededError, ChallengeNotFoundError, ChallengeReplayError],
    )
    def test_ledger_errors(self, exc_cls):
        assert issubclass(exc_cls, ChallengeError)

    def test_expired_is_a_not_found(self):
        """Callers that only care about "no usable challenge" catch one type."""
        assert issubclass(ChallengeExpiredError, ChallengeNotFoundError)
        assert not issubclass(ChallengeReplayError, ChallengeNotFoundError)

    @pytest.mark.parametrize(
        "exc_cls", [ProofInvalidError, ProofGenerationError, ProofEngineError]
    )
    def test_proof_errors(self, exc_cls):
        assert exc_cls.__bases__ == (ProofError,)

    @pytest.mark.parametrize(
        "exc_cls", [TransportTimeoutError, TransportClosedError, MalformedMessageError]
    )
    def test_transport_errors(self, exc_cls):
        assert exc_cls.__bases__ == (TransportError,)

    def test_infrastructure_separate_from_denial(self):
        assert not issubclass(TransportError, AuthorizationDeniedError)
        assert not issubclass(ProofEngineError, ChallengeError)

    def test_catch_all(self):
        with pytest.raises(ZkJoinError):
            raise ChallengeExpiredError("late")
