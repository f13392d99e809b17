"""Tests for the challenge ledger."""

import threading

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from zkjoin.exceptions import (
    CapacityExceededError,
    ChallengeExpiredError,
    ChallengeNotFoundError,
    ChallengeReplayError,
)
from zkjoin.identity import Identity, derive_public_id
from zkjoin.trust.ledger import ChallengeLedger
from zkjoin.trust.nonce import LcgNonceGenerator, NonceGenerator, SecureNonceGenerator

from conftest import ALICE_SECRET, MALLORY_SECRET, FakeClock

ALICE = derive_public_id(ALICE_SECRET)
MALLORY = derive_public_id(MALLORY_SECRET)


class ScriptedNonces(NonceGenerator):
    """Yields a fixed sequence of raw draws."""

    def __init__(self, values):
        super().__init__()
        self._values = iter(values)

    def _draw(self) -> int:
        return next(self._values)


class TestIssue:
    """Tests for ChallengeLedger.issue."""

    def test_challenge_carries_binding_and_time(self, clock):
        """Issued challenge is bound to the identity at the current second."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        assert challenge.binding == ALICE
        assert challenge.issued_at == int(clock.now)
        assert ledger.outstanding() == 1

    def test_capacity_exceeded(self, clock):
        """Issuing past capacity raises CapacityExceededError."""
        ledger = ChallengeLedger(capacity=2, clock=clock)
        ledger.issue(ALICE)
        ledger.issue(ALICE)
        with pytest.raises(CapacityExceededError):
            ledger.issue(ALICE)

    def test_consume_frees_slot(self, clock):
        """A consumed challenge releases its slot."""
        ledger = ChallengeLedger(capacity=1, clock=clock)
        challenge = ledger.issue(ALICE)
        ledger.consume(challenge.nonce, ALICE)
        assert ledger.outstanding() == 0
        ledger.issue(ALICE)

    def test_expired_slots_are_reclaimed(self, clock):
        """Issue purges expired challenges before checking capacity."""
        ledger = ChallengeLedger(capacity=1, ttl_seconds=10, clock=clock)
        ledger.issue(ALICE)
        clock.advance(11)
        ledger.issue(ALICE)
        assert ledger.outstanding() == 1

    def test_tombstoned_nonce_is_not_reissued(self, clock):
        """A consumed nonce is never handed out again."""
        ledger = ChallengeLedger(clock=clock, nonce_generator=ScriptedNonces([7, 7, 9]))
        first = ledger.issue(ALICE)
        ledger.consume(first.nonce, ALICE)
        second = ledger.issue(ALICE)
        assert (first.nonce, second.nonce) == (7, 9)

    def test_injected_generator_is_used(self, clock):
        """A generator that has drawn nothing yet is still the one used."""
        source = ScriptedNonces([41])
        ledger = ChallengeLedger(clock=clock, nonce_generator=source)
        assert ledger._nonces is source
        assert ledger.issue(ALICE).nonce == 41

    def test_lcg_generator_is_kept(self, clock):
        ledger = ChallengeLedger(clock=clock, nonce_generator=LcgNonceGenerator(seed=1))
        assert isinstance(ledger._nonces, LcgNonceGenerator)

    def test_default_generator_is_secure(self):
        assert isinstance(ChallengeLedger()._nonces, SecureNonceGenerator)

    def test_invalid_parameters(self):
        """Non-positive sizes are rejected."""
        with pytest.raises(ValueError, match="capacity must be positive"):
            ChallengeLedger(capacity=0)
        with pytest.raises(ValueError, match="ttl_seconds must be positive"):
            ChallengeLedger(ttl_seconds=0)
        with pytest.raises(ValueError, match="max_tombstones must be positive"):
            ChallengeLedger(max_tombstones=0)


class TestConsume:
    """Tests for single-use consumption."""

    def test_consume_once(self, clock):
        """First consumption succeeds and marks the record used."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        record = ledger.consume(challenge.nonce, ALICE)
        assert record.used is True
        assert record.active is False
        assert ledger.is_used(challenge.nonce)

    def test_second_consume_is_replay(self, clock):
        """Second consumption of the same nonce raises ChallengeReplayError."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        ledger.consume(challenge.nonce, ALICE)
        with pytest.raises(ChallengeReplayError):
            ledger.consume(challenge.nonce, ALICE)

    def test_replay_reported_for_any_binding(self, clock):
        """A consumed nonce is a replay whichever binding presents it."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        ledger.consume(challenge.nonce, ALICE)
        with pytest.raises(ChallengeReplayError):
            ledger.consume(challenge.nonce, MALLORY)

    def test_wrong_binding_not_found(self, clock):
        """A nonce issued for Alice cannot be consumed for Mallory."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        with pytest.raises(ChallengeNotFoundError):
            ledger.consume(challenge.nonce, MALLORY)
        assert ledger.consume(challenge.nonce, ALICE).used

    def test_same_bytes_different_kind_not_found(self, clock):
        """Binding comparison includes the binding kind."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        with pytest.raises(ChallengeNotFoundError):
            ledger.consume(challenge.nonce, Identity.issuer(ALICE.value))

    def test_unknown_nonce(self, clock):
        """A nonce never issued is not found."""
        ledger = ChallengeLedger(clock=clock, nonce_generator=ScriptedNonces([1]))
        ledger.issue(ALICE)
        with pytest.raises(ChallengeNotFoundError):
            ledger.consume(2, ALICE)

    def test_expired(self, clock):
        """Consuming after the TTL raises ChallengeExpiredError."""
        ledger = ChallengeLedger(ttl_seconds=30, clock=clock)
        challenge = ledger.issue(ALICE)
        clock.advance(31)
        with pytest.raises(ChallengeExpiredError):
            ledger.consume(challenge.nonce, ALICE)
        assert ledger.outstanding() == 0

    def test_expired_is_not_found(self):
        """ChallengeExpiredError is a ChallengeNotFoundError."""
        assert issubclass(ChallengeExpiredError, ChallengeNotFoundError)

    def test_consume_at_ttl_boundary(self):
        """A challenge is still redeemable exactly at its expiry second."""
        clock = FakeClock(now=1000)
        ledger = ChallengeLedger(ttl_seconds=30, clock=clock)
        challenge = ledger.issue(ALICE)
        clock.advance(30)
        assert ledger.consume(challenge.nonce, ALICE).used

    def test_tombstones_are_bounded(self, clock):
        """The oldest tombstones are forgotten past max_tombstones."""
        ledger = ChallengeLedger(
            clock=clock, max_tombstones=2, nonce_generator=ScriptedNonces([1, 2, 3])
        )
        for _ in range(3):
            ledger.consume(ledger.issue(ALICE).nonce, ALICE)
        assert not ledger.is_used(1)
        assert ledger.is_used(2) and ledger.is_used(3)
        with pytest.raises(ChallengeNotFoundError):
            ledger.consume(1, ALICE)

    def test_purge_expired(self, clock):
        """purge_expired reports how many slots it freed."""
        ledger = ChallengeLedger(ttl_seconds=5, clock=clock)
        ledger.issue(ALICE)
        ledger.issue(MALLORY)
        clock.advance(6)
        assert ledger.purge_expired() == 2
        assert ledger.outstanding() == 0


class TestRetire:
    """Tests for withdrawing a challenge without redeeming it."""

    def test_retire_frees_slot(self, clock):
        ledger = ChallengeLedger(capacity=1, clock=clock)
        challenge = ledger.issue(ALICE)
        assert ledger.retire(challenge.nonce)
        assert ledger.outstanding() == 0
        ledger.issue(ALICE)

    def test_retired_nonce_is_a_replay(self, clock):
        """A proof arriving after retirement is reported as a replay."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        ledger.retire(challenge.nonce)
        assert ledger.is_used(challenge.nonce)
        with pytest.raises(ChallengeReplayError):
            ledger.consume(challenge.nonce, ALICE)

    def test_retire_unknown_nonce(self, clock):
        ledger = ChallengeLedger(clock=clock, nonce_generator=ScriptedNonces([1]))
        ledger.issue(ALICE)
        assert not ledger.retire(2)
        assert ledger.outstanding() == 1

    def test_retire_after_consume_is_noop(self, clock):
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        ledger.consume(challenge.nonce, ALICE)
        assert not ledger.retire(challenge.nonce)


class TestConcurrentConsume:
    """Only one of many racing consumers wins."""

    def test_exactly_one_winner(self, clock):
        """Concurrent consumers of one nonce produce one success."""
        ledger = ChallengeLedger(clock=clock)
        challenge = ledger.issue(ALICE)
        wins = []
        errors = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                ledger.consume(challenge.nonce, ALICE)
                wins.append(1)
            except ChallengeReplayError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(wins) == 1
        assert len(errors) == 7


# ---------------------------------------------------------------------------
# Property: outstanding nonces are pairwise distinct
# ---------------------------------------------------------------------------

class TestNonceUniqueness:
    """Nonces handed out by one ledger never repeat."""

    @given(count=st.integers(min_value=1, max_value=64))
    @settings(max_examples=50)
    def test_outstanding_nonces_distinct(self, count: int):
        """Every issued challenge has a distinct nonce."""
        ledger = ChallengeLedger(capacity=64, clock=FakeClock())
        nonces = [ledger.issue(ALICE).nonce for _ in range(count)]
        assert len(set(nonces)) == count

    @given(draws=st.lists(st.integers(min_value=0, max_value=3), min_size=40, max_size=40))
    @settings(max_examples=50)
    def test_colliding_source_still_unique(self, draws):
        """A source that repeats values still yields distinct nonces."""
        # fallback draws guarantee the generator never runs dry
        source = ScriptedNonces(draws + list(range(100, 200)))
        ledger = ChallengeLedger(capacity=8, clock=FakeClock(), nonce_generator=source)
        nonces = [ledger.issue(ALICE).nonce for _ in range(8)]
        assert len(set(nonces)) == 8
