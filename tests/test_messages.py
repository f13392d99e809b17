"""Tests for wire messages and the fixed-layout codec."""

import struct

import pytest
from pydantic import ValidationError

from zkjoin.exceptions import MalformedMessageError
from zkjoin.identity import Identity, derive_public_id
from zkjoin.messages import (
    MAX_PROOF_BYTES,
    Challenge,
    JoinRequest,
    JoinResult,
    Outcome,
    ProofSubmission,
    decode,
    encode,
    message_size,
)

from conftest import ALICE_SECRET

ALICE = derive_public_id(ALICE_SECRET)


class TestLayouts:
    """Encoded sizes are fixed per message type."""

    def test_sizes(self):
        assert message_size(JoinRequest) == 66
        assert message_size(Challenge) == 50
        assert message_size(ProofSubmission) == 4140
        assert message_size(JoinResult) == 130

    def test_challenge_layout(self):
        """Challenge is tag, LE u64 nonce, kind, binding, LE u64 issued_at."""
        data = encode(Challenge(nonce=0x0102030405060708, binding=ALICE, issued_at=42))
        assert data[0] == 0x02
        assert data[1:9] == bytes([8, 7, 6, 5, 4, 3, 2, 1])
        assert data[9] == 1
        assert data[10:42] == ALICE.value
        assert struct.unpack("<Q", data[42:50])[0] == 42

    def test_request_without_identity(self):
        """Credential-variant requests carry a zero binding."""
        data = encode(JoinRequest(group_name="partners"))
        assert data[1] == 0
        assert data[2:34] == b"\x00" * 32
        assert decode(JoinRequest, data).identity is None

    def test_examples_survive(self):
        """A representative message of each type decodes to itself."""
        messages = [
            JoinRequest(group_name="GroupX", identity=ALICE),
            Challenge(nonce=2**64 - 1, binding=Identity.issuer(b"\x11" * 32), issued_at=0),
            ProofSubmission(nonce=5, proof=b"\xab" * MAX_PROOF_BYTES, binding=ALICE),
            JoinResult.invalid("proof failed"),
        ]
        for message in messages:
            assert decode(type(message), encode(message)) == message


class TestRejection:
    """Malformed input raises MalformedMessageError, never truncates."""

    def test_wrong_length(self):
        data = encode(JoinResult.valid("GroupX"))
        with pytest.raises(MalformedMessageError, match="must be 130 bytes"):
            decode(JoinResult, data[:-1])
        with pytest.raises(MalformedMessageError):
            decode(JoinResult, data + b"\x00")

    def test_wrong_tag(self):
        data = bytearray(encode(JoinResult.valid("GroupX")))
        data[0] = 0x03
        with pytest.raises(MalformedMessageError, match="type tag"):
            decode(JoinResult, bytes(data))

    def test_unknown_outcome_code(self):
        data = bytearray(encode(JoinResult.valid("GroupX")))
        data[1] = 9
        with pytest.raises(MalformedMessageError, match="unknown outcome"):
            decode(JoinResult, bytes(data))

    def test_unknown_binding_kind(self):
        data = bytearray(encode(JoinRequest(group_name="GroupX", identity=ALICE)))
        data[1] = 7
        with pytest.raises(MalformedMessageError, match="unknown binding kind"):
            decode(JoinRequest, bytes(data))

    def test_garbage_after_terminator(self):
        data = bytearray(encode(JoinRequest(group_name="GroupX", identity=ALICE)))
        data[-1] = ord("z")
        with pytest.raises(MalformedMessageError, match="after its terminator"):
            decode(JoinRequest, bytes(data))

    def test_unterminated_string(self):
        data = bytearray(encode(JoinResult.valid("GroupX")))
        data[2:] = b"A" * 128
        with pytest.raises(MalformedMessageError, match="NUL-terminated"):
            decode(JoinResult, bytes(data))

    def test_invalid_utf8(self):
        data = bytearray(encode(JoinResult.valid("GroupX")))
        data[2] = 0xFF
        with pytest.raises(MalformedMessageError, match="UTF-8"):
            decode(JoinResult, bytes(data))

    def test_challenge_without_binding(self):
        data = bytearray(encode(Challenge(nonce=1, binding=ALICE, issued_at=1)))
        data[9] = 0
        data[10:42] = b"\x00" * 32
        with pytest.raises(MalformedMessageError, match="no binding"):
            decode(Challenge, bytes(data))

    def test_proof_length_out_of_range(self):
        data = bytearray(encode(ProofSubmission(nonce=1, proof=b"\x01")))
        data[42:44] = struct.pack("<H", MAX_PROOF_BYTES + 1)
        with pytest.raises(MalformedMessageError, match="out of range"):
            decode(ProofSubmission, bytes(data))

    def test_proof_trailing_bytes(self):
        data = bytearray(encode(ProofSubmission(nonce=1, proof=b"\x01")))
        data[-1] = 1
        with pytest.raises(MalformedMessageError, match="past its declared length"):
            decode(ProofSubmission, bytes(data))

    def test_not_bytes(self):
        with pytest.raises(MalformedMessageError, match="expected bytes"):
            decode(JoinResult, "not bytes")


class TestValidation:
    """Field limits are enforced at construction."""

    def test_group_name_capacity(self):
        """Group names leave room for the terminator."""
        JoinRequest(group_name="g" * 31)
        with pytest.raises(ValidationError):
            JoinRequest(group_name="g" * 32)

    def test_empty_group_name(self):
        with pytest.raises(ValidationError):
            JoinRequest(group_name="")

    def test_detail_capacity(self):
        with pytest.raises(ValidationError):
            JoinResult.invalid("x" * 128)

    def test_oversize_proof(self):
        with pytest.raises(ValidationError):
            ProofSubmission(nonce=1, proof=b"\x00" * (MAX_PROOF_BYTES + 1))

    def test_empty_proof(self):
        with pytest.raises(ValidationError):
            ProofSubmission(nonce=1, proof=b"")

    def test_nonce_range(self):
        with pytest.raises(ValidationError):
            Challenge(nonce=2**64, binding=ALICE, issued_at=0)

    def test_result_helpers(self):
        assert JoinResult.valid("GroupX").is_valid
        assert JoinResult.invalid("no").outcome == Outcome.INVALID
