# Copyright (c) Agent-Mesh Contributors. All rights reserved.
# Licensed under the MIT License.
"""Wire messages exchanged over the relay.

Each message has a fixed-size little-endian layout: string fields are
fixed-capacity and NUL-padded, integers are fixed width, and every layout
starts with a one-byte type tag. ``encode``/``decode`` are the only way
messages become bytes and back, and they reject anything oversize or
malformed with ``MalformedMessageError`` instead of truncating.
"""

from __future__ import annotations

import struct
from enum import Enum
from typing import Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from zkjoin.exceptions import MalformedMessageError
from zkjoin.identity import BINDING_SIZE, U64_MAX, BindingKind, Identity

GROUP_NAME_CAPACITY = 32
DETAIL_CAPACITY = 128
MAX_PROOF_BYTES = 4096


def _check_capacity(value: str, capacity: int, field: str) -> str:
    # one byte is reserved for the NUL terminator
    if len(value.encode("utf-8")) >= capacity:
        raise ValueError(f"{field} exceeds {capacity - 1} bytes")
    if "\x00" in value:
        raise ValueError(f"{field} must not contain NUL")
    return value


class JoinRequest(BaseModel):
    """Prover's request to enter a group.

    ``identity`` is set in the ACL variant and omitted in the credential
    variant, where the group name alone selects the trusted issuer.
    """

    model_config = ConfigDict(frozen=True)

    group_name: str = Field(..., min_length=1)
    identity: Optional[Identity] = None

    @field_validator("group_name")
    @classmethod
    def _group_name_fits(cls, v: str) -> str:
        return _check_capacity(v, GROUP_NAME_CAPACITY, "group_name")


class Challenge(BaseModel):
    """Verifier's freshness token, bound to the authorized identity or issuer."""

    model_config = ConfigDict(frozen=True)

    nonce: int = Field(..., ge=0, le=U64_MAX)
    binding: Identity
    issued_at: int = Field(..., ge=0, le=U64_MAX)


class ProofSubmission(BaseModel):
    """Prover's response: an opaque proof echoing the challenge nonce."""

    model_config = ConfigDict(frozen=True)

    nonce: int = Field(..., ge=0, le=U64_MAX)
    proof: bytes = Field(..., min_length=1, max_length=MAX_PROOF_BYTES)
    binding: Optional[Identity] = None


class Outcome(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


class JoinResult(BaseModel):
    """Terminal verdict delivered to the Prover."""

    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    detail: str = ""

    @field_validator("detail")
    @classmethod
    def _detail_fits(cls, v: str) -> str:
        return _check_capacity(v, DETAIL_CAPACITY, "detail")

    @classmethod
    def valid(cls, group_name: str) -> "JoinResult":
        return cls(outcome=Outcome.VALID, detail=group_name)

    @classmethod
    def invalid(cls, reason: str) -> "JoinResult":
        return cls(outcome=Outcome.INVALID, detail=reason)

    @property
    def is_valid(self) -> bool:
        return self.outcome == Outcome.VALID


Message = Union[JoinRequest, Challenge, ProofSubmission, JoinResult]
M = TypeVar("M", JoinRequest, Challenge, ProofSubmission, JoinResult)

# ---------------------------------------------------------------------------
# Fixed layouts
# ---------------------------------------------------------------------------

TAG_JOIN_REQUEST = 0x01
TAG_CHALLENGE = 0x02
TAG_PROOF = 0x03
TAG_RESULT = 0x04

_JOIN_REQUEST = struct.Struct(f"<BB{BINDING_SIZE}s{GROUP_NAME_CAPACITY}s")
_CHALLENGE = struct.Struct(f"<BQB{BINDING_SIZE}sQ")
_PROOF = struct.Struct(f"<BQB{BINDING_SIZE}sH{MAX_PROOF_BYTES}s")
_RESULT = struct.Struct(f"<BB{DETAIL_CAPACITY}s")

_KIND_TO_CODE = {BindingKind.ACL_ID: 1, BindingKind.ISSUER_KEY: 2}
_CODE_TO_KIND = {code: kind for kind, code in _KIND_TO_CODE.items()}
_OUTCOME_TO_CODE = {Outcome.VALID: 1, Outcome.INVALID: 2}
_CODE_TO_OUTCOME = {code: outcome for outcome, code in _OUTCOME_TO_CODE.items()}

_EMPTY_BINDING = b"\x00" * BINDING_SIZE


def message_size(message_type: Type[Message]) -> int:
    """Encoded size in bytes of a message type."""
    return _LAYOUTS[message_type][1].size


def _pack_binding(identity: Optional[Identity]) -> tuple[int, bytes]:
    if identity is None:
        return 0, _EMPTY_BINDING
    return _KIND_TO_CODE[identity.kind], identity.value


def _unpack_binding(code: int, raw: bytes) -> Optional[Identity]:
    if code == 0:
        if raw != _EMPTY_BINDING:
            raise MalformedMessageError("binding bytes present without a binding kind")
        return None
    kind = _CODE_TO_KIND.get(code)
    if kind is None:
        raise MalformedMessageError(f"unknown binding kind {code}")
    return Identity(kind=kind, value=raw)


def _unpack_str(raw: bytes, field: str) -> str:
    head, sep, tail = raw.partition(b"\x00")
    if not sep:
        raise MalformedMessageError(f"{field} is not NUL-terminated")
    if tail.strip(b"\x00"):
        raise MalformedMessageError(f"{field} has data after its terminator")
    try:
        return head.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedMessageError(f"{field} is not valid UTF-8") from exc


def _encode_join_request(msg: JoinRequest) -> bytes:
    code, value = _pack_binding(msg.identity)
    return _JOIN_REQUEST.pack(TAG_JOIN_REQUEST, code, value, msg.group_name.encode("utf-8"))


def _decode_join_request(data: bytes) -> JoinRequest:
    _, code, value, group = _JOIN_REQUEST.unpack(data)
    return JoinRequest(
        identity=_unpack_binding(code, value),
        group_name=_unpack_str(group, "group_name"),
    )


def _encode_challenge(msg: Challenge) -> bytes:
    code, value = _pack_binding(msg.binding)
    return _CHALLENGE.pack(TAG_CHALLENGE, msg.nonce, code, value, msg.issued_at)


def _decode_challenge(data: bytes) -> Challenge:
    _, nonce, code, value, issued_at = _CHALLENGE.unpack(data)
    binding = _unpack_binding(code, value)
    if binding is None:
        raise MalformedMessageError("challenge carries no binding")
    return Challenge(nonce=nonce, binding=binding, issued_at=issued_at)


def _encode_proof(msg: ProofSubmission) -> bytes:
    code, value = _pack_binding(msg.binding)
    return _PROOF.pack(TAG_PROOF, msg.nonce, code, value, len(msg.proof), msg.proof)


def _decode_proof(data: bytes) -> ProofSubmission:
    _, nonce, code, value, length, proof = _PROOF.unpack(data)
    if length == 0 or length > MAX_PROOF_BYTES:
        raise MalformedMessageError(f"proof length {length} out of range")
    if proof[length:].strip(b"\x00"):
        raise MalformedMessageError("proof has data past its declared length")
    return ProofSubmission(
        nonce=nonce,
        proof=proof[:length],
        binding=_unpack_binding(code, value),
    )


def _encode_result(msg: JoinResult) -> bytes:
    return _RESULT.pack(TAG_RESULT, _OUTCOME_TO_CODE[msg.outcome], msg.detail.encode("utf-8"))


def _decode_result(data: bytes) -> JoinResult:
    _, code, detail = _RESULT.unpack(data)
    outcome = _CODE_TO_OUTCOME.get(code)
    if outcome is None:
        raise MalformedMessageError(f"unknown outcome code {code}")
    return JoinResult(outcome=outcome, detail=_unpack_str(detail, "detail"))


_LAYOUTS = {
    JoinRequest: (TAG_JOIN_REQUEST, _JOIN_REQUEST, _encode_join_request, _decode_join_request),
    Challenge: (TAG_CHALLENGE, _CHALLENGE, _encode_challenge, _decode_challenge),
    ProofSubmission: (TAG_PROOF, _PROOF, _encode_proof, _decode_proof),
    JoinResult: (TAG_RESULT, _RESULT, _encode_result, _decode_result),
}


def encode(message: Message) -> bytes:
    """Serialize a message to its fixed-size wire form."""
    layout = _LAYOUTS.get(type(message))
    if layout is None:
        raise MalformedMessageError(f"cannot encode {type(message).__name__}")
    _, _, encoder, _ = layout
    try:
        return encoder(message)
    except (struct.error, ValueError) as exc:
        raise MalformedMessageError(f"cannot encode {type(message).__name__}: {exc}") from exc


def decode(message_type: Type[M], data: bytes) -> M:
    """Parse ``data`` as ``message_type``.

    Raises:
        MalformedMessageError: On a size mismatch, wrong type tag, unknown
            enum code, bad padding, bad UTF-8 or failed field validation.
    """
    layout = _LAYOUTS.get(message_type)
    if layout is None:
        raise MalformedMessageError(f"cannot decode {message_type!r}")
    tag, fmt, _, decoder = layout
    if not isinstance(data, (bytes, bytearray)):
        raise MalformedMessageError(f"expected bytes, got {type(data).__name__}")
    if len(data) != fmt.size:
        raise MalformedMessageError(
            f"{message_type.__name__} must be {fmt.size} bytes, got {len(data)}"
        )
    if data[0] != tag:
        raise MalformedMessageError(
            f"expected type tag {tag:#04x} for {message_type.__name__}, got {data[0]:#04x}"
        )
    try:
        return decoder(bytes(data))
    except ValidationError as exc:
        raise MalformedMessageError(f"invalid {message_type.__name__}: {exc}") from exc


__all__ = [
    "GROUP_NAME_CAPACITY",
    "DETAIL_CAPACITY",
    "MAX_PROOF_BYTES",
    "JoinRequest",
    "Challenge",
    "ProofSubmission",
    "JoinResult",
    "Outcome",
    "Message",
    "encode",
    "decode",
    "message_size",
]
