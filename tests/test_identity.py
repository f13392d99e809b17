"""Tests for identities and verifiable credentials."""

import hashlib

import pytest

from zkjoin.identity import BindingKind, Identity, VerifiableCredential, derive_public_id

from conftest import ALICE_SECRET, EXPIRY_DATE, ISSUE_DATE


class TestIdentity:
    """Tests for Identity."""

    def test_derive_public_id(self):
        identity = derive_public_id(ALICE_SECRET)
        assert identity.kind == BindingKind.ACL_ID
        assert identity.value == hashlib.sha256(ALICE_SECRET).digest()

    def test_derive_is_deterministic(self):
        assert derive_public_id(b"s") == derive_public_id(b"s")
        assert derive_public_id(b"s") != derive_public_id(b"t")

    def test_empty_secret(self):
        with pytest.raises(ValueError):
            derive_public_id(b"")

    def test_from_hex(self):
        identity = Identity.issuer("ab" * 32)
        assert identity.value == b"\xab" * 32
        assert identity.hex == "ab" * 32

    def test_wrong_length(self):
        with pytest.raises(ValueError, match="32 bytes"):
            Identity.acl(b"short")

    def test_bad_hex(self):
        with pytest.raises(ValueError):
            Identity.acl("zz" * 32)

    def test_frozen(self):
        identity = derive_public_id(ALICE_SECRET)
        with pytest.raises(ValueError):
            identity.value = b"\x00" * 32

    def test_matches_compares_kind(self):
        raw = b"\x01" * 32
        assert Identity.acl(raw).matches(Identity.acl(raw))
        assert not Identity.acl(raw).matches(Identity.issuer(raw))

    def test_json_is_hex(self):
        identity = Identity.acl(b"\x01" * 32)
        assert identity.model_dump(mode="json")["value"] == "01" * 32

    def test_short(self):
        assert derive_public_id(ALICE_SECRET).short().startswith("acl_id:")


class TestVerifiableCredential:
    """Tests for VerifiableCredential."""

    def test_active_window_is_inclusive(self, credential):
        assert credential.is_active_at(ISSUE_DATE)
        assert credential.is_active_at(EXPIRY_DATE)
        assert not credential.is_active_at(ISSUE_DATE - 1)
        assert not credential.is_active_at(EXPIRY_DATE + 1)

    def test_message_hash_covers_claims(self, credential):
        changed = credential.model_copy(update={"claims": {"role": "admin"}})
        assert changed.message_hash() != credential.message_hash()

    def test_message_hash_ignores_signature(self, credential):
        unsigned = credential.model_copy(update={"signature": b""})
        assert unsigned.message_hash() == credential.message_hash()

    def test_message_hash_field_boundaries_are_ambiguous(self):
        """Fields are not length-prefixed, so shifting a boundary keeps the digest."""
        left = VerifiableCredential(holder_id="ab", issuer="c", issue_date=1, expiry_date=2)
        right = VerifiableCredential(holder_id="a", issuer="bc", issue_date=1, expiry_date=2)
        assert left.message_hash() == right.message_hash()

    def test_signed_fixture(self, credential):
        assert credential.is_signed

    def test_unsigned(self):
        credential = VerifiableCredential(
            holder_id="bob", issuer="Org", issue_date=1, expiry_date=2
        )
        assert not credential.is_signed

    def test_empty_holder_rejected(self):
        with pytest.raises(ValueError):
            VerifiableCredential(holder_id="", issuer="Org", issue_date=1, expiry_date=2)
