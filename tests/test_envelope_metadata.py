"""
Tests for envelope metadata classification and parsing.
"""

from __future__ import annotations

import pytest

from envelope_s3 import CannotUnwrapError, EncryptionConfig, NotEncryptedError, RsaMasterKey, TransformError
from envelope_s3.constants import (
    META_IV,
    META_MASTER_KEY_ID,
    META_MODE,
    META_UNENCRYPTED_SIZE,
    META_WRAPPED_KEY,
    MODE_AES_GCM,
)
from envelope_s3.envelope import EnvelopeMetadata, can_unwrap, is_encrypted, mode_of, require_mode, strip_envelope


def sample_envelope(key_id: str = "abc123") -> EnvelopeMetadata:
    return EnvelopeMetadata(
        mode=MODE_AES_GCM,
        wrapped_key=b"\x01" * 32,
        master_key_id=key_id,
        iv=b"\x02" * 12,
        unencrypted_size=11,
        unencrypted_sha256="00" * 32,
    )


class TestClassification:
    def test_plaintext_metadata_has_no_mode(self) -> None:
        assert mode_of({"author": "alice"}) is None
        assert mode_of({}) is None
        assert mode_of(None) is None
        assert not is_encrypted({"author": "alice"})

    def test_mode_requires_prefix(self) -> None:
        assert mode_of({META_MODE: "AES/GCM/NoPadding"}) is None
        assert mode_of({META_MODE: "ENC:Custom"}) == "ENC:Custom"

    def test_encrypted_metadata(self) -> None:
        assert mode_of({META_MODE: MODE_AES_GCM}) == MODE_AES_GCM
        assert is_encrypted({META_MODE: MODE_AES_GCM})

    def test_strip_envelope_keeps_user_entries(self) -> None:
        user_metadata = {"author": "alice", **sample_envelope().to_user_metadata()}

        assert strip_envelope(user_metadata) == {"author": "alice"}


class TestEnvelopeMetadata:
    def test_to_and_from_user_metadata(self) -> None:
        envelope = sample_envelope()

        entries = envelope.to_user_metadata()

        assert entries[META_MODE] == MODE_AES_GCM
        assert entries[META_MASTER_KEY_ID] == "abc123"
        assert entries[META_UNENCRYPTED_SIZE] == "11"
        assert EnvelopeMetadata.from_user_metadata(entries) == envelope

    def test_plaintext_raises_not_encrypted(self) -> None:
        with pytest.raises(NotEncryptedError):
            EnvelopeMetadata.from_user_metadata({"author": "alice"})

    def test_missing_field_raises_transform_error(self) -> None:
        entries = sample_envelope().to_user_metadata()
        del entries[META_WRAPPED_KEY]

        with pytest.raises(TransformError, match=META_WRAPPED_KEY):
            EnvelopeMetadata.from_user_metadata(entries)

    def test_malformed_field_raises_transform_error(self) -> None:
        entries = sample_envelope().to_user_metadata()
        entries[META_IV] = "not base64!"

        with pytest.raises(TransformError):
            EnvelopeMetadata.from_user_metadata(entries)


class TestRequireMode:
    def test_known_key(self, encryption_config: EncryptionConfig, rsa_key: RsaMasterKey) -> None:
        entries = sample_envelope(rsa_key.key_id).to_user_metadata()

        assert can_unwrap(encryption_config.factory, MODE_AES_GCM, entries)
        assert require_mode(encryption_config.factory, entries) == MODE_AES_GCM

    def test_unknown_key(self, encryption_config: EncryptionConfig) -> None:
        entries = sample_envelope("unknown").to_user_metadata()

        with pytest.raises(CannotUnwrapError, match="unknown"):
            require_mode(encryption_config.factory, entries)

    def test_unknown_mode(self, encryption_config: EncryptionConfig, rsa_key: RsaMasterKey) -> None:
        entries = {**sample_envelope(rsa_key.key_id).to_user_metadata(), META_MODE: "ENC:ROT13"}

        with pytest.raises(CannotUnwrapError, match="ENC:ROT13"):
            require_mode(encryption_config.factory, entries)

    def test_plaintext(self, encryption_config: EncryptionConfig) -> None:
        with pytest.raises(NotEncryptedError):
            require_mode(encryption_config.factory, {"author": "alice"})
