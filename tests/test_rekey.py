"""
Tests for rekeying objects after a master key rotation.
"""

from __future__ import annotations

import pytest

from envelope_s3 import (
    AccessControlList,
    AesMasterKey,
    CannotUnwrapError,
    EncryptionClient,
    EncryptionConfig,
    InMemoryStorage,
    MasterKeyRing,
    NotEncryptedError,
    ObjectMetadata,
    Permission,
    PutObjectRequest,
    RsaMasterKey,
    S3Client,
    TransformError,
)
from envelope_s3.constants import META_MASTER_KEY_ID, META_WRAPPED_KEY
from envelope_s3.transform import AesGcmTransformFactory

from .conftest import BUCKET, SpyStorage


@pytest.fixture
def rotated_client(
    memory_storage: InMemoryStorage, rsa_key: RsaMasterKey, rsa_key_new: RsaMasterKey
) -> EncryptionClient:
    """Client whose current master key is ``rsa_key_new``, still holding ``rsa_key``."""
    return EncryptionClient(memory_storage, EncryptionConfig.with_master_key(rsa_key_new, rsa_key))


class TestRekey:
    def test_current_key_needs_no_rekey(self, client: EncryptionClient, rsa_key: RsaMasterKey) -> None:
        client.put(BUCKET, "doc.txt", b"hello world")

        result = client.rekey(BUCKET, "doc.txt")

        assert not result.rekeyed
        assert result.old_key_id == result.new_key_id == rsa_key.key_id

    def test_current_key_makes_no_storage_writes(self, spy_client: EncryptionClient, spy_storage: SpyStorage) -> None:
        spy_client.put(BUCKET, "doc.txt", b"hello world")
        spy_storage.calls.clear()

        spy_client.rekey(BUCKET, "doc.txt")

        assert set(spy_storage.operations()) == {"get"}

    def test_rotation_rekeys_once(
        self,
        client: EncryptionClient,
        rotated_client: EncryptionClient,
        rsa_key: RsaMasterKey,
        rsa_key_new: RsaMasterKey,
    ) -> None:
        client.put(BUCKET, "doc.txt", b"hello world")

        first = rotated_client.rekey(BUCKET, "doc.txt")
        second = rotated_client.rekey(BUCKET, "doc.txt")

        assert first.rekeyed
        assert first.old_key_id == rsa_key.key_id
        assert first.new_key_id == rsa_key_new.key_id
        assert not second.rekeyed

    def test_ciphertext_untouched(
        self, client: EncryptionClient, rotated_client: EncryptionClient, plain_client: S3Client
    ) -> None:
        client.put(BUCKET, "doc.txt", b"hello world")
        before_data = plain_client.read_object(BUCKET, "doc.txt")
        before = plain_client.get_object_metadata(BUCKET, "doc.txt")

        rotated_client.rekey(BUCKET, "doc.txt")

        after = plain_client.get_object_metadata(BUCKET, "doc.txt")
        assert plain_client.read_object(BUCKET, "doc.txt") == before_data
        assert after.etag == before.etag
        assert after.user_metadata[META_WRAPPED_KEY] != before.user_metadata[META_WRAPPED_KEY]

    def test_readable_with_new_key_only(
        self, client: EncryptionClient, rotated_client: EncryptionClient, memory_storage: InMemoryStorage,
        rsa_key_new: RsaMasterKey,
    ) -> None:
        client.put(BUCKET, "doc.txt", b"hello world")
        rotated_client.rekey(BUCKET, "doc.txt")

        new_only = EncryptionClient(memory_storage, EncryptionConfig(MasterKeyRing(rsa_key_new)))

        assert new_only.read_object(BUCKET, "doc.txt") == b"hello world"

    def test_preserves_user_metadata_and_acl(
        self, client: EncryptionClient, rotated_client: EncryptionClient, plain_client: S3Client
    ) -> None:
        acl = AccessControlList(owner="alice").add_grant("bob", Permission.READ)
        metadata = ObjectMetadata(content_type="text/plain", user_metadata={"author": "alice"})
        client.put_object(PutObjectRequest(BUCKET, "doc.txt", b"hello world", metadata=metadata, acl=acl))

        rotated_client.rekey(BUCKET, "doc.txt")

        after = plain_client.get_object_metadata(BUCKET, "doc.txt")
        assert after.user_metadata["author"] == "alice"
        assert after.content_type == "text/plain"
        assert plain_client.get_object_acl(BUCKET, "doc.txt") == acl
        assert plain_client.list_keys(BUCKET) == ["doc.txt"]

    def test_rekey_storage_call_order(
        self, spy_storage: SpyStorage, rsa_key: RsaMasterKey, rsa_key_new: RsaMasterKey
    ) -> None:
        EncryptionClient(spy_storage, EncryptionConfig.with_master_key(rsa_key)).put(BUCKET, "doc.txt", b"x")
        spy_storage.calls.clear()

        EncryptionClient(spy_storage, EncryptionConfig.with_master_key(rsa_key_new, rsa_key)).rekey(BUCKET, "doc.txt")

        assert spy_storage.calls == [
            ("get", "doc.txt"),
            ("acl", "doc.txt"),
            ("copy", "doc.txt->doc.txt.temp"),
            ("copy", "doc.txt.temp->doc.txt"),
            ("delete", "doc.txt.temp"),
        ]

    def test_rekey_with_aes_master_key(self, memory_storage: InMemoryStorage, rsa_key: RsaMasterKey) -> None:
        aes_key = AesMasterKey.generate()
        EncryptionClient(memory_storage, EncryptionConfig.with_master_key(rsa_key)).put(BUCKET, "doc.txt", b"data")
        rotated = EncryptionClient(memory_storage, EncryptionConfig.with_master_key(aes_key, rsa_key))

        assert rotated.rekey(BUCKET, "doc.txt").new_key_id == aes_key.key_id
        assert EncryptionClient(memory_storage, EncryptionConfig.with_master_key(aes_key)).read_object(
            BUCKET, "doc.txt"
        ) == b"data"


class TestRekeyErrors:
    def test_plaintext_object(self, spy_client: EncryptionClient, spy_storage: SpyStorage) -> None:
        S3Client(spy_storage).put(BUCKET, "plain.txt", b"plain")
        spy_storage.calls.clear()

        with pytest.raises(NotEncryptedError):
            spy_client.rekey(BUCKET, "plain.txt")

        assert spy_storage.operations() == ["get"]

    def test_unknown_master_key(
        self, memory_storage: InMemoryStorage, client: EncryptionClient, rsa_key_new: RsaMasterKey
    ) -> None:
        client.put(BUCKET, "doc.txt", b"hello world")
        stranger = EncryptionClient(memory_storage, EncryptionConfig.with_master_key(rsa_key_new))

        with pytest.raises(CannotUnwrapError):
            stranger.rekey(BUCKET, "doc.txt")

    def test_corrupt_wrapped_key(
        self, client: EncryptionClient, rotated_client: EncryptionClient, memory_storage: InMemoryStorage
    ) -> None:
        client.put(BUCKET, "doc.txt", b"hello world")
        for obj in memory_storage._objects.values():
            obj.metadata.user_metadata[META_WRAPPED_KEY] = "AAAA"

        with pytest.raises(TransformError, match="Error rekeying object: test-bucket/doc.txt"):
            rotated_client.rekey(BUCKET, "doc.txt")

    def test_factory_rekey_delta(self, rsa_key: RsaMasterKey, rsa_key_new: RsaMasterKey, client: EncryptionClient) -> None:
        result = client.put(BUCKET, "doc.txt", b"data")
        factory = AesGcmTransformFactory(MasterKeyRing(rsa_key_new, [rsa_key]))

        delta = factory.rekey(result.metadata.user_metadata)

        assert set(delta) == {META_WRAPPED_KEY, META_MASTER_KEY_ID}
        assert delta[META_MASTER_KEY_ID] == rsa_key_new.key_id
