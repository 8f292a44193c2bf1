"""
Pytest configuration and fixtures for envelope S3 tests.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from envelope_s3 import (
    AesMasterKey,
    EncryptionClient,
    EncryptionConfig,
    InMemoryStorage,
    RsaMasterKey,
    S3Client,
)
from envelope_s3.model import AccessControlList, ObjectIdentity, ObjectMetadata, PartETag
from envelope_s3.storage import ObjectStorage, StoredObject

BUCKET = "test-bucket"


class SpyStorage(InMemoryStorage):
    """In-memory storage that records every call and can fail selected ones."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: List[Tuple[str, str]] = []
        self.fail_on: Optional[Tuple[str, str]] = None

    def _record(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if self.fail_on == (operation, key):
            raise OSError(f"injected failure: {operation} {key}")

    def put_object(self, bucket, key, data, metadata=None, acl=None, offset=None) -> StoredObject:  # type: ignore[no-untyped-def]
        self._record("put", key)
        return super().put_object(bucket, key, data, metadata, acl, offset)

    def get_object(self, bucket: str, key: str) -> StoredObject:
        self._record("get", key)
        return super().get_object(bucket, key)

    def copy_object(
        self,
        source: ObjectIdentity,
        destination: ObjectIdentity,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> StoredObject:
        self._record("copy", f"{source.key}->{destination.key}")
        return super().copy_object(source, destination, metadata, acl)

    def delete_object(self, bucket: str, key: str) -> None:
        self._record("delete", key)
        super().delete_object(bucket, key)

    def get_acl(self, bucket: str, key: str) -> AccessControlList:
        self._record("acl", key)
        return super().get_acl(bucket, key)

    def create_multipart_upload(self, bucket, key, metadata=None, acl=None) -> str:  # type: ignore[no-untyped-def]
        self._record("initiate", key)
        return super().create_multipart_upload(bucket, key, metadata, acl)

    def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        self._record("upload_part", upload_id)
        return super().upload_part(upload_id, part_number, data)

    def complete_multipart_upload(self, upload_id: str, parts: List[PartETag]) -> StoredObject:
        self._record("complete", upload_id)
        return super().complete_multipart_upload(upload_id, parts)

    def abort_multipart_upload(self, upload_id: str) -> None:
        self._record("abort", upload_id)
        super().abort_multipart_upload(upload_id)

    def operations(self) -> List[str]:
        return [operation for operation, _ in self.calls]


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """Create an in-memory storage instance for testing."""
    return InMemoryStorage()


@pytest.fixture
def spy_storage() -> SpyStorage:
    """Create an in-memory storage instance that records calls."""
    return SpyStorage()


@pytest.fixture(scope="session")
def rsa_key() -> RsaMasterKey:
    return RsaMasterKey.generate()


@pytest.fixture(scope="session")
def rsa_key_new() -> RsaMasterKey:
    return RsaMasterKey.generate()


@pytest.fixture
def aes_key() -> AesMasterKey:
    return AesMasterKey.generate()


@pytest.fixture
def encryption_config(rsa_key: RsaMasterKey) -> EncryptionConfig:
    return EncryptionConfig.with_master_key(rsa_key)


@pytest.fixture
def client(memory_storage: InMemoryStorage, encryption_config: EncryptionConfig) -> EncryptionClient:
    """Encryption client over fresh in-memory storage."""
    return EncryptionClient(memory_storage, encryption_config)


@pytest.fixture
def spy_client(spy_storage: SpyStorage, encryption_config: EncryptionConfig) -> EncryptionClient:
    """Encryption client over call-recording storage."""
    return EncryptionClient(spy_storage, encryption_config)


@pytest.fixture
def plain_client(memory_storage: ObjectStorage) -> S3Client:
    """Basic client sharing storage with ``client``."""
    return S3Client(memory_storage)
