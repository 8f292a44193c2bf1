"""
Storage backends behind the client filter chain.

This module provides:
- ObjectStorage: Abstract protocol for object storage backends
- InMemoryStorage: Thread-safe in-memory implementation for testing
- StoredObject: Object content with metadata and ACL
"""

from __future__ import annotations

import hashlib
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .errors import ObjectNotFoundError, StorageError
from .model import AccessControlList, ObjectIdentity, ObjectMetadata, PartETag


@dataclass
class StoredObject:
    """Stored object: content, metadata (etag/length/timestamps set) and ACL."""

    data: bytes
    metadata: ObjectMetadata
    acl: AccessControlList = field(default_factory=AccessControlList)
    version_id: Optional[str] = None

    def copy(self) -> StoredObject:
        return StoredObject(
            data=self.data,
            metadata=self.metadata.copy(),
            acl=self.acl.copy(),
            version_id=self.version_id,
        )


@dataclass
class _Upload:
    identity: ObjectIdentity
    metadata: ObjectMetadata
    acl: Optional[AccessControlList]
    parts: Dict[int, Tuple[str, bytes]] = field(default_factory=dict)


class ObjectStorage(ABC):
    """
    Abstract storage interface.

    Implementations store copies of the metadata and ACL they are given, so
    callers may keep mutating their own objects after a call returns.
    """

    @abstractmethod
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
        offset: Optional[int] = None,
    ) -> StoredObject:
        """Write an object; with ``offset`` the bytes are written into the existing object."""
        ...

    @abstractmethod
    def get_object(self, bucket: str, key: str) -> StoredObject:
        """Read an object; raises ObjectNotFoundError if absent."""
        ...

    @abstractmethod
    def copy_object(
        self,
        source: ObjectIdentity,
        destination: ObjectIdentity,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> StoredObject:
        """Copy content; metadata is replaced when given, copied from the source otherwise."""
        ...

    @abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object (no error if absent)."""
        ...

    @abstractmethod
    def get_acl(self, bucket: str, key: str) -> AccessControlList:
        """Get an object's ACL."""
        ...

    @abstractmethod
    def list_keys(self, bucket: str, prefix: str = "") -> List[str]:
        """List keys in a bucket, sorted."""
        ...

    @abstractmethod
    def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> str:
        """Start a multipart upload and return its upload id."""
        ...

    @abstractmethod
    def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        """Store one part and return its ETag."""
        ...

    @abstractmethod
    def complete_multipart_upload(self, upload_id: str, parts: List[PartETag]) -> StoredObject:
        """Assemble the listed parts into the final object."""
        ...

    @abstractmethod
    def abort_multipart_upload(self, upload_id: str) -> None:
        """Discard an upload and its parts."""
        ...

    def object_exists(self, bucket: str, key: str) -> bool:
        try:
            self.get_object(bucket, key)
        except ObjectNotFoundError:
            return False
        return True


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class InMemoryStorage(ObjectStorage):
    """
    Thread-safe in-memory storage implementation for testing.

    Uses threading.Lock for safe concurrent access.
    """

    def __init__(self) -> None:
        self._objects: Dict[ObjectIdentity, StoredObject] = {}
        self._uploads: Dict[str, _Upload] = {}
        self._lock = threading.Lock()

    def _store(
        self,
        identity: ObjectIdentity,
        data: bytes,
        metadata: Optional[ObjectMetadata],
        acl: Optional[AccessControlList],
        etag: Optional[str] = None,
    ) -> StoredObject:
        stored_metadata = metadata.copy() if metadata is not None else ObjectMetadata()
        stored_metadata.content_length = len(data)
        stored_metadata.etag = etag or md5_hex(data)
        stored_metadata.last_modified = datetime.now(timezone.utc)
        stored = StoredObject(
            data=data,
            metadata=stored_metadata,
            acl=acl.copy() if acl is not None else AccessControlList(),
            version_id=uuid.uuid4().hex,
        )
        self._objects[identity] = stored
        return stored.copy()

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
        offset: Optional[int] = None,
    ) -> StoredObject:
        identity = ObjectIdentity(bucket, key)
        with self._lock:
            if offset is not None:
                existing = self._objects.get(identity)
                current = existing.data if existing else b""
                if offset > len(current):
                    current = current + b"\x00" * (offset - len(current))
                data = current[:offset] + data + current[offset + len(data):]
                if metadata is None and existing is not None:
                    metadata = existing.metadata
                if acl is None and existing is not None:
                    acl = existing.acl
            return self._store(identity, data, metadata, acl)

    def get_object(self, bucket: str, key: str) -> StoredObject:
        with self._lock:
            stored = self._objects.get(ObjectIdentity(bucket, key))
            if stored is None:
                raise ObjectNotFoundError(bucket, key)
            return stored.copy()

    def copy_object(
        self,
        source: ObjectIdentity,
        destination: ObjectIdentity,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> StoredObject:
        with self._lock:
            stored = self._objects.get(source)
            if stored is None:
                raise ObjectNotFoundError(source.bucket, source.key)
            new_metadata = metadata if metadata is not None else stored.metadata
            return self._store(destination, stored.data, new_metadata, acl, etag=stored.metadata.etag)

    def delete_object(self, bucket: str, key: str) -> None:
        with self._lock:
            self._objects.pop(ObjectIdentity(bucket, key), None)

    def get_acl(self, bucket: str, key: str) -> AccessControlList:
        with self._lock:
            stored = self._objects.get(ObjectIdentity(bucket, key))
            if stored is None:
                raise ObjectNotFoundError(bucket, key)
            return stored.acl.copy()

    def list_keys(self, bucket: str, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(
                identity.key
                for identity in self._objects
                if identity.bucket == bucket and identity.key.startswith(prefix)
            )

    def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> str:
        upload_id = uuid.uuid4().hex
        with self._lock:
            self._uploads[upload_id] = _Upload(
                identity=ObjectIdentity(bucket, key),
                metadata=metadata.copy() if metadata is not None else ObjectMetadata(),
                acl=acl.copy() if acl is not None else None,
            )
        return upload_id

    def _get_upload(self, upload_id: str) -> _Upload:
        upload = self._uploads.get(upload_id)
        if upload is None:
            raise StorageError(f"No such upload: {upload_id}")
        return upload

    def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        etag = md5_hex(data)
        with self._lock:
            self._get_upload(upload_id).parts[part_number] = (etag, data)
        return etag

    def complete_multipart_upload(self, upload_id: str, parts: List[PartETag]) -> StoredObject:
        with self._lock:
            upload = self._get_upload(upload_id)
            chunks = []
            digests = b""
            for part in sorted(parts, key=lambda p: p.part_number):
                etag, data = upload.parts.get(part.part_number, (None, b""))
                if etag is None or etag != part.etag:
                    raise StorageError(f"Invalid part {part.part_number} for upload {upload_id}")
                chunks.append(data)
                digests += bytes.fromhex(etag)
            del self._uploads[upload_id]
            etag = f"{md5_hex(digests)}-{len(chunks)}"
            return self._store(upload.identity, b"".join(chunks), upload.metadata, upload.acl, etag=etag)

    def abort_multipart_upload(self, upload_id: str) -> None:
        with self._lock:
            self._get_upload(upload_id)
            del self._uploads[upload_id]
