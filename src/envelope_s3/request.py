"""
Request types passed through the client filter chain.

Each object request carries a property bag (``properties``) that filters read
to decide how to treat the call. Properties are per request, never global.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from typing import IO, Any, Dict, List, Optional, Union

from .model import AccessControlList, ObjectIdentity, ObjectMetadata, PartETag

Entity = Union[bytes, bytearray, IO[bytes]]


@dataclass(frozen=True)
class Range:
    """Inclusive byte range; ``last=None`` means to the end of the object."""

    first: int
    last: Optional[int] = None

    def __post_init__(self) -> None:
        if self.first < 0:
            raise ValueError("Range start must not be negative")
        if self.last is not None and self.last < self.first:
            raise ValueError("Range end must not precede range start")

    def header_value(self) -> str:
        end = "" if self.last is None else str(self.last)
        return f"bytes={self.first}-{end}"


def _as_stream(entity: Optional[Entity]) -> Optional[IO[bytes]]:
    if entity is None:
        return None
    if isinstance(entity, (bytes, bytearray)):
        return io.BytesIO(bytes(entity))
    return entity


class ObjectRequest:
    """Base request addressing a single object."""

    method = "GET"

    def __init__(self, bucket: str, key: str) -> None:
        self.bucket = bucket
        self.properties: Dict[str, Any] = {}
        self._key = key
        self.path = key

    @property
    def key(self) -> str:
        return self._key

    @key.setter
    def key(self, value: str) -> None:
        self._key = value
        self.path = value

    @property
    def identity(self) -> ObjectIdentity:
        return ObjectIdentity(bucket=self.bucket, key=self._key)

    def with_property(self, name: str, value: Any) -> ObjectRequest:
        """Set a per-request property and return self for chaining."""
        self.properties[name] = value
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.method} {self.bucket}/{self._key})"


class PutObjectRequest(ObjectRequest):
    method = "PUT"

    def __init__(
        self,
        bucket: str,
        key: str,
        entity: Optional[Entity] = None,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
        range: Optional[Range] = None,
    ) -> None:
        super().__init__(bucket, key)
        if isinstance(entity, (bytes, bytearray)):
            self.content_length: Optional[int] = len(entity)
        else:
            self.content_length = metadata.content_length if metadata is not None else None
        self.entity = _as_stream(entity)
        self.metadata = metadata
        self.acl = acl
        self.range = range

    def copy(self) -> PutObjectRequest:
        """Shallow copy sharing entity and metadata; properties are copied."""
        other = PutObjectRequest(
            self.bucket,
            self.key,
            entity=self.entity,
            metadata=self.metadata,
            acl=self.acl,
            range=self.range,
        )
        other.content_length = self.content_length
        other.properties = dict(self.properties)
        return other


class GetObjectRequest(ObjectRequest):
    method = "GET"

    def __init__(self, bucket: str, key: str, range: Optional[Range] = None) -> None:
        super().__init__(bucket, key)
        self.range = range


class HeadObjectRequest(ObjectRequest):
    method = "HEAD"


class DeleteObjectRequest(ObjectRequest):
    method = "DELETE"


class GetObjectAclRequest(ObjectRequest):
    method = "GET"


class CopyObjectRequest(ObjectRequest):
    """Server-side copy; ``bucket``/``key`` are the destination."""

    method = "PUT"

    def __init__(
        self,
        source_bucket: str,
        source_key: str,
        bucket: str,
        key: str,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> None:
        super().__init__(bucket, key)
        self.source_bucket = source_bucket
        self.source_key = source_key
        self.metadata = metadata
        self.acl = acl

    @property
    def source(self) -> ObjectIdentity:
        return ObjectIdentity(bucket=self.source_bucket, key=self.source_key)

    def with_metadata(self, metadata: Optional[ObjectMetadata]) -> CopyObjectRequest:
        self.metadata = metadata
        return self

    def with_acl(self, acl: Optional[AccessControlList]) -> CopyObjectRequest:
        self.acl = acl
        return self


@dataclass
class PresignedUrlRequest:
    """Request for a pre-signed URL (not sent through the filter chain)."""

    method: str
    bucket: str
    key: str
    expiration: datetime


class InitiateMultipartUploadRequest(ObjectRequest):
    method = "POST"

    def __init__(
        self,
        bucket: str,
        key: str,
        metadata: Optional[ObjectMetadata] = None,
        acl: Optional[AccessControlList] = None,
    ) -> None:
        super().__init__(bucket, key)
        self.metadata = metadata
        self.acl = acl


class UploadPartRequest(ObjectRequest):
    method = "PUT"

    def __init__(self, bucket: str, key: str, upload_id: str, part_number: int, entity: Entity) -> None:
        super().__init__(bucket, key)
        self.upload_id = upload_id
        self.part_number = part_number
        self.entity = _as_stream(entity)


class CopyPartRequest(ObjectRequest):
    method = "PUT"

    def __init__(
        self,
        source_bucket: str,
        source_key: str,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        source_range: Optional[Range] = None,
    ) -> None:
        super().__init__(bucket, key)
        self.source_bucket = source_bucket
        self.source_key = source_key
        self.upload_id = upload_id
        self.part_number = part_number
        self.source_range = source_range


class CompleteMultipartUploadRequest(ObjectRequest):
    method = "POST"

    def __init__(self, bucket: str, key: str, upload_id: str, parts: List[PartETag]) -> None:
        super().__init__(bucket, key)
        self.upload_id = upload_id
        self.parts = list(parts)


class AbortMultipartUploadRequest(ObjectRequest):
    method = "DELETE"

    def __init__(self, bucket: str, key: str, upload_id: str) -> None:
        super().__init__(bucket, key)
        self.upload_id = upload_id
