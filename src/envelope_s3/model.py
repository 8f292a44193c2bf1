"""
Data structures shared by the storage client and the encryption layer.

This module provides:
- ObjectIdentity: Bucket + key address of an object
- ObjectMetadata: System and user metadata of an object
- AccessControlList, Grant, Permission: Object ACLs
- PutObjectResult, CopyObjectResult, GetObjectResult: Operation results
- MultipartUpload, PartETag: Multipart upload handles
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import IO, Dict, List, Optional


@dataclass(frozen=True)
class ObjectIdentity:
    """Address of an object in the storage namespace."""

    bucket: str
    key: str

    def with_suffix(self, suffix: str) -> ObjectIdentity:
        """Return the identity of a sibling object named ``key + suffix``."""
        return ObjectIdentity(bucket=self.bucket, key=self.key + suffix)

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


@dataclass
class ObjectMetadata:
    """
    Object metadata.

    User metadata names are stored without the ``x-amz-meta-`` prefix.
    """

    content_type: Optional[str] = None
    content_length: Optional[int] = None
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    user_metadata: Dict[str, str] = field(default_factory=dict)

    def with_user_metadata(self, name: str, value: str) -> ObjectMetadata:
        """Set a user metadata entry and return self for chaining."""
        self.user_metadata[name] = value
        return self

    def copy(self) -> ObjectMetadata:
        """Return an independent copy (user metadata dict included)."""
        return ObjectMetadata(
            content_type=self.content_type,
            content_length=self.content_length,
            etag=self.etag,
            last_modified=self.last_modified,
            user_metadata=dict(self.user_metadata),
        )


class Permission(Enum):
    """ACL grant permission."""

    FULL_CONTROL = "FULL_CONTROL"
    READ = "READ"
    WRITE = "WRITE"
    READ_ACP = "READ_ACP"
    WRITE_ACP = "WRITE_ACP"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Grant:
    """Single ACL grant."""

    grantee: str
    permission: Permission


@dataclass
class AccessControlList:
    """Object access control list."""

    owner: Optional[str] = None
    grants: List[Grant] = field(default_factory=list)

    def add_grant(self, grantee: str, permission: Permission) -> AccessControlList:
        self.grants.append(Grant(grantee=grantee, permission=permission))
        return self

    def copy(self) -> AccessControlList:
        return AccessControlList(owner=self.owner, grants=list(self.grants))


@dataclass
class PutObjectResult:
    """Result of a write (put or copy)."""

    etag: Optional[str] = None
    version_id: Optional[str] = None
    metadata: Optional[ObjectMetadata] = None


@dataclass
class CopyObjectResult(PutObjectResult):
    """Result of a server-side copy."""

    last_modified: Optional[datetime] = None


@dataclass
class GetObjectResult:
    """Result of a read; ``body`` is a readable binary stream."""

    body: IO[bytes]
    metadata: ObjectMetadata

    def read(self) -> bytes:
        """Read and close the body."""
        try:
            return self.body.read()
        finally:
            self.body.close()


@dataclass(frozen=True)
class PartETag:
    """Part number + ETag pair returned for each uploaded part."""

    part_number: int
    etag: str


@dataclass(frozen=True)
class MultipartUpload:
    """Handle for an initiated multipart upload."""

    bucket: str
    key: str
    upload_id: str
