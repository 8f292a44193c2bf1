"""
Basic S3-style object client.

Every call is expressed as a request object and run through the client's
FilterChain; the chain ends in a handler that executes the request against an
ObjectStorage backend.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import io
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from urllib.parse import quote, urlencode

from .config import S3Config
from .constants import PARAM_ACCESS_KEY, PARAM_EXPIRES, PARAM_SIGNATURE
from .errors import ConfigError, StorageError
from .model import (
    AccessControlList,
    CopyObjectResult,
    GetObjectResult,
    MultipartUpload,
    ObjectMetadata,
    PartETag,
    PutObjectResult,
)
from .pipeline import Filter, FilterChain, Response, default_filters
from .request import (
    AbortMultipartUploadRequest,
    CompleteMultipartUploadRequest,
    CopyObjectRequest,
    CopyPartRequest,
    DeleteObjectRequest,
    Entity,
    GetObjectAclRequest,
    GetObjectRequest,
    HeadObjectRequest,
    InitiateMultipartUploadRequest,
    ObjectRequest,
    PresignedUrlRequest,
    PutObjectRequest,
    UploadPartRequest,
)
from .storage import ObjectStorage


class StorageHandler:
    """Terminal handler: executes a request against the storage backend."""

    def __init__(self, storage: ObjectStorage) -> None:
        self._storage = storage

    def __call__(self, request: ObjectRequest) -> Response:
        storage = self._storage

        if isinstance(request, PutObjectRequest):
            data = request.entity.read() if request.entity is not None else b""
            offset = request.range.first if request.range is not None else None
            stored = storage.put_object(
                request.bucket, request.key, data, request.metadata, request.acl, offset=offset
            )
            return Response(metadata=stored.metadata, etag=stored.metadata.etag, version_id=stored.version_id)

        if isinstance(request, GetObjectRequest):
            stored = storage.get_object(request.bucket, request.key)
            data = stored.data
            status = 200
            if request.range is not None:
                end = len(data) if request.range.last is None else request.range.last + 1
                data = data[request.range.first:end]
                stored.metadata.content_length = len(data)
                status = 206
            return Response(
                status=status,
                entity=io.BytesIO(data),
                metadata=stored.metadata,
                etag=stored.metadata.etag,
                version_id=stored.version_id,
            )

        if isinstance(request, HeadObjectRequest):
            stored = storage.get_object(request.bucket, request.key)
            return Response(metadata=stored.metadata, etag=stored.metadata.etag, version_id=stored.version_id)

        if isinstance(request, CopyObjectRequest):
            stored = storage.copy_object(request.source, request.identity, request.metadata, request.acl)
            return Response(metadata=stored.metadata, etag=stored.metadata.etag, version_id=stored.version_id)

        if isinstance(request, DeleteObjectRequest):
            storage.delete_object(request.bucket, request.key)
            return Response(status=204)

        if isinstance(request, GetObjectAclRequest):
            return Response(payload=storage.get_acl(request.bucket, request.key))

        if isinstance(request, InitiateMultipartUploadRequest):
            upload_id = storage.create_multipart_upload(request.bucket, request.key, request.metadata, request.acl)
            return Response(payload=upload_id)

        if isinstance(request, UploadPartRequest):
            data = request.entity.read() if request.entity is not None else b""
            return Response(etag=storage.upload_part(request.upload_id, request.part_number, data))

        if isinstance(request, CopyPartRequest):
            data = storage.get_object(request.source_bucket, request.source_key).data
            if request.source_range is not None:
                last = request.source_range.last
                data = data[request.source_range.first:None if last is None else last + 1]
            return Response(etag=storage.upload_part(request.upload_id, request.part_number, data))

        if isinstance(request, CompleteMultipartUploadRequest):
            stored = storage.complete_multipart_upload(request.upload_id, request.parts)
            return Response(metadata=stored.metadata, etag=stored.metadata.etag, version_id=stored.version_id)

        if isinstance(request, AbortMultipartUploadRequest):
            storage.abort_multipart_upload(request.upload_id)
            return Response(status=204)

        raise StorageError(f"Unsupported request type: {type(request).__name__}")


class S3Client:
    """
    Object storage client.

    Args:
        storage: Backend that executes requests
        config: Client configuration (endpoint and credentials)
        filters: Filter chain, head first (defaults to logging + checksum)
    """

    def __init__(
        self,
        storage: ObjectStorage,
        config: Optional[S3Config] = None,
        filters: Optional[Iterable[Filter]] = None,
    ) -> None:
        self._storage = storage
        self.config = config or S3Config()
        self.chain = FilterChain(
            StorageHandler(storage),
            default_filters() if filters is None else filters,
        )

    @property
    def storage(self) -> ObjectStorage:
        return self._storage

    def _execute(self, request: ObjectRequest) -> Response:
        return self.chain.handle(request)

    # =========================================================================
    # Objects
    # =========================================================================

    def put_object(self, request: PutObjectRequest) -> PutObjectResult:
        response = self._execute(request)
        return PutObjectResult(etag=response.etag, version_id=response.version_id, metadata=response.metadata)

    def put(
        self,
        bucket: str,
        key: str,
        content: Entity,
        metadata: Optional[ObjectMetadata] = None,
    ) -> PutObjectResult:
        """Convenience wrapper around put_object()."""
        return self.put_object(PutObjectRequest(bucket, key, content, metadata=metadata))

    def get_object(self, request: GetObjectRequest) -> GetObjectResult:
        response = self._execute(request)
        assert response.entity is not None and response.metadata is not None
        return GetObjectResult(body=response.entity, metadata=response.metadata)

    def read_object(self, bucket: str, key: str) -> bytes:
        """Read the full content of an object."""
        return self.get_object(GetObjectRequest(bucket, key)).read()

    def copy_object(self, request: CopyObjectRequest) -> CopyObjectResult:
        response = self._execute(request)
        metadata = response.metadata
        return CopyObjectResult(
            etag=response.etag,
            version_id=response.version_id,
            metadata=metadata,
            last_modified=metadata.last_modified if metadata is not None else None,
        )

    def delete_object(self, bucket: str, key: str) -> None:
        self._execute(DeleteObjectRequest(bucket, key))

    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        response = self._execute(HeadObjectRequest(bucket, key))
        assert response.metadata is not None
        return response.metadata

    def get_object_acl(self, bucket: str, key: str) -> AccessControlList:
        return self._execute(GetObjectAclRequest(bucket, key)).payload

    def set_object_metadata(self, bucket: str, key: str, metadata: ObjectMetadata) -> None:
        """Replace an object's metadata (in-place copy), keeping its ACL."""
        acl = self.get_object_acl(bucket, key)
        self.copy_object(CopyObjectRequest(bucket, key, bucket, key, metadata=metadata, acl=acl))

    def get_presigned_url(self, request: PresignedUrlRequest) -> str:
        """
        Build a query-string authenticated URL.

        Raises:
            ConfigError: If the client has no credentials
        """
        if not self.config.access_key or not self.config.secret_key:
            raise ConfigError("Pre-signed URLs require an access key and secret key")

        expires = int(request.expiration.astimezone(timezone.utc).timestamp())
        resource = f"/{request.bucket}/{quote(request.key)}"
        string_to_sign = f"{request.method.upper()}\n\n\n{expires}\n{resource}"
        signature = base64.b64encode(
            hmac.new(
                self.config.secret_key.encode("utf-8"),
                string_to_sign.encode("utf-8"),
                hashlib.sha1,
            ).digest()
        ).decode("ascii")
        query = urlencode(
            {
                PARAM_ACCESS_KEY: self.config.access_key,
                PARAM_EXPIRES: str(expires),
                PARAM_SIGNATURE: signature,
            }
        )
        return f"{self.config.endpoint}{resource}?{query}"

    def presign(self, bucket: str, key: str, method: str = "GET") -> str:
        """Pre-signed URL valid for the configured default lifetime."""
        expiration = datetime.fromtimestamp(
            datetime.now(timezone.utc).timestamp() + self.config.presign_expiry_seconds,
            tz=timezone.utc,
        )
        return self.get_presigned_url(PresignedUrlRequest(method, bucket, key, expiration))

    # =========================================================================
    # Multipart uploads
    # =========================================================================

    def initiate_multipart_upload(self, request: InitiateMultipartUploadRequest) -> MultipartUpload:
        upload_id = self._execute(request).payload
        return MultipartUpload(bucket=request.bucket, key=request.key, upload_id=upload_id)

    def upload_part(self, request: UploadPartRequest) -> PartETag:
        response = self._execute(request)
        return PartETag(part_number=request.part_number, etag=response.etag or "")

    def copy_part(self, request: CopyPartRequest) -> PartETag:
        response = self._execute(request)
        return PartETag(part_number=request.part_number, etag=response.etag or "")

    def complete_multipart_upload(self, request: CompleteMultipartUploadRequest) -> PutObjectResult:
        response = self._execute(request)
        return PutObjectResult(etag=response.etag, version_id=response.version_id, metadata=response.metadata)

    def abort_multipart_upload(self, request: AbortMultipartUploadRequest) -> None:
        self._execute(request)

    def list_keys(self, bucket: str, prefix: str = "") -> List[str]:
        return self._storage.list_keys(bucket, prefix)
