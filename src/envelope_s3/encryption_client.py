"""
Client-side envelope encryption on top of S3Client.

Content is encrypted with a fresh data key per object; the data key is wrapped
by the current master key and stored, with the other envelope fields, in the
object's user metadata. Reads decrypt transparently; plaintext objects are
returned unchanged.

The envelope fields are only known after the content has been streamed, so
every write goes through a temp object (see orchestration.TempObjectSaga):

1. PUT ciphertext to ``key + temp_suffix``
2. COPY temp -> key with the caller's ACL and the enriched metadata
3. DELETE temp

Operations that cannot be supported on encrypted content (range reads and
writes, pre-signed URLs, metadata updates, multipart uploads, copies that
replace metadata) raise an UnsupportedOperationError subclass before any
storage call is made.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .client import S3Client
from .codec import CodecFilter
from .config import EncryptionConfig, S3Config
from .constants import META_MASTER_KEY_ID, PROPERTY_DECODE_ENTITY, PROPERTY_ENCODE_ENTITY, PROPERTY_USER_METADATA
from .envelope import can_unwrap, mode_of
from .errors import (
    CannotUnwrapError,
    CopyReplaceMetadataError,
    DoesNotNeedRekeyError,
    MetadataUpdateError,
    MultipartUploadError,
    NotEncryptedError,
    PartialReadError,
    PartialUpdateError,
    PresignedUrlError,
    TransformError,
)
from .model import CopyObjectResult, GetObjectResult, MultipartUpload, ObjectIdentity, ObjectMetadata, PartETag, PutObjectResult
from .orchestration import TempObjectSaga
from .pipeline import ChecksumFilter, Filter
from .request import (
    AbortMultipartUploadRequest,
    CompleteMultipartUploadRequest,
    CopyObjectRequest,
    CopyPartRequest,
    DeleteObjectRequest,
    GetObjectRequest,
    InitiateMultipartUploadRequest,
    PresignedUrlRequest,
    PutObjectRequest,
    UploadPartRequest,
)
from .storage import ObjectStorage
from .transform import EncryptionTransformFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RekeyResult:
    """Outcome of rekey(); ``rekeyed`` is False if the key was already current."""

    bucket: str
    key: str
    rekeyed: bool
    old_key_id: Optional[str] = None
    new_key_id: Optional[str] = None


class EncryptionClient(S3Client):
    """
    Storage client that encrypts on write and decrypts on read.

    The codec filter is inserted immediately before the checksum filter, so
    checksums are computed over ciphertext. If the chain has no checksum
    filter the codec filter is appended at its tail.

    Usage:
        config = EncryptionConfig.with_master_key(RsaMasterKey.generate())
        client = EncryptionClient(InMemoryStorage(), config)
        client.put("bucket", "doc.txt", b"hello world")
        assert client.read_object("bucket", "doc.txt") == b"hello world"

    Args:
        storage: Backend that executes requests
        encryption_config: Master keys and encryption settings
        config: Client configuration (endpoint and credentials)
        filters: Filter chain, head first (defaults to logging + checksum)
    """

    def __init__(
        self,
        storage: ObjectStorage,
        encryption_config: EncryptionConfig,
        config: Optional[S3Config] = None,
        filters: Optional[Iterable[Filter]] = None,
    ) -> None:
        super().__init__(storage, config=config, filters=filters)
        self.encryption_config = encryption_config
        self._codec = CodecFilter(encryption_config.factory)
        if self.chain.insert_before(lambda f: isinstance(f, ChecksumFilter), self._codec) == 0:
            self.chain.add_filter(self._codec)

    @property
    def factory(self) -> EncryptionTransformFactory:
        return self._codec.factory

    def _delete_identity(self, identity: ObjectIdentity) -> None:
        self._execute(DeleteObjectRequest(identity.bucket, identity.key))

    # =========================================================================
    # Encrypted reads and writes
    # =========================================================================

    def put_object(self, request: PutObjectRequest) -> PutObjectResult:
        """
        Encrypt and store an object.

        The caller's metadata is left untouched; the metadata actually stored
        (user metadata plus envelope fields) is returned in ``result.metadata``.

        Raises:
            PartialUpdateError: If the request has a byte range
            OrphanedTempObjectError: If the object was stored but the temp object could not be deleted
        """
        if request.range is not None:
            raise PartialUpdateError(f"Partial object updates are not supported: {request.bucket}/{request.key}")

        metadata = request.metadata.copy() if request.metadata is not None else ObjectMetadata()
        identity = request.identity

        with TempObjectSaga(identity, self.encryption_config.temp_suffix, self._delete_identity) as saga:
            temp_request = request.copy()
            temp_request.bucket = saga.temp.bucket
            temp_request.key = saga.temp.key
            temp_request.metadata = metadata
            temp_request.acl = None
            if temp_request.entity is None:
                temp_request.entity = io.BytesIO(b"")
                temp_request.content_length = 0
            temp_request.with_property(PROPERTY_ENCODE_ENTITY, True)
            temp_request.with_property(PROPERTY_USER_METADATA, metadata.user_metadata)
            super().put_object(temp_request)
            saga.written()

            publish = CopyObjectRequest(
                saga.temp.bucket,
                saga.temp.key,
                identity.bucket,
                identity.key,
                metadata=metadata,
                acl=request.acl,
            )
            saga.published(super().copy_object(publish))

        result: CopyObjectResult = saga.result
        result.metadata = metadata
        return result

    def get_object(self, request: GetObjectRequest) -> GetObjectResult:
        """
        Read an object, decrypting it if it carries an encryption mode.

        Raises:
            PartialReadError: If the request has a byte range
            CannotUnwrapError: If the object's mode or master key is not available
        """
        if request.range is not None:
            raise PartialReadError(f"Partial object reads are not supported: {request.bucket}/{request.key}")
        request.with_property(PROPERTY_DECODE_ENTITY, True)
        return super().get_object(request)

    def copy_object(self, request: CopyObjectRequest) -> CopyObjectResult:
        """Copy an object with its envelope; replacing metadata is not supported."""
        if request.metadata is not None:
            raise CopyReplaceMetadataError(
                "Copy requests that replace metadata are not supported; the envelope would be lost"
            )
        return super().copy_object(request)

    # =========================================================================
    # Rekey
    # =========================================================================

    def rekey(self, bucket: str, key: str) -> RekeyResult:
        """
        Re-wrap an object's data key with the current master key.

        The ciphertext is not touched; only the wrapped key and master key id
        in the object's metadata change.

        Returns:
            RekeyResult with rekeyed=False if the object already uses the current key

        Raises:
            NotEncryptedError: If the object is not encrypted
            CannotUnwrapError: If the object's mode or master key is not available
            TransformError: If the data key cannot be re-wrapped
        """
        metadata = self.get_object_metadata(bucket, key)
        user_metadata = metadata.user_metadata
        mode = mode_of(user_metadata)
        if mode is None:
            raise NotEncryptedError(f"Object is not encrypted: {bucket}/{key}")

        factory = self.factory
        if not can_unwrap(factory, mode, user_metadata):
            raise CannotUnwrapError(
                f"Cannot handle encryption mode '{mode}' (master key {user_metadata.get(META_MASTER_KEY_ID)})"
            )

        old_key_id = user_metadata.get(META_MASTER_KEY_ID)
        try:
            delta = factory.rekey(user_metadata)
        except DoesNotNeedRekeyError:
            logger.debug("%s/%s already uses master key %s", bucket, key, old_key_id)
            return RekeyResult(bucket, key, rekeyed=False, old_key_id=old_key_id, new_key_id=old_key_id)
        except TransformError as e:
            raise TransformError(f"Error rekeying object: {bucket}/{key}") from e

        new_metadata = metadata.copy()
        new_metadata.user_metadata.update(delta)
        acl = self.get_object_acl(bucket, key)
        identity = ObjectIdentity(bucket, key)

        with TempObjectSaga(identity, self.encryption_config.temp_suffix, self._delete_identity) as saga:
            super().copy_object(CopyObjectRequest(bucket, key, saga.temp.bucket, saga.temp.key))
            saga.written()
            saga.published(
                super().copy_object(
                    CopyObjectRequest(
                        saga.temp.bucket,
                        saga.temp.key,
                        bucket,
                        key,
                        metadata=new_metadata,
                        acl=acl,
                    )
                )
            )

        new_key_id = delta.get(META_MASTER_KEY_ID)
        logger.info("Rekeyed %s/%s from master key %s to %s", bucket, key, old_key_id, new_key_id)
        return RekeyResult(bucket, key, rekeyed=True, old_key_id=old_key_id, new_key_id=new_key_id)

    # =========================================================================
    # Disabled operations
    # =========================================================================

    def get_presigned_url(self, request: PresignedUrlRequest) -> str:
        raise PresignedUrlError("Pre-signed URLs are not supported for encrypted objects")

    def set_object_metadata(self, bucket: str, key: str, metadata: ObjectMetadata) -> None:
        raise MetadataUpdateError("Updating metadata of encrypted objects is not supported")

    def initiate_multipart_upload(self, request: InitiateMultipartUploadRequest) -> MultipartUpload:
        raise MultipartUploadError("Multipart uploads are not supported for encrypted objects")

    def upload_part(self, request: UploadPartRequest) -> PartETag:
        raise MultipartUploadError("Multipart uploads are not supported for encrypted objects")

    def copy_part(self, request: CopyPartRequest) -> PartETag:
        raise MultipartUploadError("Multipart uploads are not supported for encrypted objects")

    def complete_multipart_upload(self, request: CompleteMultipartUploadRequest) -> PutObjectResult:
        raise MultipartUploadError("Multipart uploads are not supported for encrypted objects")

    def abort_multipart_upload(self, request: AbortMultipartUploadRequest) -> None:
        raise MultipartUploadError("Multipart uploads are not supported for encrypted objects")
