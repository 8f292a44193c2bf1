"""
Exception classes for the envelope encryption client.

Every error raised by this package derives from EnvelopeError. Operations the
encryption client refuses to perform derive from UnsupportedOperationError and
each has its own class so callers can tell them apart.
"""

from __future__ import annotations

from typing import Any, Optional


class EnvelopeError(Exception):
    """Base exception for all envelope encryption client operations."""

    pass


# =============================================================================
# Crypto / transform errors
# =============================================================================


class CryptoError(EnvelopeError):
    """Cryptographic operation failed (encryption, decryption, key generation)."""

    pass


class TransformError(EnvelopeError):
    """Content transform or key wrapping failed; retrying will not help."""

    pass


class KeyNotFoundError(EnvelopeError):
    """Master key not found in the key ring."""

    pass


# =============================================================================
# Classification errors
# =============================================================================


class NotEncryptedError(EnvelopeError):
    """Object carries no encryption mode in its user metadata."""

    pass


class CannotUnwrapError(EnvelopeError):
    """Object is encrypted with a mode or master key this client cannot use."""

    pass


class DoesNotNeedRekeyError(EnvelopeError):
    """Object key is already wrapped by the current master key."""

    pass


# =============================================================================
# Disabled operations
# =============================================================================


class UnsupportedOperationError(EnvelopeError):
    """Operation is not supported by the encryption client."""

    pass


class PartialReadError(UnsupportedOperationError):
    """Byte range (partial) reads are not supported."""

    pass


class PartialUpdateError(UnsupportedOperationError):
    """Byte range (partial) updates and appends are not supported."""

    pass


class PresignedUrlError(UnsupportedOperationError):
    """Pre-signed URLs are not supported (the holder cannot decrypt)."""

    pass


class MetadataUpdateError(UnsupportedOperationError):
    """Direct metadata updates are not supported."""

    pass


class MultipartUploadError(UnsupportedOperationError):
    """Multipart uploads are not supported."""

    pass


class CopyReplaceMetadataError(UnsupportedOperationError):
    """Copy requests that replace metadata are not supported."""

    pass


# =============================================================================
# Storage errors
# =============================================================================


class StorageError(EnvelopeError):
    """Storage backend error."""

    pass


class ObjectNotFoundError(StorageError):
    """Object (or multipart upload) does not exist."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"Object not found: {bucket}/{key}")
        self.bucket = bucket
        self.key = key


class ChecksumError(StorageError):
    """Content digest does not match the ETag reported by storage."""

    pass


class OrphanedTempObjectError(StorageError):
    """
    Temp object could not be deleted after the final object was published.

    The published object is valid; ``result`` holds the operation result and
    ``temp`` identifies the object left behind.
    """

    def __init__(self, message: str, result: Any, temp: Any) -> None:
        super().__init__(message)
        self.result = result
        self.temp = temp


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigError(EnvelopeError):
    """Configuration error."""

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(message)
        self.setting = setting
