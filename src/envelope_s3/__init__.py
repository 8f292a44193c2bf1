"""
Envelope S3 Library

Transparent client-side envelope encryption for S3-style object storage.
Content is encrypted with a per-object AES-GCM data key; the data key is
wrapped by a master key and travels with the object in its user metadata.

Quick Start
-----------
```python
from envelope_s3 import (
    EncryptionClient,
    EncryptionConfig,
    InMemoryStorage,
    ObjectMetadata,
    PutObjectRequest,
    RsaMasterKey,
)

storage = InMemoryStorage()
old_key = RsaMasterKey.generate()
client = EncryptionClient(storage, EncryptionConfig.with_master_key(old_key))

# Write and read transparently
metadata = ObjectMetadata(user_metadata={"author": "alice"})
result = client.put_object(PutObjectRequest("bucket", "doc.txt", b"hello world", metadata=metadata))
assert client.read_object("bucket", "doc.txt") == b"hello world"

# Rotate the master key and rekey without touching the ciphertext
new_key = RsaMasterKey.generate()
rotated = EncryptionClient(storage, EncryptionConfig.with_master_key(new_key, old_key))
assert rotated.rekey("bucket", "doc.txt").rekeyed
```

Key Features
------------
- **AES-GCM**: Authenticated content encryption (128/192/256-bit data keys)
- **Per-Object Keys**: Each object has its own data key
- **Master Key Rotation**: Rekey objects by re-wrapping only their data key
- **Filter Chain**: Encryption is a filter spliced in front of the checksum filter
- **Integrity**: GCM tag, plaintext size and SHA-256 verified on every read
- **Memory Security**: Best-effort key zeroization on deletion
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    SecureKey,
    generate_random_bytes,
    open_key,
    seal_key,
)
from .keys import AesMasterKey, MasterKey, MasterKeyRing, RsaMasterKey

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    CannotUnwrapError,
    ChecksumError,
    ConfigError,
    CopyReplaceMetadataError,
    CryptoError,
    DoesNotNeedRekeyError,
    EnvelopeError,
    KeyNotFoundError,
    MetadataUpdateError,
    MultipartUploadError,
    NotEncryptedError,
    ObjectNotFoundError,
    OrphanedTempObjectError,
    PartialReadError,
    PartialUpdateError,
    PresignedUrlError,
    StorageError,
    TransformError,
    UnsupportedOperationError,
)

# =============================================================================
# Client Exports (Primary API)
# =============================================================================

from .client import S3Client
from .config import EncryptionConfig, S3Config
from .encryption_client import EncryptionClient, RekeyResult
from .model import (
    AccessControlList,
    CopyObjectResult,
    GetObjectResult,
    Grant,
    ObjectIdentity,
    ObjectMetadata,
    Permission,
    PutObjectResult,
)
from .request import (
    CopyObjectRequest,
    GetObjectRequest,
    PresignedUrlRequest,
    PutObjectRequest,
    Range,
)
from .storage import InMemoryStorage, ObjectStorage

# =============================================================================
# Extension Points
# =============================================================================

from .codec import CodecFilter
from .pipeline import ChecksumFilter, Filter, FilterChain, LoggingFilter
from .transform import AesGcmTransformFactory, EncryptionTransformFactory

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "SecureKey",
    "generate_random_bytes",
    "open_key",
    "seal_key",
    "MasterKey",
    "RsaMasterKey",
    "AesMasterKey",
    "MasterKeyRing",
    # Errors
    "EnvelopeError",
    "CryptoError",
    "TransformError",
    "KeyNotFoundError",
    "NotEncryptedError",
    "CannotUnwrapError",
    "DoesNotNeedRekeyError",
    "UnsupportedOperationError",
    "PartialReadError",
    "PartialUpdateError",
    "PresignedUrlError",
    "MetadataUpdateError",
    "MultipartUploadError",
    "CopyReplaceMetadataError",
    "StorageError",
    "ObjectNotFoundError",
    "ChecksumError",
    "OrphanedTempObjectError",
    "ConfigError",
    # Clients (Primary API)
    "S3Client",
    "EncryptionClient",
    "RekeyResult",
    "S3Config",
    "EncryptionConfig",
    "ObjectStorage",
    "InMemoryStorage",
    "ObjectIdentity",
    "ObjectMetadata",
    "AccessControlList",
    "Grant",
    "Permission",
    "PutObjectResult",
    "CopyObjectResult",
    "GetObjectResult",
    "PutObjectRequest",
    "GetObjectRequest",
    "CopyObjectRequest",
    "PresignedUrlRequest",
    "Range",
    # Extension points
    "Filter",
    "FilterChain",
    "LoggingFilter",
    "ChecksumFilter",
    "CodecFilter",
    "EncryptionTransformFactory",
    "AesGcmTransformFactory",
]
