"""
Shared names: request properties, envelope metadata names and S3 parameters.
"""

from __future__ import annotations

# =============================================================================
# Per-request properties (seam between the client and the codec filter)
# =============================================================================

PROPERTY_ENCODE_ENTITY = "envelope_s3.encodeEntity"
PROPERTY_DECODE_ENTITY = "envelope_s3.decodeEntity"
PROPERTY_USER_METADATA = "envelope_s3.userMetadata"
PROPERTY_ENCODED_METADATA = "envelope_s3.encodedMetadata"

# =============================================================================
# Envelope metadata (stored as ordinary user metadata)
# =============================================================================

ENVELOPE_PREFIX = "envelope-"
META_MODE = ENVELOPE_PREFIX + "mode"
META_WRAPPED_KEY = ENVELOPE_PREFIX + "key"
META_MASTER_KEY_ID = ENVELOPE_PREFIX + "key-id"
META_IV = ENVELOPE_PREFIX + "iv"
META_UNENCRYPTED_SIZE = ENVELOPE_PREFIX + "unencrypted-size"
META_UNENCRYPTED_SHA256 = ENVELOPE_PREFIX + "unencrypted-sha256"

# Any mode value with this prefix marks the object as encrypted
ENCRYPTION_MODE_PREFIX = "ENC:"
MODE_AES_GCM = ENCRYPTION_MODE_PREFIX + "AES/GCM/NoPadding"

# =============================================================================
# Orchestration
# =============================================================================

TEMP_OBJECT_SUFFIX = ".temp"

# =============================================================================
# Pre-signed URL query parameters
# =============================================================================

PARAM_ACCESS_KEY = "AWSAccessKeyId"
PARAM_EXPIRES = "Expires"
PARAM_SIGNATURE = "Signature"
