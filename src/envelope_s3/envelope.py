"""
Envelope metadata: the per-object key material carried in user metadata.

An object is managed by the encryption client if and only if its user metadata
holds an encryption mode (a ``envelope-mode`` value starting with ``ENC:``).
Objects without one are plaintext.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Mapping, Optional

from .constants import (
    ENCRYPTION_MODE_PREFIX,
    ENVELOPE_PREFIX,
    META_IV,
    META_MASTER_KEY_ID,
    META_MODE,
    META_UNENCRYPTED_SHA256,
    META_UNENCRYPTED_SIZE,
    META_WRAPPED_KEY,
)
from .crypto import b64decode, b64encode
from .errors import CannotUnwrapError, CryptoError, NotEncryptedError, TransformError

if TYPE_CHECKING:
    from .transform import EncryptionTransformFactory


@dataclass(frozen=True)
class EnvelopeMetadata:
    """Parsed envelope fields of an encrypted object."""

    mode: str
    wrapped_key: bytes
    master_key_id: str
    iv: bytes
    unencrypted_size: Optional[int] = None
    unencrypted_sha256: Optional[str] = None

    @classmethod
    def from_user_metadata(cls, user_metadata: Mapping[str, str]) -> EnvelopeMetadata:
        """
        Parse envelope fields.

        Raises:
            NotEncryptedError: If no encryption mode is present
            TransformError: If the mode is present but fields are missing or malformed
        """
        mode = mode_of(user_metadata)
        if mode is None:
            raise NotEncryptedError("Object is not encrypted")

        try:
            size = user_metadata.get(META_UNENCRYPTED_SIZE)
            return cls(
                mode=mode,
                wrapped_key=b64decode(user_metadata[META_WRAPPED_KEY]),
                master_key_id=user_metadata[META_MASTER_KEY_ID],
                iv=b64decode(user_metadata[META_IV]),
                unencrypted_size=int(size) if size is not None else None,
                unencrypted_sha256=user_metadata.get(META_UNENCRYPTED_SHA256),
            )
        except KeyError as e:
            raise TransformError(f"Envelope metadata is missing {e.args[0]}") from e
        except (CryptoError, ValueError) as e:
            raise TransformError(f"Envelope metadata is malformed: {e}") from e

    def to_user_metadata(self) -> Dict[str, str]:
        entries = {
            META_MODE: self.mode,
            META_WRAPPED_KEY: b64encode(self.wrapped_key),
            META_MASTER_KEY_ID: self.master_key_id,
            META_IV: b64encode(self.iv),
        }
        if self.unencrypted_size is not None:
            entries[META_UNENCRYPTED_SIZE] = str(self.unencrypted_size)
        if self.unencrypted_sha256 is not None:
            entries[META_UNENCRYPTED_SHA256] = self.unencrypted_sha256
        return entries


def mode_of(user_metadata: Optional[Mapping[str, str]]) -> Optional[str]:
    """Return the encryption mode recorded in ``user_metadata``, or None if plaintext."""
    if not user_metadata:
        return None
    mode = user_metadata.get(META_MODE)
    if mode is None or not mode.startswith(ENCRYPTION_MODE_PREFIX):
        return None
    return mode


def is_encrypted(user_metadata: Optional[Mapping[str, str]]) -> bool:
    return mode_of(user_metadata) is not None


def can_unwrap(
    factory: EncryptionTransformFactory,
    mode: str,
    user_metadata: Mapping[str, str],
) -> bool:
    """True if ``factory`` holds a master key able to unwrap this object's key."""
    return factory.can_decode(mode, user_metadata)


def require_mode(factory: EncryptionTransformFactory, user_metadata: Mapping[str, str]) -> str:
    """
    Return the object's mode, failing fast if the object cannot be handled.

    Raises:
        NotEncryptedError: If the object carries no encryption mode
        CannotUnwrapError: If the mode or master key is not available
    """
    mode = mode_of(user_metadata)
    if mode is None:
        raise NotEncryptedError("Object is not encrypted")
    if not can_unwrap(factory, mode, user_metadata):
        key_id = user_metadata.get(META_MASTER_KEY_ID)
        raise CannotUnwrapError(f"Cannot handle encryption mode '{mode}' (master key {key_id})")
    return mode


def strip_envelope(user_metadata: Mapping[str, str]) -> Dict[str, str]:
    """Return user metadata without envelope entries."""
    return {name: value for name, value in user_metadata.items() if not name.startswith(ENVELOPE_PREFIX)}
