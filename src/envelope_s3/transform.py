"""
Content transforms: per-object data keys wrapped by master keys.

This module provides:
- EncryptionTransformFactory: Abstract key-wrapping / content transform collaborator
- EncodeStream: Encrypting stream that yields envelope metadata once drained
- AesGcmTransformFactory: AES-GCM content encryption, data key wrapped by a MasterKeyRing

Crypto flow (write):
1. Generate a fresh data key and IV
2. Wrap the data key with the ring's current master key
3. Encrypt content with AES-GCM; the 16-byte tag is appended to the ciphertext
4. After the last byte: emit mode, wrapped key, master key id, IV,
   plaintext size and plaintext SHA-256 as user metadata

Crypto flow (read):
1. Look up the master key by the stored key id and unwrap the data key
2. Decrypt content, holding back the trailing tag
3. At end of stream verify tag, size and digest

Decrypted bytes are released before the tag is checked; a failed check
raises TransformError from the final read.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import IO, Dict, Mapping, Optional

from cryptography.exceptions import InvalidTag

from .constants import META_MASTER_KEY_ID, META_WRAPPED_KEY, MODE_AES_GCM
from .crypto import (
    AES_KEY_SIZES,
    NONCE_SIZE,
    TAG_SIZE,
    SecureKey,
    b64encode,
    generate_random_bytes,
    new_stream_decryptor,
    new_stream_encryptor,
)
from .envelope import EnvelopeMetadata
from .errors import (
    CannotUnwrapError,
    ConfigError,
    CryptoError,
    DoesNotNeedRekeyError,
    KeyNotFoundError,
    TransformError,
)
from .keys import MasterKey, MasterKeyRing
from .streams import TransformStream


class EncodeStream(TransformStream):
    """Encrypting stream; envelope metadata is available once the source is drained."""

    @abstractmethod
    def encoded_metadata(self) -> Dict[str, str]:
        """
        Envelope metadata for the content read so far.

        Raises:
            TransformError: If the source has not been fully consumed
        """
        ...


class EncryptionTransformFactory(ABC):
    """Creates encode/decode streams and re-wraps object keys."""

    encryption_mode: str

    @abstractmethod
    def can_decode(self, mode: str, user_metadata: Mapping[str, str]) -> bool:
        """True if this factory supports ``mode`` and holds the object's master key."""
        ...

    @abstractmethod
    def get_encode_stream(self, source: IO[bytes]) -> EncodeStream:
        ...

    @abstractmethod
    def get_decode_stream(self, source: IO[bytes], user_metadata: Mapping[str, str]) -> IO[bytes]:
        ...

    @abstractmethod
    def rekey(self, user_metadata: Mapping[str, str]) -> Dict[str, str]:
        """
        Re-wrap the object key with the current master key.

        Returns:
            User metadata entries to merge into the object's metadata

        Raises:
            DoesNotNeedRekeyError: If the key is already wrapped by the current master key
            CannotUnwrapError: If the wrapping master key is not available
            TransformError: If unwrapping or wrapping fails
        """
        ...

    def encoded_length(self, plain_length: int) -> Optional[int]:
        """Ciphertext length for ``plain_length`` bytes of content, if known in advance."""
        return None


class _AesGcmEncodeStream(EncodeStream):
    def __init__(self, source: IO[bytes], master_key: MasterKey, key_size: int, mode: str) -> None:
        super().__init__(source, close_source=False)
        self._mode = mode
        self._master_key_id = master_key.key_id
        self._iv = generate_random_bytes(NONCE_SIZE)
        data_key = SecureKey.generate(key_size // 8)
        try:
            self._wrapped_key = master_key.wrap(data_key)
        except CryptoError as e:
            raise TransformError(f"Unable to wrap object key: {e}") from e
        self._encryptor = new_stream_encryptor(data_key, self._iv)
        self._size = 0
        self._digest = hashlib.sha256()

    def _update(self, chunk: bytes) -> bytes:
        self._size += len(chunk)
        self._digest.update(chunk)
        return self._encryptor.update(chunk)

    def _finish(self) -> bytes:
        return self._encryptor.finalize() + self._encryptor.tag

    def encoded_metadata(self) -> Dict[str, str]:
        if not self.exhausted:
            raise TransformError("Envelope metadata is not available until the content is fully read")
        return EnvelopeMetadata(
            mode=self._mode,
            wrapped_key=self._wrapped_key,
            master_key_id=self._master_key_id,
            iv=self._iv,
            unencrypted_size=self._size,
            unencrypted_sha256=self._digest.hexdigest(),
        ).to_user_metadata()


class _AesGcmDecodeStream(TransformStream):
    def __init__(self, source: IO[bytes], data_key: SecureKey, envelope: EnvelopeMetadata) -> None:
        super().__init__(source)
        try:
            self._decryptor = new_stream_decryptor(data_key, envelope.iv)
        except CryptoError as e:
            raise TransformError(f"Unable to initialize decryption: {e}") from e
        self._envelope = envelope
        self._tail = b""
        self._size = 0
        self._digest = hashlib.sha256()

    def _emit(self, plaintext: bytes) -> bytes:
        self._size += len(plaintext)
        self._digest.update(plaintext)
        return plaintext

    def _update(self, chunk: bytes) -> bytes:
        buffered = self._tail + chunk
        if len(buffered) <= TAG_SIZE:
            self._tail = buffered
            return b""
        body, self._tail = buffered[:-TAG_SIZE], buffered[-TAG_SIZE:]
        return self._emit(self._decryptor.update(body))

    def _finish(self) -> bytes:
        if len(self._tail) != TAG_SIZE:
            raise TransformError("Encrypted content is truncated")
        try:
            final = self._emit(self._decryptor.finalize_with_tag(self._tail))
        except InvalidTag:
            raise TransformError("Encrypted content failed authentication") from None

        expected_size = self._envelope.unencrypted_size
        if expected_size is not None and expected_size != self._size:
            raise TransformError(f"Decrypted size {self._size} does not match expected {expected_size}")
        expected_digest = self._envelope.unencrypted_sha256
        if expected_digest is not None and expected_digest != self._digest.hexdigest():
            raise TransformError("Decrypted content digest does not match")
        return final


class AesGcmTransformFactory(EncryptionTransformFactory):
    """
    AES-GCM content encryption with data keys wrapped by a master key ring.

    New objects are wrapped by ``keyring.current``; any key in the ring can
    unwrap existing objects.
    """

    encryption_mode = MODE_AES_GCM

    def __init__(self, keyring: MasterKeyRing, key_size: int = 256) -> None:
        if key_size // 8 not in AES_KEY_SIZES or key_size % 8:
            raise ConfigError(f"Invalid AES key size: {key_size}", setting="key_size")
        self._keyring = keyring
        self._key_size = key_size

    @property
    def keyring(self) -> MasterKeyRing:
        return self._keyring

    @property
    def key_size(self) -> int:
        return self._key_size

    def can_decode(self, mode: str, user_metadata: Mapping[str, str]) -> bool:
        return mode == self.encryption_mode and user_metadata.get(META_MASTER_KEY_ID) in self._keyring

    def get_encode_stream(self, source: IO[bytes]) -> EncodeStream:
        return _AesGcmEncodeStream(source, self._keyring.current, self._key_size, self.encryption_mode)

    def get_decode_stream(self, source: IO[bytes], user_metadata: Mapping[str, str]) -> IO[bytes]:
        envelope = EnvelopeMetadata.from_user_metadata(user_metadata)
        if envelope.mode != self.encryption_mode:
            raise CannotUnwrapError(f"Cannot handle encryption mode '{envelope.mode}'")
        return _AesGcmDecodeStream(source, self._unwrap(envelope), envelope)  # type: ignore[return-value]

    def rekey(self, user_metadata: Mapping[str, str]) -> Dict[str, str]:
        envelope = EnvelopeMetadata.from_user_metadata(user_metadata)
        current = self._keyring.current
        if envelope.master_key_id == current.key_id:
            raise DoesNotNeedRekeyError(f"Object key is already wrapped by master key {current.key_id}")

        data_key = self._unwrap(envelope)
        try:
            wrapped = current.wrap(data_key)
        except CryptoError as e:
            raise TransformError(f"Unable to wrap object key: {e}") from e
        return {
            META_WRAPPED_KEY: b64encode(wrapped),
            META_MASTER_KEY_ID: current.key_id,
        }

    def encoded_length(self, plain_length: int) -> Optional[int]:
        return plain_length + TAG_SIZE

    def _unwrap(self, envelope: EnvelopeMetadata) -> SecureKey:
        try:
            master_key = self._keyring.get(envelope.master_key_id)
        except KeyNotFoundError as e:
            raise CannotUnwrapError(str(e)) from e
        try:
            data_key = master_key.unwrap(envelope.wrapped_key)
        except CryptoError as e:
            raise TransformError(f"Unable to unwrap object key: {e}") from e
        if len(data_key) not in AES_KEY_SIZES:
            raise TransformError(f"Unwrapped object key has invalid size {len(data_key)}")
        return data_key
