"""
AES-GCM building blocks shared by master keys and the content transform.

- SecureKey: data key / master key bytes, zeroed when collected
- seal_key / open_key: wrap a data key under an AES master key
- new_stream_encryptor / new_stream_decryptor: chunked GCM over object content
"""

from __future__ import annotations

import base64
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import (
    AEADDecryptionContext,
    AEADEncryptionContext,
    Cipher,
    algorithms,
    modes,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError

AES_128_KEY_SIZE: int = 16
AES_192_KEY_SIZE: int = 24
AES_256_KEY_SIZE: int = 32
AES_KEY_SIZES = (AES_128_KEY_SIZE, AES_192_KEY_SIZE, AES_256_KEY_SIZE)
NONCE_SIZE: int = 12
TAG_SIZE: int = 16


class SecureKey:
    """
    Raw AES key bytes held in a bytearray so they can be overwritten.

    Zeroing happens in __del__, which CPython runs when the last reference
    goes away; other interpreters may run it later or not at all.
    """

    __slots__ = ("_material",)

    def __init__(self, material: bytes | bytearray) -> None:
        if not isinstance(material, (bytes, bytearray)):
            raise CryptoError("Key material must be bytes")
        self._material = bytearray(material)

    @classmethod
    def generate(cls, size: int = AES_256_KEY_SIZE) -> SecureKey:
        if size not in AES_KEY_SIZES:
            raise CryptoError(f"Invalid AES key size: {size}")
        return cls(secrets.token_bytes(size))

    def as_bytes(self) -> bytes:
        return bytes(self._material)

    def __len__(self) -> int:
        return len(self._material)

    def __repr__(self) -> str:
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        material = getattr(self, "_material", None)
        if material is not None:
            material[:] = bytes(len(material))


def _check_key(key: SecureKey, sizes=AES_KEY_SIZES) -> None:
    if len(key) not in sizes:
        raise CryptoError(f"Invalid key size: {len(key)}")


def seal_key(master: SecureKey, data_key: SecureKey, aad: Optional[bytes] = None) -> bytes:
    """
    Wrap ``data_key`` under an AES-256 ``master`` key.

    Returns:
        nonce || ciphertext || tag
    """
    _check_key(master, (AES_256_KEY_SIZE,))
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + AESGCM(master.as_bytes()).encrypt(nonce, data_key.as_bytes(), aad)


def open_key(master: SecureKey, sealed: bytes, aad: Optional[bytes] = None) -> SecureKey:
    """
    Reverse of seal_key().

    Raises:
        CryptoError: If the blob is truncated, or was sealed under another key or AAD
    """
    _check_key(master, (AES_256_KEY_SIZE,))
    if len(sealed) < NONCE_SIZE + TAG_SIZE:
        raise CryptoError(f"Wrapped key too small: {len(sealed)} bytes")
    try:
        return SecureKey(AESGCM(master.as_bytes()).decrypt(sealed[:NONCE_SIZE], sealed[NONCE_SIZE:], aad))
    except InvalidTag:
        # No detail, so callers cannot probe which part mismatched
        raise CryptoError("Decryption failed") from None


def new_stream_encryptor(key: SecureKey, nonce: bytes) -> AEADEncryptionContext:
    """Incremental AES-GCM encryptor; read ``.tag`` after finalize()."""
    _check_key(key)
    return Cipher(algorithms.AES(key.as_bytes()), modes.GCM(nonce)).encryptor()


def new_stream_decryptor(key: SecureKey, nonce: bytes) -> AEADDecryptionContext:
    """Incremental AES-GCM decryptor; the tag is supplied to finalize_with_tag()."""
    _check_key(key)
    if len(nonce) != NONCE_SIZE:
        raise CryptoError(f"Invalid nonce size: expected {NONCE_SIZE}, got {len(nonce)}")
    return Cipher(algorithms.AES(key.as_bytes()), modes.GCM(nonce)).decryptor()


def generate_random_bytes(length: int) -> bytes:
    return secrets.token_bytes(length)


def b64encode(data: bytes) -> str:
    return base64.standard_b64encode(data).decode("ascii")


def b64decode(encoded: str) -> bytes:
    """
    Decode a standard base64 metadata value.

    Raises:
        CryptoError: If the value is not valid base64
    """
    try:
        return base64.standard_b64decode(encoded.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise CryptoError(f"Base64 decode error: {e}") from e
