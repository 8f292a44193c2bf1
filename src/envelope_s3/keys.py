"""
Master keys and the key ring used to wrap per-object data keys.

This module provides:
- MasterKey: Abstract key-encryption key (wraps/unwraps data keys)
- RsaMasterKey: RSA-OAEP (SHA-256) master key, loaded from PEM
- AesMasterKey: AES-256-GCM master key
- MasterKeyRing: Current master key plus older keys kept for decryption

Key rotation works by building a new ring whose current key is the new master
key and which keeps the old keys as previous keys until every object has been
rekeyed.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .crypto import SecureKey, open_key, seal_key
from .errors import CryptoError, KeyNotFoundError

RSA_DEFAULT_KEY_SIZE = 2048

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


class MasterKey(ABC):
    """Key-encryption key that wraps per-object data keys."""

    @property
    @abstractmethod
    def key_id(self) -> str:
        """Stable fingerprint stored with every object key it wraps."""
        ...

    @abstractmethod
    def wrap(self, data_key: SecureKey) -> bytes:
        """Wrap a data key."""
        ...

    @abstractmethod
    def unwrap(self, wrapped: bytes) -> SecureKey:
        """
        Unwrap a data key.

        Raises:
            CryptoError: If the blob was not produced by this key or is corrupt
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key_id={self.key_id!r})"


class RsaMasterKey(MasterKey):
    """RSA master key; data keys are wrapped with OAEP/SHA-256."""

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        self._private_key = private_key
        public_der = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        self._key_id = hashlib.sha1(public_der).hexdigest()

    @classmethod
    def generate(cls, key_size: int = RSA_DEFAULT_KEY_SIZE) -> RsaMasterKey:
        return cls(rsa.generate_private_key(public_exponent=65537, key_size=key_size))

    @classmethod
    def from_pem(cls, pem: bytes, password: Optional[bytes] = None) -> RsaMasterKey:
        """
        Load a master key from a PEM encoded RSA private key.

        Raises:
            CryptoError: If the PEM cannot be loaded or is not an RSA key
        """
        try:
            private_key = serialization.load_pem_private_key(pem, password=password)
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Unable to load master key: {e}") from e
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise CryptoError("Master key must be an RSA private key")
        return cls(private_key)

    def to_pem(self, password: Optional[bytes] = None) -> bytes:
        encryption: serialization.KeySerializationEncryption
        if password:
            encryption = serialization.BestAvailableEncryption(password)
        else:
            encryption = serialization.NoEncryption()
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )

    @property
    def key_id(self) -> str:
        return self._key_id

    def wrap(self, data_key: SecureKey) -> bytes:
        return self._private_key.public_key().encrypt(data_key.as_bytes(), _OAEP)

    def unwrap(self, wrapped: bytes) -> SecureKey:
        try:
            return SecureKey(self._private_key.decrypt(wrapped, _OAEP))
        except ValueError:
            raise CryptoError("Unable to unwrap object key") from None


class AesMasterKey(MasterKey):
    """AES-256 master key; data keys are wrapped with AES-GCM (AAD = key id)."""

    def __init__(self, key: SecureKey, key_id: Optional[str] = None) -> None:
        self._key = key
        self._key_id = key_id or hashlib.sha256(b"envelope-s3:" + key.as_bytes()).hexdigest()[:40]

    @classmethod
    def generate(cls, key_id: Optional[str] = None) -> AesMasterKey:
        return cls(SecureKey.generate(), key_id=key_id)

    @property
    def key_id(self) -> str:
        return self._key_id

    def wrap(self, data_key: SecureKey) -> bytes:
        return seal_key(self._key, data_key, self._key_id.encode("utf-8"))

    def unwrap(self, wrapped: bytes) -> SecureKey:
        return open_key(self._key, wrapped, self._key_id.encode("utf-8"))


class MasterKeyRing:
    """
    Ordered set of master keys.

    The current key wraps every new object key and is the rekey target;
    previous keys are only used to unwrap existing object keys.
    """

    def __init__(self, current: MasterKey, previous: Iterable[MasterKey] = ()) -> None:
        self._current = current
        self._keys: Dict[str, MasterKey] = {current.key_id: current}
        for key in previous:
            self._keys.setdefault(key.key_id, key)

    @property
    def current(self) -> MasterKey:
        return self._current

    @property
    def key_ids(self) -> List[str]:
        return list(self._keys)

    def get(self, key_id: str) -> MasterKey:
        """
        Look up a master key by fingerprint.

        Raises:
            KeyNotFoundError: If the ring holds no key with this id
        """
        try:
            return self._keys[key_id]
        except KeyError:
            raise KeyNotFoundError(f"Master key {key_id} is not in the key ring") from None

    def rotated(self, new_current: MasterKey) -> MasterKeyRing:
        """Return a new ring with ``new_current`` as current key, keeping all keys."""
        return MasterKeyRing(new_current, previous=list(self._keys.values()))

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._keys

    def __iter__(self) -> Iterator[MasterKey]:
        return iter(self._keys.values())

    def __len__(self) -> int:
        return len(self._keys)
