"""
Client configuration.

Both configurations can be built directly or loaded from the environment
(optionally seeded from a ``.env`` file):

    ENVELOPE_S3_ENDPOINT           storage endpoint URL
    ENVELOPE_S3_ACCESS_KEY         access key id
    ENVELOPE_S3_SECRET_KEY         secret key
    ENVELOPE_S3_PRESIGN_EXPIRY     default pre-signed URL lifetime (seconds)
    ENVELOPE_MASTER_KEY_FILES      comma separated PEM private keys, current key first
    ENVELOPE_MASTER_KEY_PASSWORD   password for the PEM files (optional)
    ENVELOPE_AES_KEY_SIZE          content key size in bits: 128, 192 or 256
    ENVELOPE_TEMP_SUFFIX           suffix of temporary objects (default ".temp")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv

from .constants import TEMP_OBJECT_SUFFIX
from .errors import ConfigError, CryptoError
from .keys import MasterKey, MasterKeyRing, RsaMasterKey
from .transform import AesGcmTransformFactory, EncryptionTransformFactory

DEFAULT_ENDPOINT = "http://localhost:9020"
DEFAULT_PRESIGN_EXPIRY_SECONDS = 900


def _load_env(env_file: Optional[Union[str, Path]]) -> None:
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()


def _int_setting(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", setting=name) from None


@dataclass
class S3Config:
    """Storage client configuration."""

    endpoint: str = DEFAULT_ENDPOINT
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    presign_expiry_seconds: int = DEFAULT_PRESIGN_EXPIRY_SECONDS

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> S3Config:
        _load_env(env_file)
        return cls(
            endpoint=os.environ.get("ENVELOPE_S3_ENDPOINT", DEFAULT_ENDPOINT).rstrip("/"),
            access_key=os.environ.get("ENVELOPE_S3_ACCESS_KEY"),
            secret_key=os.environ.get("ENVELOPE_S3_SECRET_KEY"),
            presign_expiry_seconds=_int_setting(
                "ENVELOPE_S3_PRESIGN_EXPIRY", DEFAULT_PRESIGN_EXPIRY_SECONDS
            ),
        )


@dataclass
class EncryptionConfig:
    """
    Encryption configuration: master keys, content key size, temp suffix.

    Configurations are independent values; an old and a new configuration can
    be used side by side during a master key rotation.
    """

    keyring: MasterKeyRing
    key_size: int = 256
    temp_suffix: str = TEMP_OBJECT_SUFFIX
    factory: EncryptionTransformFactory = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.temp_suffix:
            raise ConfigError("Temp object suffix must not be empty", setting="temp_suffix")
        self.factory = AesGcmTransformFactory(self.keyring, key_size=self.key_size)

    @classmethod
    def with_master_key(cls, current: MasterKey, *previous: MasterKey, key_size: int = 256) -> EncryptionConfig:
        return cls(MasterKeyRing(current, previous), key_size=key_size)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> EncryptionConfig:
        """
        Load master keys and settings from the environment.

        Raises:
            ConfigError: If no master keys are configured or a key cannot be loaded
        """
        _load_env(env_file)

        raw_files = os.environ.get("ENVELOPE_MASTER_KEY_FILES", "")
        paths = [Path(p.strip()) for p in raw_files.split(",") if p.strip()]
        if not paths:
            raise ConfigError(
                "ENVELOPE_MASTER_KEY_FILES must name at least one PEM file",
                setting="ENVELOPE_MASTER_KEY_FILES",
            )

        password = os.environ.get("ENVELOPE_MASTER_KEY_PASSWORD")
        keys: List[MasterKey] = []
        for path in paths:
            try:
                pem = path.read_bytes()
            except OSError as e:
                raise ConfigError(f"Cannot read master key file {path}: {e}", setting="ENVELOPE_MASTER_KEY_FILES") from e
            try:
                keys.append(RsaMasterKey.from_pem(pem, password.encode("utf-8") if password else None))
            except CryptoError as e:
                raise ConfigError(f"Invalid master key file {path}: {e}", setting="ENVELOPE_MASTER_KEY_FILES") from e

        return cls(
            MasterKeyRing(keys[0], keys[1:]),
            key_size=_int_setting("ENVELOPE_AES_KEY_SIZE", 256),
            temp_suffix=os.environ.get("ENVELOPE_TEMP_SUFFIX", TEMP_OBJECT_SUFFIX),
        )
