"""
Codec filter: encrypts request content and decrypts response content.

The filter does nothing unless the request activates it:
- PROPERTY_ENCODE_ENTITY: encrypt the request entity. Once the downstream call
  returns (the entity has been fully consumed) the envelope metadata is merged
  into the mapping referenced by PROPERTY_USER_METADATA and published on the
  response as PROPERTY_ENCODED_METADATA.
- PROPERTY_DECODE_ENTITY: decrypt the response body if the object's user
  metadata carries an encryption mode. Plaintext objects pass through.

The filter must sit in front of the checksum filter so that checksums are
computed over ciphertext.
"""

from __future__ import annotations

import logging
from typing import Dict, MutableMapping, Optional

from .constants import (
    META_UNENCRYPTED_SIZE,
    PROPERTY_DECODE_ENTITY,
    PROPERTY_ENCODE_ENTITY,
    PROPERTY_ENCODED_METADATA,
    PROPERTY_USER_METADATA,
)
from .envelope import mode_of, require_mode
from .errors import TransformError
from .pipeline import Filter, Handler, Response
from .request import ObjectRequest
from .transform import EncryptionTransformFactory

logger = logging.getLogger(__name__)


class CodecFilter(Filter):
    """Applies the factory's encode/decode streams to activated requests."""

    def __init__(self, factory: EncryptionTransformFactory) -> None:
        self._factory = factory

    @property
    def factory(self) -> EncryptionTransformFactory:
        return self._factory

    def handle(self, request: ObjectRequest, next_handler: Handler) -> Response:
        if request.properties.get(PROPERTY_ENCODE_ENTITY):
            return self._encode(request, next_handler)

        response = next_handler(request)
        if request.properties.get(PROPERTY_DECODE_ENTITY):
            self._decode(response)
        return response

    def _encode(self, request: ObjectRequest, next_handler: Handler) -> Response:
        original = getattr(request, "entity", None)
        if original is None:
            raise TransformError(f"Nothing to encrypt for {request.bucket}/{request.key}")

        stream = self._factory.get_encode_stream(original)
        plain_length: Optional[int] = getattr(request, "content_length", None)
        request.entity = stream  # type: ignore[attr-defined]
        if plain_length is not None:
            request.content_length = self._factory.encoded_length(plain_length)  # type: ignore[attr-defined]
        try:
            response = next_handler(request)
        finally:
            request.entity = original  # type: ignore[attr-defined]
            request.content_length = plain_length  # type: ignore[attr-defined]

        # only known now that the entity has been consumed
        encoded: Dict[str, str] = stream.encoded_metadata()
        user_metadata: Optional[MutableMapping[str, str]] = request.properties.get(PROPERTY_USER_METADATA)
        if user_metadata is not None:
            user_metadata.update(encoded)
        response.properties[PROPERTY_ENCODED_METADATA] = encoded
        logger.debug("Encrypted %s/%s", request.bucket, request.key)
        return response

    def _decode(self, response: Response) -> None:
        metadata = response.metadata
        if metadata is None or response.entity is None:
            return
        if mode_of(metadata.user_metadata) is None:
            return

        try:
            require_mode(self._factory, metadata.user_metadata)
            decoded = self._factory.get_decode_stream(response.entity, metadata.user_metadata)
        except Exception:
            response.entity.close()
            raise
        response.entity = decoded
        size = metadata.user_metadata.get(META_UNENCRYPTED_SIZE)
        metadata.content_length = int(size) if size is not None else None
