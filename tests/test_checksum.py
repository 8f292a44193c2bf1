"""
Tests for content digest verification.
"""

from __future__ import annotations

import io

import pytest

from envelope_s3 import ChecksumError, S3Client
from envelope_s3.client import StorageHandler
from envelope_s3.pipeline import ChecksumFilter, FilterChain, Response
from envelope_s3.request import GetObjectRequest, ObjectRequest, PutObjectRequest, Range
from envelope_s3.storage import InMemoryStorage, md5_hex


class TestChecksumFilter:
    def test_put_returns_content_md5(self, memory_storage: InMemoryStorage) -> None:
        client = S3Client(memory_storage)

        result = client.put("b", "k", b"payload")

        assert result.etag == md5_hex(b"payload")

    def test_put_with_wrong_etag_raises(self) -> None:
        def bad_storage(request: ObjectRequest) -> Response:
            request.entity.read()  # type: ignore[attr-defined]
            return Response(etag=md5_hex(b"something else"))

        chain = FilterChain(bad_storage, [ChecksumFilter()])

        with pytest.raises(ChecksumError):
            chain.handle(PutObjectRequest("b", "k", b"payload"))

    def test_put_restores_request_entity(self, memory_storage: InMemoryStorage) -> None:
        chain = FilterChain(StorageHandler(memory_storage), [ChecksumFilter()])
        request = PutObjectRequest("b", "k", b"payload")
        original = request.entity

        chain.handle(request)

        assert request.entity is original

    def test_get_verifies_at_end_of_stream(self, memory_storage: InMemoryStorage) -> None:
        memory_storage.put_object("b", "k", b"payload")
        # corrupt the content, keep the etag
        for obj in memory_storage._objects.values():
            obj.data = b"tampered"

        client = S3Client(memory_storage)
        result = client.get_object(GetObjectRequest("b", "k"))

        with pytest.raises(ChecksumError):
            result.read()

    def test_range_get_is_not_verified(self, memory_storage: InMemoryStorage) -> None:
        client = S3Client(memory_storage)
        client.put("b", "k", b"0123456789")

        result = client.get_object(GetObjectRequest("b", "k", range=Range(2, 4)))

        assert result.read() == b"234"

    def test_multipart_etag_is_not_verified(self) -> None:
        def multipart_storage(request: ObjectRequest) -> Response:
            return Response(entity=io.BytesIO(b"abc"), etag="0123456789abcdef-2")

        chain = FilterChain(multipart_storage, [ChecksumFilter()])

        response = chain.handle(GetObjectRequest("b", "k"))

        assert response.entity.read() == b"abc"  # type: ignore[union-attr]
