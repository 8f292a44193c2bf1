"""
Tests for the basic storage client.
"""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from envelope_s3 import (
    ConfigError,
    CopyObjectRequest,
    GetObjectRequest,
    InMemoryStorage,
    ObjectMetadata,
    ObjectNotFoundError,
    PresignedUrlRequest,
    PutObjectRequest,
    Range,
    S3Client,
    S3Config,
    StorageError,
)
from envelope_s3.constants import PARAM_ACCESS_KEY, PARAM_EXPIRES, PARAM_SIGNATURE
from envelope_s3.request import (
    AbortMultipartUploadRequest,
    CompleteMultipartUploadRequest,
    CopyPartRequest,
    InitiateMultipartUploadRequest,
    UploadPartRequest,
)

BUCKET = "plain-bucket"


@pytest.fixture
def s3(memory_storage: InMemoryStorage) -> S3Client:
    return S3Client(memory_storage, S3Config(endpoint="http://storage.local", access_key="AKID", secret_key="secret"))


class TestObjects:
    def test_put_and_get(self, s3: S3Client) -> None:
        metadata = ObjectMetadata(content_type="text/plain", user_metadata={"author": "alice"})

        result = s3.put_object(PutObjectRequest(BUCKET, "k", b"content", metadata=metadata))
        read = s3.get_object(GetObjectRequest(BUCKET, "k"))

        assert read.read() == b"content"
        assert read.metadata.user_metadata == {"author": "alice"}
        assert read.metadata.etag == result.etag
        assert result.version_id is not None

    def test_missing_object(self, s3: S3Client) -> None:
        with pytest.raises(ObjectNotFoundError, match="plain-bucket/missing"):
            s3.read_object(BUCKET, "missing")

    def test_range_read(self, s3: S3Client) -> None:
        s3.put(BUCKET, "k", b"0123456789")

        assert s3.get_object(GetObjectRequest(BUCKET, "k", range=Range(7))).read() == b"789"

    def test_range_write(self, s3: S3Client) -> None:
        s3.put(BUCKET, "k", b"0123456789")

        s3.put_object(PutObjectRequest(BUCKET, "k", b"ab", range=Range(3, 4)))

        assert s3.read_object(BUCKET, "k") == b"012ab56789"

    def test_copy_with_and_without_metadata(self, s3: S3Client) -> None:
        s3.put(BUCKET, "src", b"data", ObjectMetadata(user_metadata={"a": "1"}))

        s3.copy_object(CopyObjectRequest(BUCKET, "src", BUCKET, "same"))
        s3.copy_object(CopyObjectRequest(BUCKET, "src", BUCKET, "new", metadata=ObjectMetadata(user_metadata={"b": "2"})))

        assert s3.get_object_metadata(BUCKET, "same").user_metadata == {"a": "1"}
        assert s3.get_object_metadata(BUCKET, "new").user_metadata == {"b": "2"}
        assert s3.read_object(BUCKET, "new") == b"data"

    def test_set_object_metadata(self, s3: S3Client) -> None:
        s3.put(BUCKET, "k", b"data", ObjectMetadata(user_metadata={"a": "1"}))

        s3.set_object_metadata(BUCKET, "k", ObjectMetadata(user_metadata={"a": "2"}))

        assert s3.get_object_metadata(BUCKET, "k").user_metadata == {"a": "2"}
        assert s3.read_object(BUCKET, "k") == b"data"

    def test_delete(self, s3: S3Client) -> None:
        s3.put(BUCKET, "k", b"data")

        s3.delete_object(BUCKET, "k")
        s3.delete_object(BUCKET, "k")

        assert s3.list_keys(BUCKET) == []

    def test_request_key_updates_path(self) -> None:
        request = PutObjectRequest(BUCKET, "k", b"data")

        request.key = "k.temp"

        assert request.path == "k.temp"
        assert str(request.identity) == f"{BUCKET}/k.temp"


class TestPresignedUrl:
    def test_url_contains_signature(self, s3: S3Client) -> None:
        expiration = datetime(2030, 1, 1, tzinfo=timezone.utc)

        url = s3.get_presigned_url(PresignedUrlRequest("GET", BUCKET, "dir/file name.txt", expiration))

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.netloc == "storage.local"
        assert parsed.path == f"/{BUCKET}/dir/file%20name.txt"
        assert query[PARAM_ACCESS_KEY] == ["AKID"]
        assert query[PARAM_EXPIRES] == [str(int(expiration.timestamp()))]
        assert query[PARAM_SIGNATURE][0]

    def test_signature_depends_on_method(self, s3: S3Client) -> None:
        expiration = datetime(2030, 1, 1, tzinfo=timezone.utc)

        get = s3.get_presigned_url(PresignedUrlRequest("GET", BUCKET, "k", expiration))
        put = s3.get_presigned_url(PresignedUrlRequest("PUT", BUCKET, "k", expiration))

        assert get != put

    def test_requires_credentials(self, memory_storage: InMemoryStorage) -> None:
        with pytest.raises(ConfigError):
            S3Client(memory_storage).presign(BUCKET, "k")


class TestMultipart:
    def test_upload_parts(self, s3: S3Client) -> None:
        s3.put(BUCKET, "source", b"0123456789")
        upload = s3.initiate_multipart_upload(
            InitiateMultipartUploadRequest(BUCKET, "big", ObjectMetadata(user_metadata={"a": "1"}))
        )

        parts = [
            s3.upload_part(UploadPartRequest(BUCKET, "big", upload.upload_id, 1, b"hello ")),
            s3.copy_part(CopyPartRequest(BUCKET, "source", BUCKET, "big", upload.upload_id, 2, Range(0, 4))),
        ]
        result = s3.complete_multipart_upload(CompleteMultipartUploadRequest(BUCKET, "big", upload.upload_id, parts))

        assert s3.read_object(BUCKET, "big") == b"hello 01234"
        assert result.etag.endswith("-2")
        assert s3.get_object_metadata(BUCKET, "big").user_metadata == {"a": "1"}

    def test_abort(self, s3: S3Client) -> None:
        upload = s3.initiate_multipart_upload(InitiateMultipartUploadRequest(BUCKET, "big"))

        s3.abort_multipart_upload(AbortMultipartUploadRequest(BUCKET, "big", upload.upload_id))

        with pytest.raises(StorageError):
            s3.upload_part(UploadPartRequest(BUCKET, "big", upload.upload_id, 1, b"x"))
