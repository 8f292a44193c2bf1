"""
Request/response filter chain.

Every client call is a request object passed through an ordered list of
filters. Each filter receives the request and a ``next_handler`` callable; the
last filter's ``next_handler`` is the terminal storage handler. Filters at the
head of the list see requests first and responses last.

This module provides:
- Response: Result of a call as seen by filters
- Filter: Abstract filter
- FilterChain: Ordered filter list with insert_before()
- LoggingFilter: Pass-through filter logging each call
- ChecksumFilter: MD5 verification of written and read content
"""

from __future__ import annotations

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import ChecksumError
from .model import ObjectMetadata
from .request import GetObjectRequest, ObjectRequest, PutObjectRequest, UploadPartRequest
from .streams import TransformStream

logger = logging.getLogger(__name__)


@dataclass
class Response:
    """Response of a single storage call."""

    status: int = 200
    entity: Optional[IO[bytes]] = None
    metadata: Optional[ObjectMetadata] = None
    etag: Optional[str] = None
    version_id: Optional[str] = None
    payload: Any = None
    properties: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[ObjectRequest], Response]


class Filter(ABC):
    """A stage of the filter chain."""

    @abstractmethod
    def handle(self, request: ObjectRequest, next_handler: Handler) -> Response:
        """Process ``request``; call ``next_handler`` to continue down the chain."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class FilterChain:
    """
    Ordered list of filters ending in a terminal handler.

    The list is only ever replaced wholesale (remove all, re-add), so a call in
    progress always runs over one consistent snapshot.
    """

    def __init__(self, handler: Handler, filters: Iterable[Filter] = ()) -> None:
        self._handler = handler
        self._filters: Tuple[Filter, ...] = tuple(filters)

    @property
    def filters(self) -> Tuple[Filter, ...]:
        return self._filters

    def add_filter(self, new_filter: Filter) -> None:
        """Append a filter at the tail (closest to the terminal handler)."""
        self._filters = self._filters + (new_filter,)

    def remove_all_filters(self) -> None:
        self._filters = ()

    def insert_before(self, predicate: Callable[[Filter], bool], new_filter: Filter) -> int:
        """
        Insert ``new_filter`` immediately before every filter matching ``predicate``.

        Other filters keep their relative order. If nothing matches, nothing is
        inserted. Inserting a filter already in the chain does nothing.

        Returns:
            Number of insertions made
        """
        if any(existing is new_filter for existing in self._filters):
            return 0

        rebuilt: List[Filter] = []
        inserted = 0
        for existing in self._filters:
            if predicate(existing):
                rebuilt.append(new_filter)
                inserted += 1
            rebuilt.append(existing)

        self.remove_all_filters()
        for existing in rebuilt:
            self.add_filter(existing)
        return inserted

    def handle(self, request: ObjectRequest) -> Response:
        filters = self._filters

        def call(index: int, current: ObjectRequest) -> Response:
            if index == len(filters):
                return self._handler(current)
            return filters[index].handle(current, lambda nxt: call(index + 1, nxt))

        return call(0, request)


class LoggingFilter(Filter):
    """Logs each call and its duration at DEBUG level."""

    def handle(self, request: ObjectRequest, next_handler: Handler) -> Response:
        start = time.perf_counter()
        response = next_handler(request)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "%s %s/%s -> %d (%.3fms)",
                request.method,
                request.bucket,
                request.key,
                response.status,
                (time.perf_counter() - start) * 1000,
            )
        return response


class _DigestingStream(TransformStream):
    def __init__(self, source: IO[bytes]) -> None:
        super().__init__(source, close_source=False)
        self._digest = hashlib.md5()

    def _update(self, chunk: bytes) -> bytes:
        self._digest.update(chunk)
        return chunk

    def hexdigest(self) -> str:
        return self._digest.hexdigest()


class _VerifyingStream(TransformStream):
    def __init__(self, source: IO[bytes], etag: str) -> None:
        super().__init__(source)
        self._etag = etag
        self._digest = hashlib.md5()

    def _update(self, chunk: bytes) -> bytes:
        self._digest.update(chunk)
        return chunk

    def _finish(self) -> bytes:
        actual = self._digest.hexdigest()
        if actual != self._etag:
            raise ChecksumError(f"Content MD5 {actual} does not match ETag {self._etag}")
        return b""


def _is_simple_etag(etag: Optional[str]) -> bool:
    # multipart ETags ("<md5>-<parts>") are not content digests
    return bool(etag) and "-" not in etag  # type: ignore[operator]


class ChecksumFilter(Filter):
    """
    Verifies content digests against storage ETags.

    Writes: the outgoing entity is digested as storage consumes it and the
    digest is compared with the returned ETag. Full reads: the body is
    digested as the caller reads it and compared at end of stream. Whatever
    bytes reach this filter are what get verified, so any content transform
    must sit in front of it.
    """

    def handle(self, request: ObjectRequest, next_handler: Handler) -> Response:
        if isinstance(request, (PutObjectRequest, UploadPartRequest)) and request.entity is not None:
            return self._handle_write(request, next_handler)

        response = next_handler(request)
        if (
            isinstance(request, GetObjectRequest)
            and request.range is None
            and response.entity is not None
            and _is_simple_etag(response.etag)
        ):
            response.entity = _VerifyingStream(response.entity, response.etag)  # type: ignore[arg-type]
        return response

    @staticmethod
    def _handle_write(request: ObjectRequest, next_handler: Handler) -> Response:
        original = request.entity  # type: ignore[attr-defined]
        digesting = _DigestingStream(original)
        request.entity = digesting  # type: ignore[attr-defined]
        try:
            response = next_handler(request)
        finally:
            request.entity = original  # type: ignore[attr-defined]

        partial = isinstance(request, PutObjectRequest) and request.range is not None
        if not partial and _is_simple_etag(response.etag) and digesting.hexdigest() != response.etag:
            raise ChecksumError(
                f"Content MD5 {digesting.hexdigest()} does not match ETag {response.etag}"
            )
        return response


def default_filters() -> List[Filter]:
    """Filters installed by a plain storage client, head first."""
    return [LoggingFilter(), ChecksumFilter()]
