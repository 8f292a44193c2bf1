"""Readable stream wrappers that transform content chunk by chunk."""

from __future__ import annotations

import io
from typing import IO

STREAM_CHUNK_SIZE = 64 * 1024


class TransformStream(io.RawIOBase):
    """
    Readable stream that passes ``source`` through ``_update``/``_finish``.

    Subclasses override ``_update`` (called per source chunk) and ``_finish``
    (called once the source is exhausted). Both return the bytes to emit.
    """

    chunk_size = STREAM_CHUNK_SIZE

    def __init__(self, source: IO[bytes], close_source: bool = True) -> None:
        super().__init__()
        self._source = source
        self._close_source = close_source
        self._pending = bytearray()
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        """True once the source has been fully read and ``_finish`` has run."""
        return self._exhausted

    def readable(self) -> bool:
        return True

    def _update(self, chunk: bytes) -> bytes:
        return chunk

    def _finish(self) -> bytes:
        return b""

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        while not self._pending and not self._exhausted:
            chunk = self._source.read(self.chunk_size)
            if chunk:
                self._pending += self._update(chunk)
            else:
                self._exhausted = True
                self._pending += self._finish()
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        del self._pending[:size]
        return size

    def close(self) -> None:
        if not self.closed and self._close_source:
            self._source.close()
        super().close()
