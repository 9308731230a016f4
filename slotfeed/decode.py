"""Gzip-transparent line decoding of fetched slot content."""

from __future__ import annotations

import gzip
import io
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from slotfeed.constants import DEFAULT_CHARSET, DEFAULT_DECODE_ERRORS, GZIP_MAGIC
from slotfeed.errors import DecodeFailure
from slotfeed.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class ReadCounters:
    bytes_read: int = 0
    records_read: int = 0


class _CountingReader(io.RawIOBase):
    def __init__(self, inner: BinaryIO, counters: ReadCounters) -> None:
        self._inner = inner
        self._counters = counters

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        chunk = self._inner.read(len(buffer))
        if not chunk:
            return 0
        size = len(chunk)
        buffer[:size] = chunk
        self._counters.bytes_read += size
        return size

    def close(self) -> None:
        try:
            self._inner.close()
        finally:
            super().close()


class ContentDecoder:
    def __init__(self, charset: str = DEFAULT_CHARSET, errors: str = DEFAULT_DECODE_ERRORS):
        self.charset = charset
        self.errors = errors

    def open(self, stream: BinaryIO) -> BinaryIO:
        """Return ``stream`` or a gzip reader over it, without consuming the sniffed bytes."""
        buffered = stream if hasattr(stream, "peek") else io.BufferedReader(stream)
        try:
            head = buffered.peek(len(GZIP_MAGIC))[: len(GZIP_MAGIC)]
        except (OSError, ValueError) as exc:
            logger.debug("Magic number sniffing failed, reading as plain text: %s", exc)
            return buffered
        if head == GZIP_MAGIC:
            return gzip.GzipFile(fileobj=buffered, mode="rb")
        return buffered

    def iter_lines(self, stream: BinaryIO, counters: ReadCounters | None = None) -> Iterator[str]:
        counters = counters if counters is not None else ReadCounters()
        source = self.open(stream)
        reader = io.TextIOWrapper(
            io.BufferedReader(_CountingReader(source, counters)),
            encoding=self.charset,
            errors=self.errors,
            newline=None,
        )
        try:
            for line in reader:
                counters.records_read += 1
                yield line[:-1] if line.endswith("\n") else line
        except (OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
            raise DecodeFailure(f"cannot decode content: {exc}") from exc
        finally:
            reader.close()
            stream.close()

    def decode(self, data: bytes, counters: ReadCounters | None = None) -> Iterator[str]:
        return self.iter_lines(io.BytesIO(data), counters)
