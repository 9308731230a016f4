"""Unit of work for a single slot: retried download, then decoding."""

from __future__ import annotations

import io
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import BinaryIO

from slotfeed.connectors.base import Connector
from slotfeed.decode import ContentDecoder, ReadCounters
from slotfeed.errors import DecodeFailure, PermanentFailure, RetryExhausted
from slotfeed.models import Slot
from slotfeed.retry import RetryPolicy
from slotfeed.utils.logging import debug_event, get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class FetchResult:
    slot: Slot
    lines: Iterable[str]
    counters: ReadCounters = field(default_factory=ReadCounters)

    @property
    def bytes_read(self) -> int:
        return self.counters.bytes_read

    @property
    def records_read(self) -> int:
        return self.counters.records_read

    def buffer(self) -> FetchResult:
        """Drain the lazy line sequence so decode errors surface now."""
        if not isinstance(self.lines, list):
            self.lines = list(self.lines)
        return self

    def close(self) -> None:
        close = getattr(self.lines, "close", None)
        if close is not None:
            close()


class SlotFetchUnit:
    def __init__(
        self,
        connector: Connector,
        slot: Slot,
        *,
        retry_policy: RetryPolicy,
        decoder: ContentDecoder,
    ) -> None:
        self.connector = connector
        self.slot = slot
        self.retry_policy = retry_policy
        self.decoder = decoder

    def run(self) -> FetchResult:
        try:
            payload = self.retry_policy.execute(
                self._download,
                description=f"fetch of slot {self.slot.identifier!r}",
            )
        except RetryExhausted as exc:
            raise PermanentFailure(self.slot, exc, operation="fetch") from exc

        debug_event(logger, "slot_downloaded", slot=self.slot.identifier, size=len(payload))
        counters = ReadCounters()
        return FetchResult(
            slot=self.slot,
            lines=self._iter_lines(payload, counters),
            counters=counters,
        )

    def _download(self) -> bytes:
        content = self.connector.fetch(self.slot)
        if isinstance(content, (bytes, bytearray, memoryview)):
            return bytes(content)
        return _read_all(content)

    def _iter_lines(self, payload: bytes, counters: ReadCounters) -> Iterator[str]:
        try:
            yield from self.decoder.iter_lines(io.BytesIO(payload), counters)
        except DecodeFailure as exc:
            logger.error("Slot %s could not be decoded: %s", self.slot.identifier, exc)
            raise PermanentFailure(self.slot, exc, operation="decode") from exc


def _read_all(stream: BinaryIO) -> bytes:
    try:
        return stream.read()
    finally:
        stream.close()
