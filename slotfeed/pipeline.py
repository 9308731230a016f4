"""One ingestion cycle: list, filter, fetch, commit.

A cycle either commits completely (every eligible slot delivered to the sink
in listing order, then the advanced cursor persisted) or aborts without
delivering anything and leaves the cursor where it was.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from slotfeed.api_objects.types import CycleSummary
from slotfeed.connectors.base import Connector
from slotfeed.constants import (
    DEFAULT_PIPELINE_ID,
    FAILURE_CANCELLED,
    FAILURE_CHECKPOINT,
    FAILURE_DECODE,
    FAILURE_DELIVERY,
    FAILURE_FETCH,
    FAILURE_LIST,
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_INGESTING,
)
from slotfeed.cursor import RangeCursor
from slotfeed.decode import ContentDecoder
from slotfeed.errors import (
    CycleAborted,
    CycleCancelled,
    CycleInProgress,
    PermanentFailure,
    RetryExhausted,
)
from slotfeed.fetch import FetchResult, SlotFetchUnit
from slotfeed.internal.events import EventBus
from slotfeed.models import Slot, utc_now
from slotfeed.retry import RetryPolicy
from slotfeed.sinks import LineSink
from slotfeed.utils.logging import debug_event, get_logger

if TYPE_CHECKING:
    from slotfeed.checkpoint.base import CheckpointStore
    from slotfeed.config import AppConfig

logger = get_logger(__name__)


class CycleState(StrEnum):
    IDLE = "idle"
    LISTING = "listing"
    FILTERING = "filtering"
    FETCHING = "fetching"
    COMMITTING = "committing"
    ABORTED = "aborted"


@dataclass(slots=True, frozen=True)
class CycleSuccess:
    consumed_slots: tuple[Slot, ...]
    cursor: RangeCursor
    previous_cursor: RangeCursor
    started_at: datetime
    ended_at: datetime
    slots_listed: int = 0
    records_read: int = 0
    bytes_read: int = 0

    def to_summary(self, pipeline_id: str) -> CycleSummary:
        return CycleSummary(
            pipeline_id=pipeline_id,
            status=STATUS_INGESTING if self.consumed_slots else STATUS_IDLE,
            started_at=self.started_at,
            ended_at=self.ended_at,
            slots_listed=self.slots_listed,
            slots_eligible=len(self.consumed_slots),
            slots_consumed=[slot.identifier for slot in self.consumed_slots],
            records_read=self.records_read,
            bytes_read=self.bytes_read,
            watermark=self.cursor.watermark.isoformat(),
            excluded=sorted(self.cursor.excluded),
        )


@dataclass(slots=True, frozen=True)
class CycleFailure:
    kind: str
    cause: BaseException
    cursor: RangeCursor
    started_at: datetime
    ended_at: datetime
    slot: Slot | None = None
    slots_listed: int = 0
    slots_eligible: int = 0

    def describe(self) -> str:
        target = f" slot={self.slot.identifier!r}" if self.slot is not None else ""
        return f"cycle aborted during {self.kind}{target}: {self.cause}"

    def to_summary(self, pipeline_id: str) -> CycleSummary:
        return CycleSummary(
            pipeline_id=pipeline_id,
            status=STATUS_ERROR,
            started_at=self.started_at,
            ended_at=self.ended_at,
            slots_listed=self.slots_listed,
            slots_eligible=self.slots_eligible,
            watermark=self.cursor.watermark.isoformat(),
            excluded=sorted(self.cursor.excluded),
            failure_kind=self.kind,
            error_message=str(self.cause),
        )


CycleOutcome = CycleSuccess | CycleFailure


@dataclass(slots=True)
class _CycleContext:
    cursor: RangeCursor
    started_at: datetime
    slots_listed: int = 0
    eligible: list[Slot] = field(default_factory=list)


class IncrementalSlotPipeline:
    def __init__(
        self,
        connector: Connector,
        sink: LineSink,
        *,
        cursor: RangeCursor | None = None,
        checkpoints: CheckpointStore | None = None,
        pipeline_id: str = DEFAULT_PIPELINE_ID,
        retry_policy: RetryPolicy | None = None,
        decoder: ContentDecoder | None = None,
        max_workers: int = 1,
        max_slots_per_cycle: int | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.connector = connector
        self.sink = sink
        self.checkpoints = checkpoints
        self.pipeline_id = pipeline_id
        self.retry_policy = retry_policy or RetryPolicy()
        self.decoder = decoder or ContentDecoder()
        self.max_workers = max(1, max_workers)
        self.max_slots_per_cycle = max_slots_per_cycle
        self.event_bus = event_bus or EventBus()
        self.last_outcome: CycleOutcome | None = None

        self._cursor = cursor if cursor is not None else RangeCursor.beginning()
        self._state = CycleState.IDLE
        self._cycle_lock = threading.Lock()
        self._stop_requested = threading.Event()

    @classmethod
    def resume(
        cls,
        connector: Connector,
        sink: LineSink,
        *,
        checkpoints: CheckpointStore,
        pipeline_id: str = DEFAULT_PIPELINE_ID,
        initial_cursor: RangeCursor | None = None,
        **kwargs,
    ) -> IncrementalSlotPipeline:
        """Start from the persisted cursor if there is one, else from ``initial_cursor``."""
        stored = checkpoints.load_cursor(pipeline_id)
        if stored is not None:
            logger.info(
                "Resuming pipeline %s from checkpoint (watermark=%s, excluded=%s)",
                pipeline_id,
                stored.watermark.isoformat(),
                len(stored.excluded),
            )
            cursor = stored
        else:
            cursor = initial_cursor if initial_cursor is not None else RangeCursor.beginning()
            logger.info(
                "No checkpoint for pipeline %s, starting at %s",
                pipeline_id,
                cursor.watermark.isoformat(),
            )
        return cls(
            connector,
            sink,
            cursor=cursor,
            checkpoints=checkpoints,
            pipeline_id=pipeline_id,
            **kwargs,
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        connector: Connector,
        sink: LineSink,
        checkpoints: CheckpointStore,
        *,
        event_bus: EventBus | None = None,
    ) -> IncrementalSlotPipeline:
        pipeline = config.pipeline
        return cls.resume(
            connector,
            sink,
            checkpoints=checkpoints,
            pipeline_id=pipeline.id,
            initial_cursor=pipeline.initial_cursor(),
            retry_policy=RetryPolicy(pipeline.max_retries, pipeline.retry_backoff_seconds),
            decoder=ContentDecoder(pipeline.charset, pipeline.decode_errors),
            max_workers=pipeline.max_workers,
            max_slots_per_cycle=pipeline.max_slots_per_cycle,
            event_bus=event_bus,
        )

    @property
    def cursor(self) -> RangeCursor:
        return self._cursor

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def request_stop(self) -> None:
        self._stop_requested.set()
        self.event_bus.emit("cycle.stop_requested", pipeline_id=self.pipeline_id)

    def select(self, candidates: Iterable[Slot]) -> list[Slot]:
        eligible = self._cursor.filter(candidates)
        limit = self.max_slots_per_cycle
        if limit is not None and len(eligible) > limit:
            # Keep the oldest, so the advanced cursor never jumps over an untaken slot.
            oldest = sorted(range(len(eligible)), key=lambda idx: eligible[idx].timestamp)
            eligible = [eligible[idx] for idx in sorted(oldest[:limit])]
        return eligible

    def run_cycle(self) -> CycleSuccess:
        if not self._cycle_lock.acquire(blocking=False):
            raise CycleInProgress(f"pipeline {self.pipeline_id!r} is already running a cycle")
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> CycleSuccess:
        ctx = _CycleContext(cursor=self._cursor, started_at=utc_now())
        self.event_bus.emit(
            "cycle.started",
            pipeline_id=self.pipeline_id,
            watermark=ctx.cursor.watermark.isoformat(),
        )

        self._transition(CycleState.LISTING)
        try:
            candidates = self.retry_policy.execute(
                self.connector.list_slots,
                description=f"listing of connector {self.connector.name!r}",
            )
        except RetryExhausted as exc:
            raise self._abort(ctx, FAILURE_LIST, exc) from exc
        ctx.slots_listed = len(candidates)

        self._transition(CycleState.FILTERING)
        ctx.eligible = self.select(candidates)
        self.event_bus.emit(
            "cycle.listed",
            pipeline_id=self.pipeline_id,
            listed=ctx.slots_listed,
            eligible=len(ctx.eligible),
        )

        results: list[FetchResult] = []
        if ctx.eligible:
            self._transition(CycleState.FETCHING)
            try:
                results = self._fetch_all(ctx.eligible)
            except PermanentFailure as exc:
                kind = FAILURE_DECODE if exc.operation == FAILURE_DECODE else FAILURE_FETCH
                raise self._abort(ctx, kind, exc, slot=exc.slot) from exc
            except CycleCancelled as exc:
                raise self._abort(ctx, FAILURE_CANCELLED, exc) from exc

        self._transition(CycleState.COMMITTING)
        try:
            for result in results:
                self.sink.write(result)
            self.sink.commit()
        except Exception as exc:
            self.sink.discard()
            raise self._abort(ctx, FAILURE_DELIVERY, exc) from exc

        new_cursor = ctx.cursor.advance(ctx.eligible)
        if self.checkpoints is not None:
            try:
                self.checkpoints.save_cursor(self.pipeline_id, new_cursor)
            except Exception as exc:
                # The lines will be delivered again by the next cycle.
                self.sink.discard()
                raise self._abort(ctx, FAILURE_CHECKPOINT, exc) from exc
        self._cursor = new_cursor

        outcome = CycleSuccess(
            consumed_slots=tuple(ctx.eligible),
            cursor=new_cursor,
            previous_cursor=ctx.cursor,
            started_at=ctx.started_at,
            ended_at=utc_now(),
            slots_listed=ctx.slots_listed,
            records_read=sum(result.records_read for result in results),
            bytes_read=sum(result.bytes_read for result in results),
        )
        self.last_outcome = outcome
        self._transition(CycleState.IDLE)
        self.event_bus.emit(
            "cycle.committed",
            pipeline_id=self.pipeline_id,
            slots=len(outcome.consumed_slots),
            records=outcome.records_read,
            watermark=new_cursor.watermark.isoformat(),
        )
        if outcome.consumed_slots:
            logger.info(
                "Cycle committed: slots=%s records=%s bytes=%s watermark=%s",
                len(outcome.consumed_slots),
                outcome.records_read,
                outcome.bytes_read,
                new_cursor.watermark.isoformat(),
            )
        else:
            logger.debug("Cycle committed with no new slots (listed=%s)", ctx.slots_listed)
        return outcome

    def _fetch_all(self, slots: list[Slot]) -> list[FetchResult]:
        if self.max_workers == 1 or len(slots) == 1:
            results: list[FetchResult] = []
            try:
                for slot in slots:
                    results.append(self._fetch_one(slot))
            except BaseException:
                for result in results:
                    result.close()
                raise
            return results

        workers = min(self.max_workers, len(slots))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="slotfeed-fetch") as pool:
            futures = [pool.submit(self._fetch_one, slot) for slot in slots]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [
                future
                for future in futures
                if future in done and future.exception() is not None
            ]
            if failed:
                for future in futures:
                    future.cancel()
                raise failed[0].exception()
            return [future.result() for future in futures]

    def _fetch_one(self, slot: Slot) -> FetchResult:
        if self._stop_requested.is_set():
            raise CycleCancelled(f"stop requested before fetching {slot.identifier!r}")
        unit = SlotFetchUnit(
            self.connector,
            slot,
            retry_policy=self.retry_policy,
            decoder=self.decoder,
        )
        result = unit.run().buffer()
        self.event_bus.emit(
            "slot.fetched",
            pipeline_id=self.pipeline_id,
            slot=slot.identifier,
            records=result.records_read,
            bytes=result.bytes_read,
        )
        debug_event(
            logger,
            "slot_fetched",
            slot=slot.identifier,
            records=result.records_read,
            bytes=result.bytes_read,
        )
        return result

    def _transition(self, state: CycleState) -> None:
        previous = self._state
        self._state = state
        self.event_bus.emit(
            "cycle.state",
            pipeline_id=self.pipeline_id,
            previous=previous.value,
            state=state.value,
        )
        debug_event(
            logger, "cycle_state", pipeline=self.pipeline_id, previous=previous, state=state
        )

    def _abort(
        self,
        ctx: _CycleContext,
        kind: str,
        cause: BaseException,
        *,
        slot: Slot | None = None,
    ) -> CycleAborted:
        failure = CycleFailure(
            kind=kind,
            cause=cause,
            cursor=self._cursor,
            started_at=ctx.started_at,
            ended_at=utc_now(),
            slot=slot,
            slots_listed=ctx.slots_listed,
            slots_eligible=len(ctx.eligible),
        )
        self.last_outcome = failure
        self._transition(CycleState.ABORTED)
        self.event_bus.emit(
            "cycle.aborted",
            pipeline_id=self.pipeline_id,
            kind=kind,
            slot=slot.identifier if slot is not None else None,
            error=str(cause),
        )
        logger.error(
            "Pipeline %s %s (cursor stays at %s)",
            self.pipeline_id,
            failure.describe(),
            self._cursor.watermark.isoformat(),
        )
        return CycleAborted(failure)
