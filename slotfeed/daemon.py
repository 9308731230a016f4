from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path

from slotfeed.api_objects.types import CycleSummary, RunSummary
from slotfeed.checkpoint.factory import build_checkpoint_store
from slotfeed.config import AppConfig, dump_default_config, load_config
from slotfeed.connectors.registry import build_connector
from slotfeed.errors import CycleAborted
from slotfeed.internal.events import EventBus, InternalEvent
from slotfeed.models import utc_now
from slotfeed.pipeline import IncrementalSlotPipeline
from slotfeed.sinks import LineSink, SpoolSink
from slotfeed.utils.display.terminal import (
    print_banner,
    print_cursor_status,
    print_internal_events,
    print_run_summary,
    print_run_summary_json,
)
from slotfeed.utils.logging import debug_event, get_logger, setup_logging


class Daemon:
    """Triggers one pipeline cycle per poll interval, never two at once.

    An aborted cycle stops the loop: carrying on would let later cycles run
    against a cursor that no longer matches what was actually delivered.
    """

    def __init__(self, config: AppConfig, *, sink: LineSink | None = None):
        self.config = config
        self.logger = get_logger("slotfeed.daemon")
        self.event_bus = EventBus()
        self.connector = build_connector(config.connector)
        self.checkpoints = build_checkpoint_store(config.checkpoint)
        self.checkpoints.init_schema()
        self.sink = sink if sink is not None else SpoolSink(Path(config.daemon.spool_dir))
        self.pipeline = IncrementalSlotPipeline.from_config(
            config,
            self.connector,
            self.sink,
            self.checkpoints,
            event_bus=self.event_bus,
        )
        self.running = True
        self._wakeup = threading.Event()

    @property
    def pipeline_id(self) -> str:
        return self.config.pipeline.id

    def stop(self, *_args: object) -> None:
        # The in-flight cycle is left to finish; only the loop stops.
        self.running = False
        self._wakeup.set()
        self.event_bus.emit("run.stop_requested")

    def run(self, once: bool = False) -> RunSummary:
        started = utc_now()
        cycles: list[CycleSummary] = []
        self.event_bus.emit("run.started", once=once, pipeline_id=self.pipeline_id)
        self.logger.info(
            "Starting pipeline %s (once=%s, connector=%s)",
            self.pipeline_id,
            once,
            self.connector.name,
        )

        while self.running:
            cycle = self._run_one_cycle()
            cycles.append(cycle)
            if cycle.failure_kind is not None:
                self.running = False
                break

            if once:
                break

            if not cycle.slots_consumed:
                self.logger.debug(
                    "No new slots. Sleeping for %ss", self.config.daemon.poll_interval_seconds
                )
            self._wakeup.wait(self.config.daemon.poll_interval_seconds)

        self.checkpoints.close()
        summary = RunSummary(
            pipeline_id=self.pipeline_id,
            started_at=started,
            ended_at=utc_now(),
            once=once,
            cycles=cycles,
        )
        self.event_bus.emit("run.completed", summary=summary.to_dict())
        self.logger.info(
            "Run finished: cycles=%s slots=%s records=%s bytes=%s failed=%s",
            len(summary.cycles),
            summary.total_slots,
            summary.total_records,
            summary.total_bytes,
            summary.failed,
        )
        return summary

    def _run_one_cycle(self) -> CycleSummary:
        try:
            outcome = self.pipeline.run_cycle()
        except CycleAborted as exc:
            summary = exc.outcome.to_summary(self.pipeline_id)
            self.logger.error("Stopping pipeline %s: %s", self.pipeline_id, exc)
        else:
            summary = outcome.to_summary(self.pipeline_id)
            self._log_spooled()
            debug_event(
                self.logger,
                "cycle_done",
                pipeline=self.pipeline_id,
                slots=len(summary.slots_consumed),
                records=summary.records_read,
                watermark=summary.watermark,
            )
        self.checkpoints.append_cycle_audit(summary)
        return summary

    def _log_spooled(self) -> None:
        if isinstance(self.sink, SpoolSink) and self.sink.last_segment is not None:
            segment = self.sink.last_segment
            self.logger.info("Spooled %s lines to %s", segment.record_count, segment.path)

    def print_status(self) -> None:
        print_cursor_status(self.checkpoints.list_cursors(), self.pipeline_id)
        self.checkpoints.close()

    def reset_checkpoint(self) -> bool:
        removed = self.checkpoints.delete_cursor(self.pipeline_id)
        self.checkpoints.close()
        return removed

    def recent_events(self, limit: int = 100) -> list[InternalEvent]:
        return self.event_bus.recent(limit)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the slotfeed ingestion daemon")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument("--init-config", action="store_true", help="Write default config and exit")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    parser.add_argument("--status", action="store_true", help="Print checkpoints and exit")
    parser.add_argument(
        "--reset-checkpoint",
        action="store_true",
        help="Forget the stored cursor of the configured pipeline and exit",
    )
    parser.add_argument("--log-level", help="Override log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--json-summary", action="store_true", help="Print run summary as JSON")
    parser.add_argument("--events-limit", type=int, default=0, help="Print recent internal events")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])

    if args.init_config:
        dump_default_config(args.config)
        print(f"Wrote default config to {args.config}")
        return 0

    config = load_config(args.config)
    setup_logging(level=args.log_level or config.logging.level)
    if not args.json_summary:
        print_banner()
    daemon = Daemon(config)

    if args.status:
        daemon.print_status()
        return 0

    if args.reset_checkpoint:
        removed = daemon.reset_checkpoint()
        print(f"Checkpoint for {daemon.pipeline_id}: {'removed' if removed else 'not found'}")
        return 0

    signal.signal(signal.SIGINT, daemon.stop)
    signal.signal(signal.SIGTERM, daemon.stop)

    summary = daemon.run(once=args.once)

    if args.json_summary:
        print_run_summary_json(summary)
    else:
        print_run_summary(summary)
    if args.events_limit > 0:
        print_internal_events(daemon.recent_events(args.events_limit))

    return 1 if summary.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
