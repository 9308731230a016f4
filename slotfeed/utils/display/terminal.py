"""Terminal summaries for ingestion runs."""

from __future__ import annotations

import json
import os

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from slotfeed.api_objects.types import RunSummary
from slotfeed.constants import STATUS_ERROR, STATUS_INGESTING, STATUS_NEVER_RUN
from slotfeed.cursor import RangeCursor
from slotfeed.internal.events import InternalEvent

BANNER = "slotfeed :: incremental slot ingestion"


def _status_style(status: str) -> str:
    if status == STATUS_ERROR:
        return "bold red"
    if status == STATUS_INGESTING:
        return "bold green"
    if status == STATUS_NEVER_RUN:
        return "yellow"
    return "dim"


def print_run_summary(summary: RunSummary, console: Console | None = None) -> None:
    console = console or Console()
    header = (
        f"pipeline={summary.pipeline_id} | "
        f"cycles={len(summary.cycles)} | "
        f"slots={summary.total_slots} | "
        f"records={summary.total_records} | "
        f"bytes={summary.total_bytes} | "
        f"duration={summary.duration_seconds:.2f}s"
    )
    title = "Run Failed" if summary.failed else "Run Complete"
    border = "red" if summary.failed else "cyan"
    console.print(Panel(header, title=title, border_style=border))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Ended")
    table.add_column("Status")
    table.add_column("Listed", justify="right")
    table.add_column("Slots", justify="right")
    table.add_column("Records", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("Watermark")
    table.add_column("Error", overflow="fold")

    for cycle in summary.cycles:
        style = _status_style(cycle.status)
        error = ""
        if cycle.failure_kind:
            error = f"{cycle.failure_kind}: {cycle.error_message or ''}"
        table.add_row(
            cycle.ended_at.isoformat(timespec="seconds"),
            f"[{style}]{cycle.status}[/{style}]",
            str(cycle.slots_listed),
            str(len(cycle.slots_consumed)),
            str(cycle.records_read),
            str(cycle.bytes_read),
            cycle.watermark or "-",
            error,
        )
    console.print(table)


def print_run_summary_json(summary: RunSummary) -> None:
    print(json.dumps(summary.to_dict(), ensure_ascii=True))


def print_cursor_status(
    cursors: dict[str, RangeCursor],
    configured: str,
    console: Console | None = None,
) -> None:
    console = console or Console()
    table = Table(title="Pipeline Checkpoints", show_header=True, header_style="bold cyan")
    table.add_column("Pipeline", style="bold")
    table.add_column("Watermark")
    table.add_column("Excluded at watermark", overflow="fold")

    rows = dict(cursors)
    for pipeline_id, cursor in sorted(rows.items()):
        table.add_row(pipeline_id, cursor.watermark.isoformat(), ", ".join(sorted(cursor.excluded)))
    if configured not in rows:
        style = _status_style(STATUS_NEVER_RUN)
        table.add_row(configured, f"[{style}]{STATUS_NEVER_RUN}[/{style}]", "")
    console.print(table)


def print_banner(console: Console | None = None) -> None:
    if os.getenv("SLOTFEED_NO_BANNER", "").strip().lower() in {"1", "true", "yes"}:
        return
    console = console or Console()
    console.print("[bold cyan]" + BANNER + "[/bold cyan]")


def print_internal_events(events: list[InternalEvent], console: Console | None = None) -> None:
    if not events:
        return

    console = console or Console()
    table = Table(title="Recent Internal Events", show_header=True, header_style="bold cyan")
    table.add_column("Time")
    table.add_column("Topic")
    table.add_column("Payload", overflow="fold")
    for event in events:
        table.add_row(
            event.ts.isoformat(timespec="seconds"),
            event.topic,
            json.dumps(event.payload, ensure_ascii=True, sort_keys=True, default=str),
        )
    console.print(table)
