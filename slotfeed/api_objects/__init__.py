"""Public API objects for run summaries."""

from slotfeed.api_objects.types import CycleSummary, RunSummary

__all__ = ["CycleSummary", "RunSummary"]
