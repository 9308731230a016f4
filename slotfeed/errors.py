"""Exception hierarchy for listing, fetching, decoding and cycle control."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from slotfeed.models import Slot
    from slotfeed.pipeline import CycleFailure


class SlotFeedError(Exception):
    """Base class for every error raised by slotfeed."""


class ConfigError(SlotFeedError):
    pass


class ListFailure(SlotFeedError):
    """Transient failure while listing slots on the remote side."""


class FetchFailure(SlotFeedError):
    """Transient failure while fetching the content of one slot."""


class DecodeFailure(SlotFeedError):
    """Content could not be decompressed or decoded into text lines."""


class RetryExhausted(SlotFeedError):
    def __init__(self, description: str, attempts: int, cause: BaseException | None) -> None:
        self.description = description
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"{description} failed after {attempts} attempt(s): {cause!r}")


class PermanentFailure(SlotFeedError):
    """A slot could not be turned into lines; fatal to the owning cycle."""

    def __init__(self, slot: Slot, cause: BaseException, *, operation: str) -> None:
        self.slot = slot
        self.cause = cause
        self.operation = operation
        super().__init__(f"{operation} of slot {slot.identifier!r} failed permanently: {cause}")


class CycleAborted(SlotFeedError):
    """Raised to the trigger when a cycle ends without committing."""

    def __init__(self, outcome: CycleFailure) -> None:
        self.outcome = outcome
        super().__init__(outcome.describe())

    @property
    def kind(self) -> str:
        return self.outcome.kind


class CycleInProgress(SlotFeedError):
    """A cycle was triggered while another one was still running."""


class CycleCancelled(SlotFeedError):
    """A stop was requested before every slot of the cycle was fetched."""
