"""slotfeed core package."""

__version__ = "0.1.0"

from slotfeed.api_objects import CycleSummary, RunSummary  # noqa: E402
from slotfeed.config import AppConfig, load_config  # noqa: E402
from slotfeed.constants import APP_NAME  # noqa: E402
from slotfeed.cursor import RangeCursor  # noqa: E402
from slotfeed.decode import ContentDecoder  # noqa: E402
from slotfeed.errors import (  # noqa: E402
    CycleAborted,
    DecodeFailure,
    FetchFailure,
    ListFailure,
    PermanentFailure,
    RetryExhausted,
)
from slotfeed.fetch import FetchResult, SlotFetchUnit  # noqa: E402
from slotfeed.models import Slot  # noqa: E402
from slotfeed.pipeline import CycleState, IncrementalSlotPipeline  # noqa: E402
from slotfeed.retry import RetryPolicy  # noqa: E402

__all__ = [
    "APP_NAME",
    "AppConfig",
    "ContentDecoder",
    "CycleAborted",
    "CycleState",
    "CycleSummary",
    "DecodeFailure",
    "FetchFailure",
    "FetchResult",
    "IncrementalSlotPipeline",
    "ListFailure",
    "PermanentFailure",
    "RangeCursor",
    "RetryExhausted",
    "RetryPolicy",
    "RunSummary",
    "Slot",
    "SlotFetchUnit",
    "__version__",
    "load_config",
]
