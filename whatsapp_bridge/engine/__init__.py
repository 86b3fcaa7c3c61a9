"""Engine components orchestrating dedup → transform → route → publish."""

from .errors import (
    BridgeError,
    CaptureError,
    FatalCaptureError,
    PublishError,
    TransformError,
    TransientCaptureError,
    classify_capture_error,
)
from .models import (
    Destination,
    Failed,
    Filtered,
    Ignored,
    NormalizedEvent,
    PipelineOutcome,
    Published,
    RawEvent,
    RoutingDecision,
    Skipped,
)
from .dedup import DeduplicationFilter
from .transformers import DROP, TransformationEngine
from .routing import RoutingResolver
from .stats import StatsAggregator, StatsSnapshot
from .pipeline import EventPipeline
from .poller import PollerState, PollingScheduler

__all__ = [
    "BridgeError",
    "CaptureError",
    "DROP",
    "DeduplicationFilter",
    "Destination",
    "EventPipeline",
    "Failed",
    "FatalCaptureError",
    "Filtered",
    "Ignored",
    "NormalizedEvent",
    "PipelineOutcome",
    "PollerState",
    "PollingScheduler",
    "PublishError",
    "Published",
    "RawEvent",
    "RoutingDecision",
    "RoutingResolver",
    "Skipped",
    "StatsAggregator",
    "StatsSnapshot",
    "TransformError",
    "TransformationEngine",
    "TransientCaptureError",
    "classify_capture_error",
]
