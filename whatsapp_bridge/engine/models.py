"""Value objects flowing through the event pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, NamedTuple


class Destination(str, Enum):
    """Logical publish targets resolved by the routing stage."""

    DEFAULT = "default"
    MEMBERSHIP = "membership/contacts"
    LIVENESS = "liveness/presence"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Vendor-shaped record exactly as the capture layer handed it over."""

    category: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    captured_at_ms: int = 0

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RawEvent":
        payload = record.get("data")
        if not isinstance(payload, Mapping):
            payload = {}
        captured = record.get("capturedAt")
        if not isinstance(captured, (int, float)) or isinstance(captured, bool):
            captured = time.time() * 1000
        return cls(
            category=str(record.get("type") or ""),
            payload=payload,
            captured_at_ms=int(captured),
        )

    def as_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {"type": self.category, "data": self.payload}
        if self.captured_at_ms:
            record["capturedAt"] = self.captured_at_ms
        return record


class DedupKey(NamedTuple):
    entity_id: str
    category: str
    sub_state: str


@dataclass(slots=True)
class DedupCacheEntry:
    key: DedupKey
    last_seen_ms: int
    window_ms: int

    def expired(self, now_ms: int) -> bool:
        # Strictly older than the window counts as fresh.
        return now_ms - self.last_seen_ms > self.window_ms


@dataclass(frozen=True, slots=True)
class NormalizedEvent:
    """Schema-stable event produced by the transformation engine.

    ``category`` is the raw event category and drives routing; ``body`` holds
    the category specific fields. A passthrough event carries the untouched
    envelope and serializes back to it.
    """

    internal_event_id: str
    timestamp: str
    category: str
    body: Mapping[str, Any]
    passthrough: bool = False
    envelope: Mapping[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.passthrough and self.envelope is not None:
            return dict(self.envelope)
        return {
            "internal_event_id": self.internal_event_id,
            "timestamp": self.timestamp,
            "data": dict(self.body),
        }

    @property
    def event_type(self) -> str:
        value = self.body.get("type") if isinstance(self.body, Mapping) else None
        return str(value) if value else self.category


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    destination: Destination
    payload: Mapping[str, Any]
    event: NormalizedEvent | None = None

    @property
    def ignored(self) -> bool:
        return self.destination is Destination.IGNORED


class PipelineOutcome:
    """Base for the per-event outcome variants."""

    kind: ClassVar[str] = "unknown"


@dataclass(frozen=True, slots=True)
class Published(PipelineOutcome):
    destination: Destination
    kind: ClassVar[str] = "published"


@dataclass(frozen=True, slots=True)
class Ignored(PipelineOutcome):
    destination: Destination = Destination.IGNORED
    kind: ClassVar[str] = "ignored"


@dataclass(frozen=True, slots=True)
class Filtered(PipelineOutcome):
    kind: ClassVar[str] = "filtered"


@dataclass(frozen=True, slots=True)
class Skipped(PipelineOutcome):
    reason: str
    kind: ClassVar[str] = "skipped"


@dataclass(frozen=True, slots=True)
class Failed(PipelineOutcome):
    error: str
    kind: ClassVar[str] = "failed"


__all__ = [
    "DedupCacheEntry",
    "DedupKey",
    "Destination",
    "Failed",
    "Filtered",
    "Ignored",
    "NormalizedEvent",
    "PipelineOutcome",
    "Published",
    "RawEvent",
    "RoutingDecision",
    "Skipped",
]
