"""Counters and processing-time samples for a running bridge."""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass
from threading import Lock
from types import MappingProxyType
from typing import Callable, Mapping

from .models import Destination, PipelineOutcome

OUTCOME_KEYS = ("published", "ignored", "filtered", "skipped", "errors")


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Immutable point-in-time view of a :class:`StatsAggregator`."""

    total_events: int
    by_category: Mapping[str, int]
    outcomes: Mapping[str, int]
    duplicates: int
    by_destination: Mapping[str, int]
    publish_errors: int
    sample_count: int
    average_ms: float
    min_ms: float | None
    max_ms: float | None
    uptime_seconds: float
    event_rate: float
    message_rate: float

    @property
    def messages_sent(self) -> int:
        return sum(self.by_destination.values())

    def as_dict(self) -> dict:
        return {
            "events": {
                "total": self.total_events,
                "rate": round(self.event_rate, 2),
                "duplicates": self.duplicates,
                "by_category": dict(self.by_category),
                **dict(self.outcomes),
            },
            "messages": {
                "total": self.messages_sent,
                "rate": round(self.message_rate, 2),
                "errors": self.publish_errors,
                "by_destination": dict(self.by_destination),
            },
            "performance": {
                "samples": self.sample_count,
                "average_ms": self.average_ms,
                "min_ms": self.min_ms,
                "max_ms": self.max_ms,
            },
            "uptime_seconds": self.uptime_seconds,
        }


class StatsAggregator:
    """Owned, resettable statistics state shared by the pipeline and reporters."""

    def __init__(self, capacity: int = 1000, clock: Callable[[], float] | None = None) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._clock = clock or time.monotonic
        self._lock = Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._total = 0
        self._by_category: Counter[str] = Counter()
        self._outcomes: Counter[str] = Counter({key: 0 for key in OUTCOME_KEYS})
        self._duplicates = 0
        self._by_destination: Counter[str] = Counter()
        self._publish_errors = 0
        self._samples: deque[float] = deque(maxlen=self.capacity)
        self._sample_sum = 0.0
        self._min: float | None = None
        self._max: float | None = None
        self._started = self._clock()

    def record_event(self, category: str) -> None:
        with self._lock:
            self._total += 1
            self._by_category[category or "unknown"] += 1

    def record_duplicate(self) -> None:
        with self._lock:
            self._duplicates += 1

    def record_outcome(self, outcome: PipelineOutcome | str) -> None:
        kind = outcome if isinstance(outcome, str) else outcome.kind
        key = "errors" if kind == "failed" else kind
        with self._lock:
            self._outcomes[key] += 1

    def record_publish(self, destination: Destination | str, success: bool = True) -> None:
        name = destination.value if isinstance(destination, Destination) else str(destination)
        with self._lock:
            if success:
                self._by_destination[name] += 1
            else:
                self._publish_errors += 1

    def record_processing_time(self, elapsed_ms: float) -> None:
        with self._lock:
            if len(self._samples) == self._samples.maxlen:
                self._sample_sum -= self._samples[0]
            self._samples.append(elapsed_ms)
            self._sample_sum += elapsed_ms
            self._min = elapsed_ms if self._min is None else min(self._min, elapsed_ms)
            self._max = elapsed_ms if self._max is None else max(self._max, elapsed_ms)

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            uptime = max(self._clock() - self._started, 0.0)
            count = len(self._samples)
            sent = sum(self._by_destination.values())
            return StatsSnapshot(
                total_events=self._total,
                by_category=MappingProxyType(dict(self._by_category)),
                outcomes=MappingProxyType(dict(self._outcomes)),
                duplicates=self._duplicates,
                by_destination=MappingProxyType(dict(self._by_destination)),
                publish_errors=self._publish_errors,
                sample_count=count,
                average_ms=self._sample_sum / count if count else 0.0,
                min_ms=self._min,
                max_ms=self._max,
                uptime_seconds=uptime,
                event_rate=self._total / uptime if uptime > 0 else 0.0,
                message_rate=sent / uptime if uptime > 0 else 0.0,
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()


__all__ = ["OUTCOME_KEYS", "StatsAggregator", "StatsSnapshot"]
