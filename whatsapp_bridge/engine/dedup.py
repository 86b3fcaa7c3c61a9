"""Time-windowed deduplication of raw capture events."""

from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from fnmatch import fnmatchcase
from threading import Lock
from typing import Any, Callable, Mapping

from ..config.models import DedupConfig
from .models import DedupCacheEntry, DedupKey, RawEvent


def _now_ms() -> int:
    return int(time.time() * 1000)


def extract_entity_id(payload: Mapping[str, Any]) -> str | None:
    """Return the serialized id of the message, contact or presence subject."""

    ident = payload.get("id") if isinstance(payload, Mapping) else None
    if isinstance(ident, str):
        return ident or None
    if isinstance(ident, Mapping):
        serialized = ident.get("_serialized")
        if isinstance(serialized, str) and serialized:
            return serialized
        inner = ident.get("id")
        if isinstance(inner, str) and inner:
            return inner
    return None


def fingerprint(payload: Mapping[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def build_key(raw: RawEvent) -> DedupKey | None:
    entity_id = extract_entity_id(raw.payload)
    if entity_id is None:
        return None
    ack = raw.payload.get("ack")
    if ack is not None and not isinstance(ack, bool):
        sub_state = str(ack)
    else:
        sub_state = fingerprint(raw.payload)
    return DedupKey(entity_id, raw.category, sub_state)


class DeduplicationFilter:
    """Suppress re-emissions of the same event inside a per-category window.

    Entries live in insertion order so the oldest sighting is always first,
    which keeps forced eviction O(1) per entry. The cache never holds more
    than ``max_entries`` keys once a call returns.
    """

    def __init__(
        self,
        config: DedupConfig | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.config = config or DedupConfig()
        self._clock = clock or _now_ms
        self._entries: OrderedDict[DedupKey, DedupCacheEntry] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def window_ms(self, category: str) -> int:
        for pattern, seconds in self.config.category_windows.items():
            if fnmatchcase(category, pattern):
                return int(seconds * 1000)
        return int(self.config.default_window_seconds * 1000)

    def should_process(self, raw: RawEvent) -> bool:
        key = build_key(raw)
        if key is None:
            return True
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not entry.expired(now):
                return False
            if entry is not None:
                del self._entries[key]
            self._entries[key] = DedupCacheEntry(key, now, self.window_ms(raw.category))
            if len(self._entries) > self.config.max_entries:
                self._evict(now)
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict(self, now: int) -> None:
        for key in [key for key, entry in self._entries.items() if entry.expired(now)]:
            del self._entries[key]
        while len(self._entries) > self.config.max_entries:
            self._entries.popitem(last=False)


__all__ = ["DeduplicationFilter", "build_key", "extract_entity_id", "fingerprint"]
