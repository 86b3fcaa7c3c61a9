"""Capture-layer contract consumed by the polling scheduler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ..engine.models import RawEvent


class CaptureSource(ABC):
    """Source of raw events pulled in batches."""

    @abstractmethod
    def poll(self) -> Sequence[RawEvent]:
        """Drain and return the events queued since the previous poll."""

    @abstractmethod
    def is_healthy(self) -> bool:
        """Report whether the source can still be polled."""

    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["CaptureSource"]
