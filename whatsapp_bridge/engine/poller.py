"""Polling state machine driving the capture source through the pipeline."""

from __future__ import annotations

from enum import Enum
from threading import Event, Lock
from typing import TYPE_CHECKING, Callable, Iterable

import structlog

from ..config.models import PollingConfig
from .errors import FatalCaptureError, classify_capture_error
from .pipeline import EventPipeline

if TYPE_CHECKING:
    from ..capture.base import CaptureSource


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    BACKOFF = "backoff"
    STOPPED = "stopped"


StopCallback = Callable[[str], None]


class PollingScheduler:
    """Pull batches from the capture source and feed them through the pipeline.

    The scheduler is cooperative: :meth:`stop` only flags the loop, a tick that
    is already running always finishes its batch. ``STOPPED`` is terminal.
    Every entered state is appended to :attr:`history`, including repeated
    ``BACKOFF`` states.
    """

    def __init__(
        self,
        capture: CaptureSource,
        pipeline: EventPipeline,
        config: PollingConfig | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.capture = capture
        self.pipeline = pipeline
        self.config = config or PollingConfig()
        self.logger = logger or structlog.get_logger("whatsapp_bridge.poller")
        self.state = PollerState.IDLE
        self.history: list[PollerState] = []
        self.failures = 0
        self.polls = 0
        self.stop_reason: str | None = None
        self._callbacks: list[StopCallback] = []
        self._requested: str | None = None
        self._wake = Event()
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------
    def on_stop(self, callback: StopCallback) -> None:
        self._callbacks.append(callback)

    @property
    def stopped(self) -> bool:
        return self.state is PollerState.STOPPED

    @property
    def interval_seconds(self) -> float:
        return self.config.interval_ms / 1000

    @property
    def retry_delay_seconds(self) -> float:
        return self.config.retry_delay_ms / 1000

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def start(self) -> bool:
        self._apply_request()
        if self.state is not PollerState.IDLE:
            return self.state is not PollerState.STOPPED
        if not self._capture_healthy():
            self._stop("capture_unhealthy")
            return False
        self._enter(PollerState.POLLING)
        self.logger.info("poller_started", interval_ms=self.config.interval_ms)
        return True

    def tick(self) -> float | None:
        """Run one poll attempt and return the delay before the next one."""

        self._apply_request()
        if self.stopped:
            return None
        if self.state is PollerState.IDLE and not self.start():
            return None
        try:
            if not self._capture_healthy():
                raise FatalCaptureError("capture source reported unhealthy")
            batch = list(self.capture.poll())
        except Exception as exc:  # noqa: BLE001
            return self._handle_failure(exc)

        self.polls += 1
        if batch:
            self.logger.debug("batch_received", size=len(batch))
        for raw in batch:
            try:
                self.pipeline.process(raw)
            except Exception as exc:
                self.logger.error("pipeline_error", category=raw.category, error=str(exc))
                self._stop("pipeline_error")
                raise
        self.failures = 0
        self._apply_request()
        if self.stopped:
            return None
        if self.state is not PollerState.POLLING:
            self._enter(PollerState.POLLING)
        return self.interval_seconds

    def run(self) -> str | None:
        """Block the calling thread until the scheduler stops."""

        if not self.start():
            return self.stop_reason
        while not self.stopped:
            delay = self.tick()
            if delay is None:
                break
            if self._wake.wait(delay):
                self._wake.clear()
        return self.stop_reason

    def stop(self, reason: str = "stop_requested") -> None:
        self._stop(reason)
        self._wake.set()

    def request_stop(self, reason: str = "stop_requested") -> None:
        """Flag a stop for the polling thread to apply; safe inside signal handlers."""

        if self._requested is None:
            self._requested = reason
        self._wake.set()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _handle_failure(self, exc: BaseException) -> float | None:
        error = classify_capture_error(exc, self.config.fatal_error_patterns)
        if isinstance(error, FatalCaptureError):
            self.logger.error("capture_lost", error=str(error))
            self._stop("capture_lost")
            return None
        self.failures += 1
        self.logger.warning(
            "poll_failed",
            error=str(error),
            attempt=self.failures,
            max_retries=self.config.max_retries,
        )
        if self.failures >= self.config.max_retries:
            self._stop("max_retries_exceeded")
            return None
        self._enter(PollerState.BACKOFF)
        return self.retry_delay_seconds

    def _apply_request(self) -> None:
        if self._requested is not None:
            self._stop(self._requested)

    def _capture_healthy(self) -> bool:
        try:
            return bool(self.capture.is_healthy())
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("health_check_failed", error=str(exc))
            return False

    def _enter(self, state: PollerState) -> None:
        if self.state is PollerState.STOPPED:
            return
        self.state = state
        self.history.append(state)

    def _stop(self, reason: str) -> None:
        with self._lock:
            if self.state is PollerState.STOPPED:
                return
            self.stop_reason = reason
            self._enter(PollerState.STOPPED)
            callbacks = list(self._callbacks)
        self.logger.info("poller_stopped", reason=reason, polls=self.polls)
        self._notify(callbacks, reason)

    def _notify(self, callbacks: Iterable[StopCallback], reason: str) -> None:
        for callback in callbacks:
            try:
                callback(reason)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("stop_callback_failed", error=str(exc))


__all__ = ["PollerState", "PollingScheduler"]
