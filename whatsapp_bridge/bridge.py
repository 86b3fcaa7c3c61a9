"""Bridge orchestrator wiring capture, pipeline, publisher, stats and reporting."""

from __future__ import annotations

from threading import Lock
from typing import Any, Callable

from rich.console import Console

from .capture import BrowserCaptureSource, CaptureSource
from .config import BridgeConfig
from .engine import (
    DeduplicationFilter,
    EventPipeline,
    PollerState,
    PollingScheduler,
    RoutingResolver,
    StatsAggregator,
    StatsSnapshot,
    TransformationEngine,
)
from .engine.errors import BridgeError, CaptureError
from .logging_conf import component_logger
from .publisher import BasePublisher, NatsPublisher
from .scheduler import APSchedulerAdapter
from .ui import StatsReporter


class Bridge:
    """Central coordinator owning one capture → NATS relay run."""

    def __init__(
        self,
        config: BridgeConfig,
        capture: CaptureSource,
        publisher: BasePublisher,
        scheduler: APSchedulerAdapter | None = None,
        stats: StatsAggregator | None = None,
        console: Console | None = None,
        verbose: bool = False,
    ) -> None:
        self.config = config
        self.capture = capture
        self.publisher = publisher
        self.scheduler = scheduler
        self.console = console or Console()
        self.logger = component_logger("bridge", verbose)
        self.stats = stats or StatsAggregator(capacity=config.stats.sample_capacity)
        self.dedup = DeduplicationFilter(config.dedup)
        self.transformer = TransformationEngine(config.event_types, logger=component_logger("transformer"))
        self.router = RoutingResolver(config.event_types)
        self.pipeline = EventPipeline(
            self.dedup,
            self.transformer,
            self.router,
            self.publisher,
            stats=self.stats,
            logger=component_logger("pipeline"),
        )
        self.poller = PollingScheduler(
            self.capture, self.pipeline, config.polling, logger=component_logger("poller")
        )
        self.poller.on_stop(self._on_poller_stop)
        self.running = False
        self._lock = Lock()
        self._stop_hooks: list[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    def run(self, prepare: bool = True) -> str | None:
        """Relay events until the poller stops; return the stop reason."""

        with self._lock:
            if self.running:
                raise BridgeError("Bridge is already running")
            self.running = True
        try:
            if prepare:
                self._prepare()
            self._start_reporter()
            self.logger.info("bridge_started")
            reason = self.poller.run()
        finally:
            self._teardown()
        self.logger.info("bridge_stopped", reason=reason, stats=self.stats.snapshot().as_dict())
        return reason

    def stop(self, reason: str = "stop_requested") -> None:
        self.poller.stop(reason)

    def request_stop(self, reason: str = "stop_requested") -> None:
        self.poller.request_stop(reason)

    @property
    def starting(self) -> bool:
        """True while the bridge is connecting, logging in or injecting."""

        return self.running and self.poller.state is PollerState.IDLE

    def on_stop(self, callback: Callable[[str], None]) -> None:
        self._stop_hooks.append(callback)

    def reset_stats(self) -> None:
        self.stats.reset()
        self.logger.info("stats_reset")

    def snapshot(self) -> StatsSnapshot:
        return self.stats.snapshot()

    def status(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "browser": self.capture.is_healthy() if self.running else getattr(self.capture, "available", False),
            "publisher": self.publisher.is_connected(),
            "poller": self.poller.state.value,
            "stop_reason": self.poller.stop_reason,
            "dedup_entries": len(self.dedup),
        }
        if isinstance(self.publisher, NatsPublisher):
            info["servers"] = list(self.config.nats.servers)
        return info

    def report(self) -> None:
        StatsReporter(self.snapshot, self.console, self.config.nats.subjects(), self.status)()

    # ------------------------------------------------------------------
    def _prepare(self) -> None:
        if isinstance(self.publisher, NatsPublisher):
            self.publisher.connect()
        if isinstance(self.capture, BrowserCaptureSource):
            self.capture.launch()
            if not self.capture.wait_for_authentication():
                raise CaptureError("WhatsApp Web authentication timed out")
            if not self.capture.inject():
                raise CaptureError("Event listener injection could not be verified")

    def _start_reporter(self) -> None:
        if self.scheduler is None or not self.config.stats.enabled:
            return
        reporter = StatsReporter(self.snapshot, self.console, self.config.nats.subjects())
        self.scheduler.schedule_stats(reporter, self.config.stats.display_interval_seconds)
        self.scheduler.start()

    def _teardown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()
        try:
            self.publisher.flush()
        except BridgeError as exc:
            self.logger.warning("publisher_flush_failed", error=str(exc))
        self.publisher.close()
        self.capture.close()
        with self._lock:
            self.running = False

    def _on_poller_stop(self, reason: str) -> None:
        self.logger.info("poller_stop_observed", reason=reason)
        for hook in list(self._stop_hooks):
            hook(reason)


__all__ = ["Bridge"]
