"""Per-record processing: dedup, ignore, transform, route, publish, observe."""

from __future__ import annotations

import json
import time
from typing import Any, Mapping

import structlog

from ..publisher.base import BasePublisher
from .dedup import DeduplicationFilter
from .errors import PublishError
from .models import (
    Destination,
    Failed,
    Filtered,
    Ignored,
    PipelineOutcome,
    Published,
    RawEvent,
    RoutingDecision,
    Skipped,
)
from .routing import RoutingResolver
from .stats import StatsAggregator
from .transformers import TransformationEngine


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")


class EventPipeline:
    """Drive one raw event through every stage and report its outcome.

    Errors local to a single event never escape :meth:`process`; a failed
    publish becomes a :class:`Failed` outcome and the caller moves on to the
    next record of the batch.
    """

    def __init__(
        self,
        dedup: DeduplicationFilter,
        transformer: TransformationEngine,
        router: RoutingResolver,
        publisher: BasePublisher,
        stats: StatsAggregator | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.dedup = dedup
        self.transformer = transformer
        self.router = router
        self.publisher = publisher
        self.stats = stats or StatsAggregator()
        self.logger = logger or structlog.get_logger("whatsapp_bridge.pipeline")

    def process(self, raw: RawEvent) -> PipelineOutcome:
        started = time.perf_counter()
        try:
            outcome = self._process(raw)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("event_error", category=raw.category, error=str(exc))
            outcome = Failed(str(exc) or exc.__class__.__name__)
        if isinstance(outcome, Skipped) and outcome.reason == "duplicate":
            return outcome
        self.stats.record_processing_time((time.perf_counter() - started) * 1000)
        self.stats.record_outcome(outcome)
        return outcome

    def process_batch(self, batch: list[RawEvent]) -> list[PipelineOutcome]:
        return [self.process(raw) for raw in batch]

    def _process(self, raw: RawEvent) -> PipelineOutcome:
        if not raw.category:
            self.logger.debug("event_skipped", reason="missing_category")
            return Skipped("missing_category")
        if not self.dedup.should_process(raw):
            self.stats.record_duplicate()
            self.logger.debug("event_duplicate", category=raw.category)
            return Skipped("duplicate")

        self.stats.record_event(raw.category)
        envelope = self.transformer.envelope(raw)

        if self.transformer.is_ignored(raw):
            failure = self._publish(self.router.ignored(envelope), raw.category)
            if failure is not None:
                return failure
            self.logger.debug("event_ignored", category=raw.category)
            return Ignored()

        event = self.transformer.transform(raw, envelope)
        if event is None:
            self.logger.debug("event_filtered", category=raw.category)
            return Filtered()

        decision = self.router.decide(event)
        failure = self._publish(decision, raw.category)
        if failure is not None:
            return failure
        self.logger.debug(
            "event_published",
            category=raw.category,
            event_type=event.event_type,
            destination=decision.destination.value,
        )
        return Published(decision.destination)

    def _publish(self, decision: RoutingDecision, category: str) -> Failed | None:
        destination: Destination = decision.destination
        try:
            if not self.publisher.is_connected():
                raise PublishError("publisher is not connected")
            self.publisher.publish(destination.value, encode_payload(decision.payload))
        except Exception as exc:  # noqa: BLE001
            error = exc if isinstance(exc, PublishError) else PublishError(f"{destination.value}: {exc}")
            if error is not exc:
                error.__cause__ = exc
            self.stats.record_publish(destination, success=False)
            self.logger.error(
                "publish_failed",
                category=category,
                destination=destination.value,
                error=str(error),
            )
            return Failed(str(error))
        self.stats.record_publish(destination)
        return None


__all__ = ["EventPipeline", "encode_payload"]
