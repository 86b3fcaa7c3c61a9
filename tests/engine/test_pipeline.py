from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from whatsapp_bridge.config import DedupConfig, EventTypesConfig
from whatsapp_bridge.engine.dedup import DeduplicationFilter
from whatsapp_bridge.engine.models import Destination, Failed, Filtered, Ignored, Published, RawEvent, Skipped
from whatsapp_bridge.engine.pipeline import EventPipeline, encode_payload
from whatsapp_bridge.engine.routing import RoutingResolver
from whatsapp_bridge.engine.stats import StatsAggregator
from whatsapp_bridge.engine.transformers import TransformationEngine


def _pipeline(publisher, clock) -> EventPipeline:
    counter = iter(range(1, 1000))
    transformer = TransformationEngine(
        EventTypesConfig(),
        clock=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc),
        id_factory=lambda: f"evt-{next(counter)}",
    )
    return EventPipeline(
        DeduplicationFilter(DedupConfig(), clock=clock),
        transformer,
        RoutingResolver(),
        publisher,
        stats=StatsAggregator(),
    )


def test_message_is_published_to_default(recording_publisher, clock, chat_message) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    outcome = pipeline.process(chat_message(ack=2, category="message_ack"))

    assert outcome == Published(Destination.DEFAULT)
    destination, payload = recording_publisher.messages[0]
    assert destination == "default"
    assert payload["data"]["type"] == "message_delivered"
    assert payload["internal_event_id"] == "evt-1"

    snapshot = pipeline.stats.snapshot()
    assert snapshot.total_events == 1
    assert snapshot.outcomes["published"] == 1
    assert snapshot.by_destination["default"] == 1
    assert snapshot.sample_count == 1


def test_ignored_event_keeps_envelope_verbatim(recording_publisher, clock) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    raw = RawEvent(
        category="message_create",
        payload={"id": {"_serialized": "enc-1"}, "type": "e2e_notification", "subtype": "encrypt"},
        captured_at_ms=1_700_000_000_000,
    )

    outcome = pipeline.process(raw)

    assert isinstance(outcome, Ignored)
    assert recording_publisher.messages == [
        (
            "ignored",
            {
                "id": "evt-1",
                "timestamp": "2024-01-01T00:00:00.000Z",
                "data": {
                    "type": "message_create",
                    "data": {"id": {"_serialized": "enc-1"}, "type": "e2e_notification", "subtype": "encrypt"},
                    "capturedAt": 1_700_000_000_000,
                },
            },
        )
    ]
    assert pipeline.stats.snapshot().outcomes["ignored"] == 1


def test_duplicate_is_skipped_and_counted_once(recording_publisher, clock, chat_message) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    event = chat_message(ack=1, category="message_ack")

    pipeline.process(event)
    outcome = pipeline.process(event)

    assert outcome == Skipped("duplicate")
    assert len(recording_publisher.messages) == 1
    snapshot = pipeline.stats.snapshot()
    assert snapshot.duplicates == 1
    assert snapshot.total_events == 1
    assert snapshot.outcomes["skipped"] == 0
    assert snapshot.sample_count == 1


def test_missing_category_is_skipped(recording_publisher, clock) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    outcome = pipeline.process(RawEvent(category="", payload={"id": "x"}))

    assert outcome == Skipped("missing_category")
    assert recording_publisher.messages == []
    assert pipeline.stats.snapshot().outcomes["skipped"] == 1


def test_dropped_status_is_filtered(recording_publisher, clock) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    raw = RawEvent(
        category="message_ack",
        payload={"id": {"remote": {"_serialized": "status@broadcast"}, "id": "S1", "_serialized": "s1"}, "ack": 4},
    )

    assert isinstance(pipeline.process(raw), Filtered)
    assert recording_publisher.messages == []


def test_contact_and_presence_routing(recording_publisher, clock, contact_event) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    pipeline.process(contact_event())
    pipeline.process(RawEvent(category="presence_change", payload={"id": "15554445555@c.us", "isOnline": True}))

    assert recording_publisher.destinations() == ["membership/contacts", "liveness/presence"]
    # Unmapped categories pass through as the full envelope.
    assert recording_publisher.messages[0][1]["data"]["type"] == "contact_change"


def test_connectionless_events_are_never_deduplicated(recording_publisher, clock) -> None:
    pipeline = _pipeline(recording_publisher, clock)
    raw = RawEvent(category="connection_state", payload={"state": "CONNECTED"})

    outcomes = pipeline.process_batch([raw, raw, raw])

    assert all(isinstance(outcome, Published) for outcome in outcomes)
    assert len(recording_publisher.messages) == 3
    assert len({payload["id"] for _, payload in recording_publisher.messages}) == 3


def test_publish_failure_does_not_abort_batch(publisher_factory, clock, chat_message, contact_event) -> None:
    publisher = publisher_factory(fail_destinations={"default"})
    pipeline = _pipeline(publisher, clock)

    outcomes = pipeline.process_batch([chat_message(ack=1), contact_event()])

    assert isinstance(outcomes[0], Failed)
    assert "default" in outcomes[0].error
    assert outcomes[1] == Published(Destination.MEMBERSHIP)
    snapshot = pipeline.stats.snapshot()
    assert snapshot.publish_errors == 1
    assert snapshot.outcomes["errors"] == 1
    assert snapshot.outcomes["published"] == 1


def test_disconnected_publisher_fails_event(recording_publisher, clock, chat_message) -> None:
    recording_publisher.connected = False
    pipeline = _pipeline(recording_publisher, clock)

    outcome = pipeline.process(chat_message())

    assert isinstance(outcome, Failed)
    assert "not connected" in outcome.error
    assert recording_publisher.raw == []


def test_unexpected_publisher_error_fails_only_that_event(recording_publisher, clock, chat_message) -> None:
    original = recording_publisher.publish
    attempts: list[str] = []

    def publish(destination: str, payload: bytes) -> None:
        attempts.append(destination)
        if len(attempts) == 1:
            raise OSError("No space left on device")
        original(destination, payload)

    recording_publisher.publish = publish
    pipeline = _pipeline(recording_publisher, clock)

    outcomes = pipeline.process_batch([chat_message("A1"), chat_message("A2"), chat_message("A3")])

    assert isinstance(outcomes[0], Failed)
    assert "No space left on device" in outcomes[0].error
    assert outcomes[1:] == [Published(Destination.DEFAULT), Published(Destination.DEFAULT)]
    assert len(attempts) == 3
    snapshot = pipeline.stats.snapshot()
    assert snapshot.publish_errors == 1
    assert snapshot.outcomes["errors"] == 1
    assert snapshot.sample_count == 3


def test_unexpected_stage_error_becomes_failed_outcome(recording_publisher, clock, chat_message) -> None:
    pipeline = _pipeline(recording_publisher, clock)

    def broken_envelope(raw):  # noqa: ANN001, ANN202
        raise KeyError("id")

    pipeline.transformer.envelope = broken_envelope
    outcome = pipeline.process(chat_message())

    assert isinstance(outcome, Failed)
    assert pipeline.stats.snapshot().outcomes["errors"] == 1
    assert recording_publisher.messages == []


def test_encode_payload_is_utf8_json() -> None:
    encoded = encode_payload({"body": "olá", "when": datetime(2024, 1, 1)})
    assert json.loads(encoded.decode("utf-8")) == {"body": "olá", "when": "2024-01-01 00:00:00"}
    assert "olá".encode("utf-8") in encoded
