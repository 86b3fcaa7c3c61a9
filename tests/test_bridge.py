from __future__ import annotations

from typing import Any

import pytest
from rich.console import Console

from whatsapp_bridge.bridge import Bridge
from whatsapp_bridge.capture.browser import BrowserCaptureSource
from whatsapp_bridge.engine.errors import BridgeError, CaptureError, TransientCaptureError
from whatsapp_bridge.engine.models import RawEvent


class StubAdapter:
    def __init__(self) -> None:
        self.jobs: list[tuple[Any, float]] = []
        self.started = False
        self.stopped = False

    def schedule_stats(self, callback, interval_seconds: float) -> None:  # noqa: ANN001
        self.jobs.append((callback, interval_seconds))

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.stopped = True


def _bridge(config, capture, publisher, **kwargs) -> Bridge:  # noqa: ANN001
    return Bridge(config, capture, publisher, console=Console(record=True, width=120), **kwargs)


def test_run_relays_batches_until_capture_is_lost(
    bridge_config, scripted_capture, recording_publisher, chat_message, contact_event
) -> None:
    capture = scripted_capture(
        [chat_message(ack=1), contact_event()],
        TransientCaptureError("evaluate timed out"),
        [chat_message(ack=1), RawEvent(category="presence_change", payload={"id": "p1"})],
        RuntimeError("Target closed"),
    )
    bridge = _bridge(bridge_config, capture, recording_publisher)
    reasons: list[str] = []
    bridge.on_stop(reasons.append)

    reason = bridge.run()

    assert reason == "capture_lost"
    assert reasons == ["capture_lost"]
    assert recording_publisher.destinations() == ["default", "membership/contacts", "liveness/presence"]
    assert recording_publisher.flushed == 1
    assert recording_publisher.closed and capture.closed
    snapshot = bridge.snapshot()
    assert snapshot.total_events == 3
    assert snapshot.duplicates == 1
    assert not bridge.running


def test_max_retries_reason(bridge_config, scripted_capture, recording_publisher) -> None:
    capture = scripted_capture(*(TransientCaptureError("busy") for _ in range(3)))
    assert _bridge(bridge_config, capture, recording_publisher).run() == "max_retries_exceeded"
    assert capture.polls == 3


def test_stop_request_from_hook(bridge_config, scripted_capture, recording_publisher, chat_message) -> None:
    capture = scripted_capture([chat_message()])
    bridge = _bridge(bridge_config, capture, recording_publisher)
    original_poll = capture.poll

    def poll_then_stop():  # noqa: ANN202
        batch = original_poll()
        bridge.stop()
        return batch

    capture.poll = poll_then_stop

    assert bridge.run() == "stop_requested"
    assert recording_publisher.destinations() == ["default"]


def test_requested_stop_finishes_batch(bridge_config, scripted_capture, recording_publisher, chat_message) -> None:
    capture = scripted_capture([chat_message("R1"), chat_message("R2")], [chat_message("R3")])
    bridge = _bridge(bridge_config, capture, recording_publisher)
    original_poll = capture.poll
    seen: list[bool] = []

    def poll_then_signal():  # noqa: ANN202
        seen.append(bridge.starting)
        batch = original_poll()
        bridge.request_stop("terminated")
        return batch

    capture.poll = poll_then_signal

    assert not bridge.starting
    assert bridge.run() == "terminated"
    assert seen == [False]
    assert recording_publisher.destinations() == ["default", "default"]
    assert not bridge.starting


def test_second_run_is_rejected(bridge_config, scripted_capture, recording_publisher) -> None:
    bridge = _bridge(bridge_config, scripted_capture(), recording_publisher)
    bridge.running = True
    with pytest.raises(BridgeError):
        bridge.run()


def test_reporter_is_scheduled_when_enabled(bridge_config, scripted_capture, recording_publisher) -> None:
    config = bridge_config.model_copy(
        update={"stats": bridge_config.stats.model_copy(update={"enabled": True, "display_interval_seconds": 7})}
    )
    adapter = StubAdapter()
    bridge = _bridge(config, scripted_capture(RuntimeError("Session closed")), recording_publisher, scheduler=adapter)

    bridge.run()

    assert adapter.started and adapter.stopped
    callback, interval = adapter.jobs[0]
    assert interval == 7
    callback()
    assert "Events" in bridge.console.export_text()


def test_reporter_skipped_when_disabled(bridge_config, scripted_capture, recording_publisher) -> None:
    adapter = StubAdapter()
    bridge = _bridge(bridge_config, scripted_capture(RuntimeError("Session closed")), recording_publisher, scheduler=adapter)
    bridge.run()
    assert adapter.jobs == []
    assert not adapter.started
    assert adapter.stopped


def test_reset_stats_and_status(bridge_config, scripted_capture, recording_publisher) -> None:
    bridge = _bridge(bridge_config, scripted_capture(), recording_publisher)
    bridge.stats.record_event("message_create")
    bridge.reset_stats()

    assert bridge.snapshot().total_events == 0
    status = bridge.status()
    assert status["publisher"] is True
    assert status["poller"] == "idle"
    assert status["dedup_entries"] == 0
    assert "servers" not in status

    bridge.report()
    assert "Connection status" in bridge.console.export_text()


class _NoLoginPage:
    def on(self, event: str, handler) -> None:  # noqa: ANN001
        pass

    def wait_for_selector(self, selector: str, timeout: int) -> None:
        raise TimeoutError("login never completed")

    def evaluate(self, script: str) -> Any:
        return True


def test_failed_authentication_aborts_run(bridge_config, recording_publisher) -> None:
    capture = BrowserCaptureSource(bridge_config.browser, page=_NoLoginPage())
    bridge = _bridge(bridge_config, capture, recording_publisher)

    with pytest.raises(CaptureError, match="authentication"):
        bridge.run()

    assert recording_publisher.closed
    assert not capture.available
    assert not bridge.running
