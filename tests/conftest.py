"""Pytest configuration providing fakes and builders shared by the suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest

from whatsapp_bridge.capture.base import CaptureSource
from whatsapp_bridge.config import BridgeConfig, ConfigLocator, ConfigRepository
from whatsapp_bridge.engine.errors import PublishError
from whatsapp_bridge.engine.models import RawEvent
from whatsapp_bridge.publisher.base import BasePublisher


class FakeClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float = 0.0, ms: int = 0) -> None:
        self.now_ms += int(seconds * 1000) + ms


class RecordingPublisher(BasePublisher):
    """Keep every publish in memory; optionally fail chosen destinations."""

    def __init__(self, fail_destinations: Iterable[str] = ()) -> None:
        self.messages: list[tuple[str, dict]] = []
        self.raw: list[tuple[str, bytes]] = []
        self.fail_destinations = set(fail_destinations)
        self.connected = True
        self.closed = False
        self.flushed = 0

    def publish(self, destination: str, payload: bytes) -> None:
        if destination in self.fail_destinations:
            raise PublishError(f"broker rejected {destination}")
        self.raw.append((destination, payload))
        self.messages.append((destination, json.loads(payload.decode("utf-8"))))

    def is_connected(self) -> bool:
        return self.connected and not self.closed

    def flush(self) -> None:
        self.flushed += 1

    def close(self) -> None:
        self.closed = True

    def destinations(self) -> list[str]:
        return [destination for destination, _ in self.messages]


class ScriptedCapture(CaptureSource):
    """Return scripted batches; an exception in the script is raised by poll()."""

    def __init__(self, script: Sequence[Any] = (), healthy: bool = True) -> None:
        self.script = list(script)
        self.healthy = healthy
        self.polls = 0
        self.closed = False

    def poll(self) -> list[RawEvent]:
        self.polls += 1
        if not self.script:
            return []
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return list(step)

    def is_healthy(self) -> bool:
        return self.healthy and not self.closed

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def bridge_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("WHATSAPP_BRIDGE_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def scripted_capture() -> Callable[..., ScriptedCapture]:
    def _builder(*script: Any, healthy: bool = True) -> ScriptedCapture:
        return ScriptedCapture(script, healthy=healthy)

    return _builder


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return BridgeConfig.model_validate(
        {
            "polling": {"interval_ms": 0, "retry_delay_ms": 0, "max_retries": 3},
            "stats": {"enabled": False},
        }
    )


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    locator = ConfigLocator(project_root=tmp_path)
    return ConfigRepository(locator)


@pytest.fixture
def chat_message() -> Callable[..., RawEvent]:
    """Build a ``message_create``/``message_ack`` record for a one-to-one chat."""

    def _builder(
        message_id: str = "3EB0C767D26A1D7B2C1A",
        ack: int | None = None,
        msg_type: str = "chat",
        body: str | None = "hello",
        category: str = "message_create",
        raw: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> RawEvent:
        payload: dict[str, Any] = {
            "id": {
                "fromMe": False,
                "remote": {"server": "c.us", "user": "15550001111", "_serialized": "15550001111@c.us"},
                "id": message_id,
                "_serialized": f"false_15550001111@c.us_{message_id}",
            },
            "type": msg_type,
            "from": {"server": "c.us", "user": "15550001111", "_serialized": "15550001111@c.us"},
            "to": {"server": "c.us", "user": "15552223333", "_serialized": "15552223333@c.us"},
            "timestamp": 1700000000,
            "__raw": dict(raw or {}),
        }
        if body is not None:
            payload["body"] = body
        if ack is not None:
            payload["ack"] = ack
        payload.update(overrides)
        return RawEvent(category=category, payload=payload, captured_at_ms=1_700_000_000_500)

    return _builder


@pytest.fixture
def contact_event() -> Callable[..., RawEvent]:
    def _builder(user: str = "15554445555", name: str = "Ada", category: str = "contact_change") -> RawEvent:
        payload = {
            "id": {"server": "c.us", "user": user, "_serialized": f"{user}@c.us"},
            "name": name,
            "isUser": True,
        }
        return RawEvent(category=category, payload=payload, captured_at_ms=1_700_000_000_500)

    return _builder


@pytest.fixture
def publisher_factory() -> Callable[..., RecordingPublisher]:
    return RecordingPublisher
