from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from whatsapp_bridge.config import (
    BridgeConfig,
    DedupConfig,
    EventTypesConfig,
    IgnoreRule,
    NatsConfig,
    PollingConfig,
    StatsConfig,
)


def test_defaults() -> None:
    config = BridgeConfig()

    assert config.browser.url == "https://web.whatsapp.com"
    assert config.polling.interval_ms == 1000
    assert config.polling.retry_delay_ms == 2000
    assert config.polling.max_retries == 5
    assert config.dedup.max_entries == 1000
    assert config.stats.enabled is False


def test_subject_layout() -> None:
    subjects = NatsConfig(subject="wa.events", contact_subject="wa.contacts").subjects()
    assert subjects == {
        "default": "wa.events",
        "membership/contacts": "wa.contacts",
        "liveness/presence": "whatsapp.presence",
        "ignored": "whatsapp.ignored",
    }


def test_servers_accept_comma_separated_string() -> None:
    assert NatsConfig(servers="nats://a:4222,nats://b:4222").servers == ["nats://a:4222", "nats://b:4222"]
    with pytest.raises(ValidationError):
        NatsConfig(servers=[])


@pytest.mark.parametrize(
    "overrides",
    [{"interval_ms": -1}, {"retry_delay_ms": -5}, {"max_retries": 0}],
)
def test_polling_validation(overrides) -> None:
    with pytest.raises(ValidationError):
        PollingConfig(**overrides)


def test_dedup_validation() -> None:
    with pytest.raises(ValidationError):
        DedupConfig(max_entries=0)
    with pytest.raises(ValidationError):
        DedupConfig(category_windows={"message_*": -1})


def test_stats_validation() -> None:
    with pytest.raises(ValidationError):
        StatsConfig(display_interval_seconds=0)


def test_partial_event_name_override_keeps_defaults() -> None:
    config = EventTypesConfig(event_types={"MESSAGE_READ": "read"})
    assert config.name("MESSAGE_READ") == "read"
    assert config.name("MESSAGE_SENT") == "message_sent"


@pytest.mark.parametrize(
    "rule, record_type, subtype, expected",
    [
        (IgnoreRule(type="ciphertext"), "ciphertext", None, True),
        (IgnoreRule(type="ciphertext"), "ciphertext", "anything", True),
        (IgnoreRule(type="e2e_notification", subtypes=["encrypt"]), "e2e_notification", "encrypt", True),
        (IgnoreRule(type="e2e_notification", subtypes=["encrypt"]), "e2e_notification", None, False),
        (IgnoreRule(type="e2e_notification", subtypes=["encrypt"]), "chat", "encrypt", False),
    ],
)
def test_ignore_rule_matching(rule, record_type, subtype, expected) -> None:
    assert rule.matches(record_type, subtype) is expected


def test_user_data_dir_resolution(tmp_path: Path) -> None:
    relative = BridgeConfig()
    assert relative.resolved_user_data_dir(tmp_path) == (tmp_path / "data" / "browser-profile").resolve()

    absolute = BridgeConfig.model_validate({"browser": {"user_data_dir": str(tmp_path / "profile")}})
    assert absolute.resolved_user_data_dir(Path("/elsewhere")) == tmp_path / "profile"
