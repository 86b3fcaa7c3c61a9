"""Pydantic models describing bridge configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_FATAL_PATTERNS = (
    "Session closed",
    "detached Frame",
    "Protocol error",
    "Target closed",
    "Target page, context or browser has been closed",
    "Browser has been closed",
)


class BrowserConfig(BaseModel):
    """Playwright launch options for the WhatsApp Web capture page."""

    url: str = "https://web.whatsapp.com"
    executable_path: str | None = None
    headless: bool = False
    user_data_dir: Path = Field(default=Path("data/browser-profile"))
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    args: list[str] = Field(default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage"])
    main_app_selector: str = "#pane-side"
    navigation_timeout_ms: int = 60000
    auth_timeout_ms: int = 300000
    injection_wait_ms: int = 5000

    @field_validator("user_data_dir", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_timeouts(self) -> "BrowserConfig":
        for name in ("navigation_timeout_ms", "auth_timeout_ms", "injection_wait_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        return self


class NatsConfig(BaseModel):
    """Broker connection and subject layout."""

    servers: list[str] = Field(default_factory=lambda: ["nats://localhost:4222"])
    max_reconnect_attempts: int = 10
    reconnect_time_wait: float = 2.0
    connect_timeout: float = 5.0
    publish_timeout: float = 5.0
    subject: str = "whatsapp.events"
    contact_subject: str = "whatsapp.contacts"
    presence_subject: str = "whatsapp.presence"
    ignored_subject: str = "whatsapp.ignored"

    @field_validator("servers", mode="before")
    @classmethod
    def _coerce_servers(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",")]
        servers = [str(item) for item in value or [] if str(item).strip()]
        if not servers:
            raise ValueError("At least one NATS server is required")
        return servers

    def subjects(self) -> dict[str, str]:
        """Return the subject for every logical destination."""

        return {
            "default": self.subject,
            "membership/contacts": self.contact_subject,
            "liveness/presence": self.presence_subject,
            "ignored": self.ignored_subject,
        }


class PollingConfig(BaseModel):
    """Polling cadence and retry policy."""

    interval_ms: int = 1000
    retry_delay_ms: int = 2000
    max_retries: int = 5
    fatal_error_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_FATAL_PATTERNS))

    @model_validator(mode="after")
    def _validate_policy(self) -> "PollingConfig":
        if self.interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must be >= 0")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        return self


class DedupConfig(BaseModel):
    """Retention windows for the in-memory deduplication cache."""

    default_window_seconds: float = 300.0
    category_windows: dict[str, float] = Field(
        default_factory=lambda: {
            "message_*": 300.0,
            "contact_*": 1800.0,
            "contacts_*": 1800.0,
            "presence_*": 60.0,
        }
    )
    max_entries: int = 1000

    @field_validator("category_windows")
    @classmethod
    def _validate_windows(cls, value: dict[str, float]) -> dict[str, float]:
        for pattern, seconds in value.items():
            if seconds < 0:
                raise ValueError(f"Window for {pattern!r} must be >= 0")
        return value

    @model_validator(mode="after")
    def _validate_limits(self) -> "DedupConfig":
        if self.default_window_seconds < 0:
            raise ValueError("default_window_seconds must be >= 0")
        if self.max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        return self


class IgnoreRule(BaseModel):
    """Drop-to-ignored rule matched against the message type and sub-type."""

    type: str
    subtypes: list[str] | None = None

    def matches(self, record_type: Any, subtype: Any) -> bool:
        if record_type != self.type:
            return False
        if self.subtypes is None:
            return True
        return subtype in self.subtypes


def _default_event_names() -> dict[str, str]:
    return {
        "STATUS_CREATED": "status_created",
        "STATUS_RECEIVED": "status_received",
        "STATUS_READ": "status_read",
        "MESSAGE_SENT": "message_sent",
        "MESSAGE_DELIVERED": "message_delivered",
        "MESSAGE_READ": "message_read",
        "MESSAGE_PLAYED": "message_played",
        "MESSAGE_CREATED": "message_created",
        "MESSAGE_REVOKED": "message_revoked",
        "DISAPPEARING_MODE_CHANGED": "disappearing_mode_changed",
    }


class EventTypesConfig(BaseModel):
    """Vocabulary and rule tables used by the transformation engine."""

    event_types: dict[str, str] = Field(default_factory=_default_event_names)
    message_types: list[str] = Field(
        default_factory=lambda: [
            "chat",
            "image",
            "video",
            "audio",
            "document",
            "sticker",
            "ptt",
            "ptv",
            "album",
            "gp2",
            "revoked",
            "notification_template",
        ]
    )
    ignored_types: list[IgnoreRule] = Field(
        default_factory=lambda: [
            IgnoreRule(type="e2e_notification", subtypes=["encrypt"]),
            IgnoreRule(type="ciphertext"),
        ]
    )
    group_actions: dict[str, str] = Field(
        default_factory=lambda: {
            "add": "member_added",
            "remove": "member_removed",
            "promote": "member_promoted",
            "demote": "member_demoted",
            "modify": "group_modified",
            "create": "group_created",
            "subject": "name_changed",
            "description": "description_changed",
            "picture": "picture_changed",
        }
    )
    contact_categories: list[str] = Field(
        default_factory=lambda: ["contact_add", "contact_change", "contact_remove", "contacts_initial"]
    )
    presence_categories: list[str] = Field(
        default_factory=lambda: [
            "presence_add",
            "presence_change",
            "presence_remove",
            "presence_initial",
        ]
    )

    @model_validator(mode="after")
    def _fill_event_names(self) -> "EventTypesConfig":
        # Partial overrides keep the remaining default names.
        merged = _default_event_names()
        merged.update(self.event_types)
        self.event_types = merged
        return self

    def name(self, key: str) -> str:
        return self.event_types[key]


class StatsConfig(BaseModel):
    """Periodic statistics display."""

    enabled: bool = False
    display_interval_seconds: float = 30.0
    sample_capacity: int = 1000

    @model_validator(mode="after")
    def _validate_stats(self) -> "StatsConfig":
        if self.display_interval_seconds <= 0:
            raise ValueError("display_interval_seconds must be > 0")
        if self.sample_capacity < 1:
            raise ValueError("sample_capacity must be >= 1")
        return self


class BridgeConfig(BaseModel):
    """Root configuration document."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    nats: NatsConfig = Field(default_factory=NatsConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    event_types: EventTypesConfig = Field(default_factory=EventTypesConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)

    def resolved_user_data_dir(self, base_dir: Path) -> Path:
        """Return the browser profile path relative to the project root."""

        profile = self.browser.user_data_dir
        if not profile.is_absolute():
            return (base_dir / profile).resolve()
        return profile


__all__ = [
    "DEFAULT_FATAL_PATTERNS",
    "BridgeConfig",
    "BrowserConfig",
    "DedupConfig",
    "EventTypesConfig",
    "IgnoreRule",
    "NatsConfig",
    "PollingConfig",
    "StatsConfig",
]
