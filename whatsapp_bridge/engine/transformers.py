"""Transformation of raw capture records into the external event schema.

The engine runs an ordered chain of mappers over each raw event. A mapper
returns a :class:`NormalizedEvent` when it recognises the record, ``None`` to
let the next mapper try, or :data:`DROP` to discard the event outright. When
every mapper declines, the original envelope is passed through unchanged.

All nested lookups go through :func:`_dig`, so a malformed record degrades to a
partial event instead of raising.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence, Union

import structlog

from ..config.models import EventTypesConfig
from .errors import TransformError
from .models import NormalizedEvent, RawEvent

_ID_SUFFIX = re.compile(r"@(c\.us|lid)$")
_GROUP_MARKER = "@g.us"
STATUS_BROADCAST = "status@broadcast"


class _DropSignal:
    def __repr__(self) -> str:
        return "DROP"


DROP = _DropSignal()

MapperResult = Union[NormalizedEvent, _DropSignal, None]
Mapper = Callable[[RawEvent, Mapping[str, Any], EventTypesConfig], MapperResult]


def _dig(value: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def normalize_id(value: Any) -> str | None:
    """Strip the contact address suffix from a raw identifier."""

    if not value or not isinstance(value, str):
        return None
    return _ID_SUFFIX.sub("", value)


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _user(ref: Any) -> str | None:
    if isinstance(ref, Mapping):
        user = ref.get("user")
        return user if isinstance(user, str) and user else None
    if isinstance(ref, str) and ref:
        return normalize_id(ref)
    return None


def iso_millis(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def event_timestamp(payload: Mapping[str, Any], fallback: str) -> str:
    seconds = payload.get("timestamp")
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or not seconds:
        return fallback
    try:
        return iso_millis(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return fallback


def _refers_to_group(ref: Any) -> bool:
    if isinstance(ref, str):
        return _GROUP_MARKER in ref
    if isinstance(ref, Mapping):
        if ref.get("server") == "g.us":
            return True
        for key in ("_serialized", "user"):
            value = ref.get(key)
            if isinstance(value, str) and _GROUP_MARKER in value:
                return True
    return False


def is_group_message(payload: Mapping[str, Any]) -> bool:
    return any(
        _refers_to_group(ref)
        for ref in (payload.get("from"), _dig(payload, "id", "remote"), _dig(payload, "__raw", "from"))
    )


def is_status_event(payload: Mapping[str, Any]) -> bool:
    return (
        _dig(payload, "id", "remote", "_serialized") == STATUS_BROADCAST
        or _dig(payload, "from", "user") == "status"
    )


def status_format(payload: Mapping[str, Any]) -> str | None:
    mimetype = _dig(payload, "__raw", "mimetype")
    if isinstance(mimetype, str) and mimetype:
        return mimetype
    if payload.get("type") == "chat" or payload.get("body"):
        return "text"
    return None


def _build(raw: RawEvent, envelope: Mapping[str, Any], body: dict[str, Any]) -> NormalizedEvent:
    return NormalizedEvent(
        internal_event_id=str(envelope.get("id")),
        timestamp=event_timestamp(raw.payload, str(envelope.get("timestamp"))),
        category=raw.category,
        body=body,
    )


def _ack(payload: Mapping[str, Any]) -> int | None:
    ack = payload.get("ack")
    if isinstance(ack, str):
        ack = int(ack.strip()) if ack.strip().isdecimal() else None
    if isinstance(ack, bool) or not isinstance(ack, (int, float)):
        return None
    return int(ack) if ack == int(ack) else None


def map_status(raw: RawEvent, envelope: Mapping[str, Any], config: EventTypesConfig) -> MapperResult:
    """Status broadcast updates; only acknowledged levels are emitted."""

    payload = raw.payload
    if not is_status_event(payload):
        return None
    lifecycle = {
        1: config.name("STATUS_CREATED"),
        2: config.name("STATUS_RECEIVED"),
        3: config.name("STATUS_READ"),
    }.get(_ack(payload))
    if lifecycle is None:
        return DROP
    body: dict[str, Any] = {
        "status_id": _text(_dig(payload, "id", "id")),
        "type": lifecycle,
        "format": status_format(payload),
        "status_author_number": _user(_dig(payload, "id", "participant")) or _user(payload.get("from")),
        "reader_number": _user(payload.get("to")),
        "read_time": _text(payload.get("timestamp")),
        "fromMe": bool(_dig(payload, "id", "fromMe")),
    }
    if payload.get("body") and payload.get("type") == "chat":
        body["body"] = payload["body"]
    return _build(raw, envelope, body)


def map_chat_message(raw: RawEvent, envelope: Mapping[str, Any], config: EventTypesConfig) -> MapperResult:
    """Durable chat-like messages; every message gets at least a creation record."""

    payload = raw.payload
    message_type = payload.get("type")
    if not payload or message_type not in config.message_types:
        return None
    lifecycle = {
        1: config.name("MESSAGE_SENT"),
        2: config.name("MESSAGE_DELIVERED"),
        3: config.name("MESSAGE_READ"),
        4: config.name("MESSAGE_PLAYED"),
    }.get(_ack(payload), config.name("MESSAGE_CREATED"))
    group = is_group_message(payload)
    if group:
        from_number = (
            _user(_dig(payload, "id", "participant"))
            or normalize_id(_dig(payload, "__raw", "author"))
            or _user(payload.get("from"))
        )
        group_id = _user(payload.get("from")) or _user(_dig(payload, "id", "remote"))
    else:
        from_number = _user(payload.get("from"))
        group_id = None
    mimetype = _dig(payload, "__raw", "mimetype")
    body: dict[str, Any] = {
        "message_id": _text(_dig(payload, "id", "id")),
        "type": lifecycle,
        "format": mimetype if isinstance(mimetype, str) and mimetype else message_type,
        "from_number": from_number,
        "to_number": _user(payload.get("to")),
        "isGroup": group,
        "group_id": group_id,
        "fromMe": bool(_dig(payload, "id", "fromMe")),
        "message_time": _text(payload.get("timestamp")),
    }
    handler = _SPECIAL_TYPES.get(message_type)
    if handler is not None:
        handler(payload, body, config)
    if payload.get("body") and message_type == "chat":
        body["body"] = payload["body"]
    return _build(raw, envelope, body)


def _notification_template(payload: Mapping[str, Any], body: dict[str, Any], config: EventTypesConfig) -> None:
    subtype = _dig(payload, "__raw", "subtype")
    if subtype == "disappearing_mode":
        body["type"] = config.name("DISAPPEARING_MODE_CHANGED")
        body["ephemeral_duration"] = _dig(payload, "__raw", "ephemeralDuration") or None
        body["setting_user"] = normalize_id(_dig(payload, "__raw", "ephemeralSettingUser"))
    else:
        body["notification_type"] = subtype or "unknown"


def _revoked(payload: Mapping[str, Any], body: dict[str, Any], config: EventTypesConfig) -> None:
    body["type"] = config.name("MESSAGE_REVOKED")
    body["revoke_timestamp"] = _text(_dig(payload, "__raw", "revokeTimestamp"))
    body["revoked_by"] = normalize_id(
        _user(_dig(payload, "id", "participant")) or _dig(payload, "__raw", "author")
    )
    body["original_message_id"] = _text(_dig(payload, "__raw", "protocolMessageKey", "id"))


def _group_action(payload: Mapping[str, Any], body: dict[str, Any], config: EventTypesConfig) -> None:
    subtype = _dig(payload, "__raw", "subtype")
    recipients = _dig(payload, "__raw", "recipients")
    if not isinstance(recipients, (list, tuple)):
        recipients = []
    body["group_action"] = config.group_actions.get(subtype) if isinstance(subtype, str) else None
    body["group_action"] = body["group_action"] or subtype or "unknown"
    body["recipients"] = [item for item in (normalize_id(rid) for rid in recipients) if item]
    body["action_by"] = normalize_id(
        _user(_dig(payload, "id", "participant")) or _dig(payload, "__raw", "author")
    )


_SPECIAL_TYPES: dict[str, Callable[[Mapping[str, Any], dict[str, Any], EventTypesConfig], None]] = {
    "notification_template": _notification_template,
    "revoked": _revoked,
    "gp2": _group_action,
}

DEFAULT_MAPPERS: tuple[Mapper, ...] = (map_status, map_chat_message)


class TransformationEngine:
    """Apply ignore rules and the mapper chain to raw events."""

    def __init__(
        self,
        config: EventTypesConfig | None = None,
        mappers: Sequence[Mapper] = DEFAULT_MAPPERS,
        logger: structlog.BoundLogger | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.config = config or EventTypesConfig()
        self.mappers = tuple(mappers)
        self.logger = logger or structlog.get_logger("whatsapp_bridge.transformers")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def is_ignored(self, raw: RawEvent) -> bool:
        record = raw.payload or raw.as_record()
        record_type = record.get("type")
        subtype = record.get("subtype") or _dig(record, "__raw", "subtype")
        return any(rule.matches(record_type, subtype) for rule in self.config.ignored_types)

    def envelope(self, raw: RawEvent) -> dict[str, Any]:
        return {
            "id": self._id_factory(),
            "timestamp": iso_millis(self._clock()),
            "data": raw.as_record(),
        }

    def transform(self, raw: RawEvent, envelope: Mapping[str, Any] | None = None) -> NormalizedEvent | None:
        """Return the normalized event, or ``None`` when a mapper dropped it."""

        if envelope is None:
            envelope = self.envelope(raw)
        for mapper in self.mappers:
            try:
                result = mapper(raw, envelope, self.config)
            except Exception as exc:  # noqa: BLE001
                error = TransformError(f"{getattr(mapper, '__name__', mapper)} failed: {exc}")
                error.__cause__ = exc
                self.logger.warning(
                    "transform_error",
                    category=raw.category,
                    mapper=getattr(mapper, "__name__", repr(mapper)),
                    error=str(error),
                )
                continue
            if result is DROP:
                return None
            if result is not None:
                return result
        return NormalizedEvent(
            internal_event_id=str(envelope.get("id")),
            timestamp=str(envelope.get("timestamp")),
            category=raw.category,
            body={},
            passthrough=True,
            envelope=envelope,
        )


__all__ = [
    "DEFAULT_MAPPERS",
    "DROP",
    "TransformationEngine",
    "event_timestamp",
    "is_group_message",
    "is_status_event",
    "iso_millis",
    "map_chat_message",
    "map_status",
    "normalize_id",
]
