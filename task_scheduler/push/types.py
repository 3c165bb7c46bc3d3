"""Message, option and record types shared by the push subsystem."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any, Mapping

DEFAULT_SEND_KEY = "placeholder"

_TIME_PATTERN = re.compile(r"^(.*?T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(.*)$")


class PushMethod(IntEnum):
    """Built-in delivery channels."""

    WECHAT = 0
    EMAIL = 1
    SMS = 2
    LOGGER = 3

    def __str__(self) -> str:
        return self.name.lower()


class MessageLevel(IntEnum):
    """How urgent a message is."""

    NORMAL = 0
    EMERGENCY = 1

    def __str__(self) -> str:
        return self.name.lower()


class SendStatus(IntEnum):
    """Delivery state of a message."""

    INITIALIZED = 0
    PENDING = 1
    SUCCESS = 2
    FAILED = 3

    def __str__(self) -> str:
        return self.name.lower()


def parse_message_level(level: str) -> MessageLevel:
    """Parse a level name case-insensitively; unknown names mean NORMAL."""
    return {"emergency": MessageLevel.EMERGENCY}.get(level.lower(), MessageLevel.NORMAL)


def parse_send_status(status: str) -> SendStatus:
    """Parse a status name case-insensitively; unknown names mean INITIALIZED."""
    return {
        "pending": SendStatus.PENDING,
        "success": SendStatus.SUCCESS,
        "failed": SendStatus.FAILED,
    }.get(status.lower(), SendStatus.INITIALIZED)


def _now() -> datetime:
    return datetime.now().astimezone()


class _StrictClock:
    """Hands out strictly increasing local times so generated ids never repeat."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        with self._lock:
            current = _now()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


_clock = _StrictClock()


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    match = _TIME_PATTERN.match(text)
    if match:
        head, fraction, tail = match.groups()
        if fraction:
            head = f"{head}.{fraction[:6].ljust(6, '0')}"
        text = head + tail
    parsed = datetime.fromisoformat(text)
    if parsed.year == 1:
        return None
    return parsed


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return value


def _level_from(value: Any) -> MessageLevel:
    if isinstance(value, str):
        return parse_message_level(value)
    try:
        return MessageLevel(int(value))
    except (TypeError, ValueError):
        return MessageLevel.NORMAL


def _status_from(value: Any) -> SendStatus:
    if isinstance(value, str):
        return parse_send_status(value)
    try:
        return SendStatus(int(value))
    except (TypeError, ValueError):
        return SendStatus.INITIALIZED


def generate_message_id(app_id: str, now: datetime | None = None) -> str:
    """Build an id of the form ``{app_id}_YYMMDD_HHMMSS_{microseconds}``."""
    when = now if now is not None else _clock.now()
    return f"{app_id}_{when:%y%m%d_%H%M%S}_{when.microsecond:06d}"


@dataclass
class Message:
    """A notification to deliver."""

    id: str = ""
    app_id: str = ""
    title: str = ""
    content: str = ""
    level: MessageLevel = MessageLevel.NORMAL
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    sent_at: datetime | None = None
    send_status: SendStatus = SendStatus.INITIALIZED

    def set_metadata(self, key: str, value: Any) -> None:
        if self.metadata is None:
            self.metadata = {}
        self.metadata[key] = value

    def get_metadata(self, key: str, default: Any = None) -> Any:
        if not self.metadata:
            return default
        return self.metadata.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "app_id": self.app_id,
            "title": self.title,
            "content": self.content,
            "level": int(self.level),
            "metadata": _jsonable(self.metadata or {}),
            "created_at": _format_time(self.created_at),
            "sent_at": _format_time(self.sent_at),
            "send_status": int(self.send_status),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        return cls(
            id=data.get("id", "") or "",
            app_id=data.get("app_id", "") or "",
            title=data.get("title", "") or "",
            content=data.get("content", "") or "",
            level=_level_from(data.get("level", 0)),
            metadata=dict(data.get("metadata") or {}),
            created_at=_parse_time(data.get("created_at")),
            sent_at=_parse_time(data.get("sent_at")),
            send_status=_status_from(data.get("send_status", 0)),
        )


def new_message(
    app_id: str,
    title: str,
    content: str,
    level: MessageLevel = MessageLevel.NORMAL,
) -> Message:
    """Create a message with a fresh id and creation time."""
    now = _clock.now()
    return Message(
        id=generate_message_id(app_id, now),
        app_id=app_id,
        title=title,
        content=content,
        level=MessageLevel(level),
        created_at=now,
        send_status=SendStatus.INITIALIZED,
    )


def new_normal_message(app_id: str, title: str, content: str) -> Message:
    """Create a message at NORMAL level."""
    return new_message(app_id, title, content, MessageLevel.NORMAL)


@dataclass
class PushOptions:
    """Delivery options for a message."""

    receivers: list[str] = field(default_factory=list)
    priority: int = 0
    retry: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"receivers": list(self.receivers), "priority": self.priority, "retry": self.retry}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PushOptions:
        return cls(
            receivers=list(data.get("receivers") or []),
            priority=int(data.get("priority", 0) or 0),
            retry=int(data.get("retry", 0) or 0),
        )


@dataclass
class WeChatConfig:
    """Settings for the WeChat channel."""

    send_key: str = DEFAULT_SEND_KEY


@dataclass
class PushConfig:
    """Settings of the push subsystem."""

    queue_size: int = 1000
    flush_interval: timedelta = timedelta(seconds=30)
    working_dir: str = "./working"
    history_dir: str = "./history"
    wechat_config: WeChatConfig = field(default_factory=WeChatConfig)


def default_push_config() -> PushConfig:
    """Return the default push settings."""
    return PushConfig()


@dataclass
class DelayMessage:
    """A message held back for a merged delivery."""

    message: Message
    options: PushOptions
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message.to_dict(),
            "options": self.options.to_dict(),
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DelayMessage:
        return cls(
            message=Message.from_dict(data.get("message") or {}),
            options=PushOptions.from_dict(data.get("options") or {}),
            created_at=_parse_time(data.get("created_at")),
        )


@dataclass
class ScheduledMessage:
    """A message to deliver at a given minute."""

    message: Message
    options: PushOptions
    scheduled_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message.to_dict(),
            "options": self.options.to_dict(),
            "scheduled_at": _format_time(self.scheduled_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScheduledMessage:
        return cls(
            message=Message.from_dict(data.get("message") or {}),
            options=PushOptions.from_dict(data.get("options") or {}),
            scheduled_at=_parse_time(data.get("scheduled_at")),
        )


@dataclass
class HistoryRecord:
    """One entry of the delivery history."""

    timestamp: datetime | None
    app_id: str
    pusher_name: str
    title: str
    content: str
    message_id: str
    level: str
    receivers: list[str] = field(default_factory=list)
    priority: int = 0
    retry_count: int = 0
    error_reason: str = ""

    @classmethod
    def success(cls, msg: Message, pusher_name: str, options: PushOptions) -> HistoryRecord:
        return cls(
            timestamp=_now(),
            app_id=msg.app_id,
            pusher_name=pusher_name,
            title=msg.title,
            content=msg.content,
            message_id=msg.id,
            level=str(msg.level),
            receivers=list(options.receivers),
            priority=options.priority,
            retry_count=options.retry,
        )

    @classmethod
    def failure(
        cls, msg: Message, pusher_name: str, options: PushOptions, error_reason: str
    ) -> HistoryRecord:
        record = cls.success(msg, pusher_name, options)
        record.error_reason = error_reason
        return record

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _format_time(self.timestamp),
            "app_id": self.app_id,
            "pusher_name": self.pusher_name,
            "title": self.title,
            "content": self.content,
            "message_id": self.message_id,
            "level": self.level,
            "receivers": list(self.receivers),
            "priority": self.priority,
            "retry_count": self.retry_count,
            "error_reason": self.error_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoryRecord:
        return cls(
            timestamp=_parse_time(data.get("timestamp")),
            app_id=data.get("app_id", "") or "",
            pusher_name=data.get("pusher_name", "") or "",
            title=data.get("title", "") or "",
            content=data.get("content", "") or "",
            message_id=data.get("message_id", "") or "",
            level=data.get("level", "") or "",
            receivers=list(data.get("receivers") or []),
            priority=int(data.get("priority", 0) or 0),
            retry_count=int(data.get("retry_count", 0) or 0),
            error_reason=data.get("error_reason", "") or "",
        )