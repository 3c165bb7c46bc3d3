"""File-backed handling of delayed and scheduled messages."""

from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

from .history import HistoryHandler
from .pushers import PushError, Pusher
from .types import (
    DelayMessage,
    Message,
    MessageLevel,
    PushOptions,
    ScheduledMessage,
    SendStatus,
    new_message,
)

logger = logging.getLogger(__name__)

DELAY_INTERVAL = timedelta(hours=4)
SCHEDULED_INTERVAL = timedelta(minutes=1)

_T = TypeVar("_T")


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.astimezone()


def _minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def _slot_name(prefix: str, when: datetime) -> str:
    slot = when.hour - when.hour % 4
    return f"{prefix}_{when:%Y%m%d}_{slot:02d}.json"


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def merge_delay_messages(messages: list[DelayMessage]) -> Message:
    """Combine delayed messages, oldest first, into one NORMAL message."""
    if not messages:
        return Message()
    ordered = sorted(
        messages,
        key=lambda item: (item.created_at is not None, item.created_at and _aware(item.created_at)),
    )
    contents = [f"[{item.message.title}] {item.message.content}" for item in ordered]
    app_ids = _unique(item.message.app_id for item in ordered)
    merged = new_message(
        ",".join(app_ids),
        f"{len(ordered)}条延迟消息",
        "\n".join(contents),
        MessageLevel.NORMAL,
    )
    merged.set_metadata("merged_count", len(ordered))
    merged.set_metadata("original_messages", len(ordered))
    merged.set_metadata("merge_time", _local_now())
    return merged


def merge_delay_options(messages: list[DelayMessage]) -> PushOptions:
    """Union the receivers and take the highest priority and retry count."""
    if not messages:
        return PushOptions()
    receivers = _unique(r for item in messages for r in item.options.receivers)
    priority = max(0, *(item.options.priority for item in messages))
    retry = max(0, *(item.options.retry for item in messages))
    return PushOptions(receivers=receivers, priority=priority, retry=retry)


class WorkingManager:
    """Stores delayed and scheduled messages in 4-hour slot files and delivers them."""

    def __init__(
        self,
        working_dir: str | Path,
        pusher: Pusher,
        history_handler: HistoryHandler | None = None,
        *,
        delay_interval: timedelta = DELAY_INTERVAL,
        scheduled_interval: timedelta = SCHEDULED_INTERVAL,
    ) -> None:
        self.working_dir = Path(working_dir)
        self.pusher = pusher
        self.history_handler = history_handler
        self.delay_interval = delay_interval
        self.scheduled_interval = scheduled_interval
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Create the working directory and start the background loop."""
        self.working_dir.mkdir(parents=True, exist_ok=True)
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="working-manager", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background loop and wait for it to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        delay_step = self.delay_interval.total_seconds()
        scheduled_step = self.scheduled_interval.total_seconds()
        next_delay = time.monotonic() + delay_step
        next_scheduled = time.monotonic() + scheduled_step
        while True:
            timeout = max(0.0, min(next_delay, next_scheduled) - time.monotonic())
            if self._stop_event.wait(timeout):
                return
            current = time.monotonic()
            if current >= next_delay:
                next_delay = current + delay_step
                try:
                    self.send_all_delay_messages()
                except (PushError, OSError, ValueError) as exc:
                    logger.warning("periodic delayed delivery failed: %s", exc)
            if current >= next_scheduled:
                next_scheduled = current + scheduled_step
                try:
                    self.process_scheduled_messages()
                except (OSError, ValueError) as exc:
                    logger.warning("processing scheduled messages failed: %s", exc)

    def delay_file_name(self, when: datetime) -> Path:
        """Path of the delayed-message file for the 4-hour slot of ``when``."""
        return self.working_dir / _slot_name("delay", when)

    def scheduled_file_name(self, when: datetime) -> Path:
        """Path of the scheduled-message file for the 4-hour slot of ``when``."""
        return self.working_dir / _slot_name("scheduled", when)

    def add_delay_message(self, msg: Message, options: PushOptions) -> DelayMessage:
        """Store a message for the next merged delivery."""
        with self._lock:
            now = _local_now()
            entry = DelayMessage(message=msg, options=options, created_at=now)
            path = self.delay_file_name(now)
            entries = self._read(path, DelayMessage.from_dict)
            entries.append(entry)
            self._write(path, entries)
            logger.info("delayed message added: %s", msg.id)
            return entry

    def add_scheduled_message(
        self, msg: Message, options: PushOptions, scheduled_at: datetime
    ) -> ScheduledMessage:
        """Store a message to deliver at the minute of ``scheduled_at``."""
        with self._lock:
            entry = ScheduledMessage(
                message=msg, options=options, scheduled_at=_minute(_aware(scheduled_at))
            )
            path = self.scheduled_file_name(scheduled_at)
            entries = self._read(path, ScheduledMessage.from_dict)
            entries.append(entry)
            self._write(path, entries)
            logger.info("scheduled message added: %s -> %s", msg.id, f"{scheduled_at:%Y-%m-%d %H:%M}")
            return entry

    def process_scheduled_messages(self, now: datetime | None = None) -> list[ScheduledMessage]:
        """Deliver due messages of the current slot file; return those handled."""
        with self._lock:
            current = _minute(_aware(now) if now is not None else _local_now())
            path = self.scheduled_file_name(current)
            entries = self._read(path, ScheduledMessage.from_dict)
            due = [
                e for e in entries
                if e.scheduled_at is None or _minute(_aware(e.scheduled_at)) <= current
            ]
            remaining = [e for e in entries if e not in due]

            if due:
                logger.info("%d scheduled messages are due", len(due))
                for entry in due:
                    self._deliver(entry.message, entry.options, "scheduled push failed")
                try:
                    self.send_all_delay_messages()
                except (PushError, OSError, ValueError) as exc:
                    logger.warning("sending delayed messages failed: %s", exc)

            self._write(path, remaining)
            return due

    def _deliver(self, msg: Message, options: PushOptions, failure_label: str) -> None:
        msg.sent_at = _local_now()
        msg.send_status = SendStatus.SUCCESS
        try:
            self.pusher.push(msg)
        except PushError as exc:
            msg.send_status = SendStatus.FAILED
            self._record(lambda h: h.record_failure(msg, self.pusher.name, options, f"{failure_label}: {exc}"))
            logger.warning("%s: %s", failure_label, exc)
        else:
            self._record(lambda h: h.record_success(msg, self.pusher.name, options))
            logger.info("scheduled message sent: %s", msg.id)

    def _record(self, action: Callable[[HistoryHandler], Any]) -> None:
        if self.history_handler is None:
            return
        try:
            action(self.history_handler)
        except OSError as exc:
            logger.warning("writing history failed: %s", exc)

    def send_all_delay_messages(self) -> int:
        """Merge every stored delayed message into one delivery; return how many were sent."""
        with self._lock:
            files = self._delay_files()
            if not files:
                return 0
            entries: list[DelayMessage] = []
            for path in files:
                try:
                    entries.extend(self._read(path, DelayMessage.from_dict))
                except (OSError, ValueError) as exc:
                    logger.warning("reading delayed file %s failed: %s", path, exc)
            if not entries:
                return 0

            merged = merge_delay_messages(entries)
            options = merge_delay_options(entries)
            merged.sent_at = _local_now()
            merged.send_status = SendStatus.SUCCESS
            try:
                self.pusher.push(merged)
            except PushError as exc:
                merged.send_status = SendStatus.FAILED
                self._record(
                    lambda h: h.record_failure(
                        merged, self.pusher.name, options, f"delayed push failed: {exc}"
                    )
                )
                raise PushError(f"sending delayed messages failed: {exc}") from exc

            self._record(lambda h: h.record_success(merged, self.pusher.name, options))
            logger.info("delayed messages sent: %d merged", len(entries))

            for path in files:
                try:
                    self._write(path, [])
                except OSError as exc:
                    logger.warning("clearing delayed file %s failed: %s", path, exc)
            self._cleanup_empty_delay_files()
            return len(entries)

    def _delay_files(self) -> list[Path]:
        return sorted(self.working_dir.glob("delay_*.json"))

    def _cleanup_empty_delay_files(self) -> None:
        for path in self._delay_files():
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("reading %s failed: %s", path, exc)
                continue
            if not text or text == "[]":
                try:
                    path.unlink()
                except OSError as exc:
                    logger.warning("removing %s failed: %s", path, exc)

    @staticmethod
    def _read(path: Path, factory: Callable[[Any], _T]) -> list[_T]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        data = json.loads(text)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValueError(f"{path} does not hold a list")
        return [factory(item) for item in data]

    @staticmethod
    def _write(path: Path, entries: list) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = [entry.to_dict() for entry in entries]
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")