"""Coordinates a delivery channel, the working directory and the history."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from .history import HistoryHandler
from .pushers import EmailPusher, LogPusher, PushError, Pusher, SMSPusher, WeChatPusher
from .registry import PusherRegistry
from .types import (
    DEFAULT_SEND_KEY,
    Message,
    PushConfig,
    PushMethod,
    PushOptions,
    ScheduledMessage,
    SendStatus,
    DelayMessage,
    default_push_config,
)
from .working import WorkingManager

logger = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _build_pusher(config: PushConfig, method: PushMethod) -> Pusher:
    if method is PushMethod.WECHAT:
        return WeChatPusher(config.wechat_config.send_key or DEFAULT_SEND_KEY)
    if method is PushMethod.EMAIL:
        return EmailPusher()
    if method is PushMethod.SMS:
        return SMSPusher()
    return LogPusher()


class PushController:
    """Routes messages to the active pusher and manages delayed and scheduled delivery."""

    def __init__(self, config: PushConfig | None = None) -> None:
        self.config = config if config is not None else default_push_config()
        self.registry = PusherRegistry()
        self.history_handler = HistoryHandler(self.config.history_dir)
        self.current_pusher: Pusher | None = None
        self.working_manager: WorkingManager | None = None
        self._lock = threading.RLock()

    def initialize(self, config: PushConfig, method: PushMethod) -> Pusher:
        """Activate one of the built-in channels; return the pusher in use."""
        try:
            method = PushMethod(method)
        except ValueError:
            raise ValueError(f"unsupported push method: {method}") from None
        with self._lock:
            pusher = _build_pusher(config, method)
            self.registry.register(str(method), pusher)
            self._activate(config, pusher)
            return pusher

    def initialize_with_pusher(self, config: PushConfig, pusher: Pusher) -> Pusher:
        """Activate a caller-supplied channel; return it."""
        if pusher is None:
            raise ValueError("pusher must not be None")
        with self._lock:
            self.registry.register(pusher.name, pusher)
            self._activate(config, pusher)
            return pusher

    def _activate(self, config: PushConfig, pusher: Pusher) -> None:
        if self.working_manager is not None:
            self.working_manager.stop()
        self.current_pusher = pusher
        self.config = config
        manager = WorkingManager(config.working_dir, pusher, self.history_handler)
        manager.start()
        self.working_manager = manager

    def _record(self, action: Callable[[HistoryHandler], Any]) -> None:
        try:
            action(self.history_handler)
        except OSError as exc:
            logger.warning("writing history failed: %s", exc)

    def push_now(self, message: Message, options: PushOptions) -> Message:
        """Deliver a message at once, then flush every delayed message."""
        with self._lock:
            pusher = self.current_pusher
            if pusher is None:
                raise RuntimeError("pusher not initialized")
            try:
                pusher.validate(options)
            except ValueError as exc:
                self._record(
                    lambda h: h.record_failure(
                        message, pusher.name, options, f"validation failed: {exc}"
                    )
                )
                raise ValueError(f"push options invalid: {exc}") from exc

            message.sent_at = _local_now()
            message.send_status = SendStatus.SUCCESS
            try:
                pusher.push(message)
            except PushError as exc:
                message.send_status = SendStatus.FAILED
                self._record(
                    lambda h: h.record_failure(message, pusher.name, options, f"push failed: {exc}")
                )
                raise PushError(f"pushing message failed: {exc}") from exc

            self._record(lambda h: h.record_success(message, pusher.name, options))
            logger.info("message pushed: %s", message.id)

            if self.working_manager is not None:
                try:
                    self.working_manager.send_all_delay_messages()
                except (PushError, OSError, ValueError) as exc:
                    logger.warning("sending delayed messages failed: %s", exc)
            return message

    def enqueue(self, message: Message, options: PushOptions) -> DelayMessage:
        """Hold a message back for the next merged delivery."""
        with self._lock:
            if self.working_manager is None:
                raise RuntimeError("working manager not initialized")
            entry = self.working_manager.add_delay_message(message, options)
            logger.info("message written to delay file: %s", message.id)
            return entry

    def flush_queue(self) -> int:
        """Deliver every delayed message now; return how many were merged."""
        with self._lock:
            if self.working_manager is None:
                raise RuntimeError("working manager not initialized")
            return self.working_manager.send_all_delay_messages()

    def push_at(
        self, message: Message, options: PushOptions, scheduled_at: datetime
    ) -> ScheduledMessage:
        """Schedule a message for the minute of ``scheduled_at``."""
        with self._lock:
            if self.working_manager is None or self.current_pusher is None:
                raise RuntimeError("working manager not initialized")
            try:
                self.current_pusher.validate(options)
            except ValueError as exc:
                raise ValueError(f"push options invalid: {exc}") from exc
            entry = self.working_manager.add_scheduled_message(message, options, scheduled_at)
            logger.info(
                "scheduled message arranged: %s -> %s", message.id, f"{scheduled_at:%Y-%m-%d %H:%M}"
            )
            return entry

    def stop(self) -> None:
        """Stop background processing; calling it again does nothing."""
        with self._lock:
            if self.working_manager is not None:
                self.working_manager.stop()

    def registered_pushers(self) -> list[str]:
        """Names of every registered pusher."""
        with self._lock:
            return self.registry.names()