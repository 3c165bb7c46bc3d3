"""High-level entry point of the push subsystem."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from .controller import PushController
from .pushers import Pusher
from .types import (
    Message,
    PushConfig,
    PushMethod,
    PushOptions,
    ScheduledMessage,
    DelayMessage,
    SendStatus,
    WeChatConfig,
    generate_message_id,
)

logger = logging.getLogger(__name__)


def default_config() -> PushConfig:
    """Default settings for the push API."""
    return PushConfig(
        queue_size=1000,
        flush_interval=timedelta(seconds=30),
        working_dir="./tmp/working",
        history_dir="./tmp/history",
        wechat_config=WeChatConfig(),
    )


def default_push_options() -> PushOptions:
    """Default delivery options."""
    return PushOptions(receivers=["my"], priority=1, retry=1)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class PushAPI:
    """Sends messages now, later in a merged batch, or at a set time."""

    def __init__(self) -> None:
        self.controller: PushController | None = None

    def __enter__(self) -> PushAPI:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def initialize(self, config: PushConfig, method: PushMethod) -> None:
        """Set up with one of the built-in channels."""
        controller = PushController(config)
        controller.initialize(config, method)
        self.controller = controller
        logger.info("push API initialized with method: %s", PushMethod(method))

    def initialize_with_pusher(self, config: PushConfig, pusher: Pusher) -> None:
        """Set up with a caller-supplied channel."""
        controller = PushController(config)
        controller.initialize_with_pusher(config, pusher)
        self.controller = controller
        logger.info("push API initialized with custom pusher: %s", pusher.name)

    def _require(self) -> PushController:
        if self.controller is None:
            raise RuntimeError("push API not initialized")
        return self.controller

    @staticmethod
    def _prepare(message: Message) -> None:
        if not message.id:
            message.id = generate_message_id(message.app_id)
        if message.created_at is None:
            message.created_at = _local_now()
        message.send_status = SendStatus.PENDING

    def push_now(self, message: Message, options: PushOptions) -> Message:
        """Deliver a message at once; its status and send time are updated."""
        controller = self._require()
        self._prepare(message)
        try:
            controller.push_now(message, options)
        except Exception:
            message.send_status = SendStatus.FAILED
            raise
        message.sent_at = _local_now()
        message.send_status = SendStatus.SUCCESS
        return message

    def enqueue(self, message: Message, options: PushOptions) -> DelayMessage:
        """Hold a message for the next merged delivery."""
        controller = self._require()
        self._prepare(message)
        return controller.enqueue(message, options)

    def flush_queue(self) -> int:
        """Deliver every held message now; return how many were merged."""
        return self._require().flush_queue()

    def push_at(
        self, message: Message, options: PushOptions, scheduled_at: datetime
    ) -> ScheduledMessage:
        """Schedule a message for the minute of ``scheduled_at``."""
        controller = self._require()
        self._prepare(message)
        return controller.push_at(message, options, scheduled_at)

    def stop(self) -> None:
        """Stop background processing."""
        if self.controller is not None:
            self.controller.stop()

    def registered_pushers(self) -> list[str]:
        """Names of the registered pushers; empty before initialization."""
        if self.controller is None:
            return []
        return self.controller.registered_pushers()