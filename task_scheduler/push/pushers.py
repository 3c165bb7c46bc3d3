"""Delivery channels for push messages."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime

import requests

from .types import DEFAULT_SEND_KEY, Message, MessageLevel, PushOptions

logger = logging.getLogger(__name__)

SERVERCHAN_URL = "https://sctapi.ftqq.com/{key}.send"
SERVERCHAN3_URL = "https://{uid}.push.ft07.com/send/{key}.send"
_SCTP_KEY = re.compile(r"^sctp(\d+)t")


class PushError(Exception):
    """Raised when a message could not be delivered."""


class Pusher(ABC):
    """A delivery channel. ``validate`` raises ValueError on bad options."""

    name: str

    @abstractmethod
    def push(self, msg: Message) -> None:
        """Deliver a message, raising PushError on failure."""

    @abstractmethod
    def validate(self, options: PushOptions) -> None:
        """Check delivery options, raising ValueError when they are invalid."""

    @abstractmethod
    def health_check(self) -> bool:
        """Report whether the channel is usable."""


class BasePusher(Pusher):
    """Common option checks for simple channels."""

    def __init__(self, name: str) -> None:
        self.name = name

    def validate(self, options: PushOptions) -> None:
        if not options.receivers:
            raise ValueError("receiver list must not be empty")
        if not 0 <= options.priority <= 10:
            raise ValueError("priority must be between 0 and 10")
        if not 0 <= options.retry <= 5:
            raise ValueError("retry count must be between 0 and 5")

    def health_check(self) -> bool:
        return True


class LogPusher(BasePusher):
    """Writes messages to the log; useful for testing."""

    def __init__(self) -> None:
        super().__init__("log")

    def push(self, msg: Message) -> None:
        logger.info(
            "log push [%s]: %s - %s",
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            msg.id,
            msg.content,
        )


class EmailPusher(BasePusher):
    """E-mail channel; currently records deliveries in the log."""

    def __init__(self) -> None:
        super().__init__("email")

    def push(self, msg: Message) -> None:
        logger.info("email push: %s - %s", msg.id, msg.content)


class SMSPusher(BasePusher):
    """SMS channel; currently records deliveries in the log."""

    def __init__(self) -> None:
        super().__init__("sms")

    def push(self, msg: Message) -> None:
        logger.info("sms push: %s - %s", msg.id, msg.content)


class WeChatPusher(Pusher):
    """Delivers messages to WeChat through the ServerChan service."""

    name = "wechat"

    def __init__(
        self,
        send_key: str = DEFAULT_SEND_KEY,
        *,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.send_key = send_key
        self.timeout = timeout
        self._session = session if session is not None else requests.Session()

    def _endpoint(self) -> str:
        match = _SCTP_KEY.match(self.send_key)
        if match:
            return SERVERCHAN3_URL.format(uid=match.group(1), key=self.send_key)
        return SERVERCHAN_URL.format(key=self.send_key)

    def push(self, msg: Message) -> None:
        content = self.build_content(msg)
        try:
            response = self._session.post(
                self._endpoint(),
                json={"title": msg.title, "desp": content},
                timeout=self.timeout,
            )
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise PushError(f"wechat push failed: {exc}") from exc
        if isinstance(body, dict) and body.get("code", 0) != 0:
            raise PushError(f"wechat push failed: {body.get('message', '')}")

    def validate(self, options: PushOptions) -> None:
        return None

    def health_check(self) -> bool:
        probe = Message(
            id="health_check",
            app_id="system",
            title="健康检查",
            content="这是一条健康检查消息",
            level=MessageLevel.NORMAL,
        )
        try:
            self.push(probe)
        except PushError:
            return False
        return True

    def build_content(self, msg: Message) -> str:
        """Render the message body sent to WeChat."""
        level = "紧急" if msg.level == MessageLevel.EMERGENCY else "普通"
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        parts = [
            f"【{level}】\n",
            f"时间: {timestamp}\n\n",
            f"来源: {msg.app_id}\n\n",
            f"消息ID: {msg.id}\n\n",
            f"内容: \n\n\n{msg.content}\n\n",
        ]
        if msg.metadata:
            parts.append("\n【元数据】\n")
            parts.extend(f"{key}: {value}\n" for key, value in msg.metadata.items())
        return "".join(parts)