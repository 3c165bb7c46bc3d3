"""Two simple demonstration plugins."""

from __future__ import annotations

import logging
import time
from typing import Any

from .plugin import Plugin, Task

logger = logging.getLogger(__name__)

APP1_DEFAULT_MESSAGE = "Hello from App1"
APP2_DEFAULT_DATA_PATH = "/tmp/data"
APP2_DEFAULT_RETRY_COUNT = 3


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class App1Task(Task):
    """Logs a configured greeting."""

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.name = "app1"
        self.config = dict(config or {})

    def execute(self) -> str:
        """Log and return the configured message."""
        logger.info("starting App1 task")
        message = self.config.get("message")
        if not isinstance(message, str) or not message:
            message = APP1_DEFAULT_MESSAGE
        logger.info("App1 task finished: %s", message)
        return message

    def validate_config(self, config: dict[str, Any]) -> None:
        if "timeout" in config:
            timeout = config["timeout"]
            if not _is_int(timeout):
                raise ValueError("timeout must be an integer")
            if timeout <= 0:
                raise ValueError("timeout must be greater than 0")


class App1Plugin(Plugin):
    """Creates App1 tasks."""

    name = "app1"

    def create_task(self, config: dict[str, Any]) -> App1Task:
        return App1Task(config)

    def default_config(self) -> dict[str, Any]:
        return {"timeout": 30, "message": APP1_DEFAULT_MESSAGE}


class App2Task(Task):
    """Simulates a one-second job on a data path."""

    def __init__(self, config: dict[str, Any] | None = None, *, delay: float = 1.0) -> None:
        self.name = "app2"
        self.config = dict(config or {})
        self.delay = delay

    def execute(self) -> tuple[str, int]:
        """Wait, then return the data path and retry count in effect."""
        logger.info("starting App2 task")
        time.sleep(self.delay)
        data_path = self.config.get("data_path")
        if not isinstance(data_path, str) or not data_path:
            data_path = APP2_DEFAULT_DATA_PATH
        retry_count = self.config.get("retry_count")
        if not _is_int(retry_count) or retry_count == 0:
            retry_count = APP2_DEFAULT_RETRY_COUNT
        logger.info("App2 task finished: data path=%s, retries=%d", data_path, retry_count)
        return data_path, retry_count

    def validate_config(self, config: dict[str, Any]) -> None:
        if "retry_count" in config:
            retry_count = config["retry_count"]
            if not _is_int(retry_count):
                raise ValueError("retry_count must be an integer")
            if not 0 <= retry_count <= 10:
                raise ValueError("retry_count must be between 0 and 10")
        if "data_path" in config:
            data_path = config["data_path"]
            if not isinstance(data_path, str):
                raise ValueError("data_path must be a string")
            if not data_path:
                raise ValueError("data_path must not be empty")


class App2Plugin(Plugin):
    """Creates App2 tasks."""

    name = "app2"

    def create_task(self, config: dict[str, Any]) -> App2Task:
        return App2Task(config)

    def default_config(self) -> dict[str, Any]:
        return {"retry_count": APP2_DEFAULT_RETRY_COUNT, "data_path": APP2_DEFAULT_DATA_PATH}