"""Interfaces for plugins and the tasks they create."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any


class Task(ABC):
    """A unit of scheduled work."""

    name: str

    @abstractmethod
    def execute(self) -> Any:
        """Run the task, raising on failure; may return a description of the outcome."""

    @abstractmethod
    def validate_config(self, config: dict[str, Any]) -> None:
        """Raise ValueError when ``config`` is not acceptable."""


class Plugin(ABC):
    """Creates tasks of one kind."""

    name: str

    @abstractmethod
    def create_task(self, config: dict[str, Any]) -> Task:
        """Build a task from its parameters."""

    @abstractmethod
    def default_config(self) -> dict[str, Any]:
        """Default parameters of the tasks this plugin creates."""


@dataclass
class TaskInfo:
    """A task as configured: which plugin, when, and with what parameters."""

    name: str
    schedule: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = False


@dataclass
class TaskResult:
    """Outcome of one run of a task."""

    task_name: str
    start_time: datetime
    end_time: datetime
    duration: timedelta
    success: bool
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form; the duration is in nanoseconds and an empty error is left out."""
        data: dict[str, Any] = {
            "task_name": self.task_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": self.duration // timedelta(microseconds=1) * 1000,
            "success": self.success,
        }
        if self.error:
            data["error"] = self.error
        return data