"""Loading and checking of the scheduler's YAML configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .plugin import TaskInfo

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/config.yaml"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_PLUGINS_DIR = "./plugins"

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or is invalid."""


@dataclass
class TaskConfig:
    """One entry of the main configuration's task list."""

    name: str = ""
    config_file: str = ""
    enabled: bool = False


@dataclass
class Config:
    """The main configuration."""

    log_level: str = DEFAULT_LOG_LEVEL
    plugins_dir: str = DEFAULT_PLUGINS_DIR
    tasks: list[TaskConfig] = field(default_factory=list)


@dataclass
class TaskScheduleConfig:
    """A task's own file: its cron schedule and its parameters."""

    schedule: str = ""
    params: dict[str, Any] = field(default_factory=dict)


def _lower_keys(value: Any) -> Any:
    """Lower-case every mapping key, recursively; keys are matched case-insensitively."""
    if isinstance(value, Mapping):
        return {str(key).lower(): _lower_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def _as_str(value: Any, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"{key} must be a string")


def _as_bool(value: Any, key: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "":
            return False
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
    raise ConfigError(f"{key} must be a boolean")


def _read_yaml(path: str | Path, what: str) -> dict[str, Any]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"reading {what} failed: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"reading {what} failed: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"parsing {what} failed: top level is not a mapping")
    return _lower_keys(data)


def _task_config(raw: Any) -> TaskConfig:
    if raw is None:
        return TaskConfig()
    if not isinstance(raw, Mapping):
        raise ConfigError("parsing config file failed: each task must be a mapping")
    return TaskConfig(
        name=_as_str(raw.get("name"), "name"),
        config_file=_as_str(raw.get("config_file"), "config_file"),
        enabled=_as_bool(raw.get("enabled"), "enabled"),
    )


class ConfigLoader:
    """Reads the main configuration and the per-task files it points to."""

    def __init__(self, config_path: str | Path = DEFAULT_CONFIG_PATH) -> None:
        self.config_path = Path(config_path)

    def load_main_config(self) -> Config:
        """Read the main file, filling in the default log level and plugin directory."""
        data = _read_yaml(self.config_path, "config file")
        raw_tasks = data.get("tasks")
        if raw_tasks is None:
            raw_tasks = []
        if not isinstance(raw_tasks, list):
            raise ConfigError("parsing config file failed: tasks must be a list")
        return Config(
            log_level=_as_str(data.get("log_level"), "log_level") or DEFAULT_LOG_LEVEL,
            plugins_dir=_as_str(data.get("plugins_dir"), "plugins_dir") or DEFAULT_PLUGINS_DIR,
            tasks=[_task_config(item) for item in raw_tasks],
        )

    def load_task_config(self, config_file: str | Path) -> TaskScheduleConfig:
        """Read one task's schedule and parameters."""
        data = _read_yaml(config_file, "task config file")
        params = data.get("params")
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            raise ConfigError("parsing task config file failed: params must be a mapping")
        return TaskScheduleConfig(
            schedule=_as_str(data.get("schedule"), "schedule"),
            params=dict(params),
        )

    def load_all_tasks(self, main_config: Config) -> list[TaskInfo]:
        """Task descriptions of every enabled task whose file could be read."""
        tasks: list[TaskInfo] = []
        for task_config in main_config.tasks:
            if not task_config.enabled:
                logger.info("task disabled: %s", task_config.name)
                continue
            try:
                schedule_config = self.load_task_config(task_config.config_file)
            except ConfigError as exc:
                logger.warning("loading task config failed: %s, error: %s", task_config.name, exc)
                continue
            tasks.append(
                TaskInfo(
                    name=task_config.name,
                    schedule=schedule_config.schedule,
                    config=schedule_config.params,
                    enabled=task_config.enabled,
                )
            )
            logger.info(
                "task config loaded: %s, schedule: %s", task_config.name, schedule_config.schedule
            )
        return tasks

    def validate_config(self, config: Config) -> None:
        """Raise ConfigError when a required setting is empty."""
        if not config.log_level:
            raise ConfigError("log_level must not be empty")
        if not config.plugins_dir:
            raise ConfigError("plugins_dir must not be empty")
        for task in config.tasks:
            if not task.name:
                raise ConfigError("task name must not be empty")
            if not task.config_file:
                raise ConfigError(f"task config file path must not be empty: {task.name}")