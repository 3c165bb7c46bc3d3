"""Runs plugin tasks on cron schedules and keeps their recent results."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from .cron import CronError, CronSchedule, parse_schedule
from .plugin import Plugin, Task, TaskInfo, TaskResult

logger = logging.getLogger(__name__)

RESULT_LIMIT = 100


class TaskManagerError(Exception):
    """Raised when a task cannot be added or found."""


@dataclass
class ManagedTask:
    """A task under the manager's control."""

    info: TaskInfo
    plugin: Plugin
    task: Task
    entry_id: int


@dataclass
class _Entry:
    entry_id: int
    schedule: CronSchedule
    job: Callable[[], object]
    next_run: datetime | None = None


def _now() -> datetime:
    return datetime.now().astimezone()


class TaskManager:
    """Holds plugins and tasks and fires the tasks from a background scheduler thread."""

    def __init__(self) -> None:
        self._plugins: dict[str, Plugin] = {}
        self._tasks: dict[str, ManagedTask] = {}
        self._results: list[TaskResult] = []
        self._entries: list[_Entry] = []
        self._next_entry_id = 1
        self._lock = threading.RLock()
        self._wake = threading.Condition(self._lock)
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    def register_plugin(self, plugin: Plugin) -> None:
        """Make a plugin available under its name."""
        with self._lock:
            self._plugins[plugin.name] = plugin
        logger.info("plugin registered: %s", plugin.name)

    def add_task(self, info: TaskInfo) -> ManagedTask:
        """Create the task from the plugin of the same name and schedule it."""
        with self._lock:
            plugin = self._plugins.get(info.name)
            if plugin is None:
                raise TaskManagerError(f"plugin not found: {info.name}")
            try:
                task = plugin.create_task(info.config)
            except Exception as exc:
                raise TaskManagerError(f"creating task failed: {exc}") from exc
            try:
                task.validate_config(info.config)
            except ValueError as exc:
                raise TaskManagerError(f"config validation failed: {exc}") from exc
            try:
                schedule = parse_schedule(info.schedule)
            except CronError as exc:
                raise TaskManagerError(f"adding scheduled task failed: {exc}") from exc

            entry = _Entry(
                entry_id=self._next_entry_id,
                schedule=schedule,
                job=lambda task=task, info=info: self._execute(task, info),
            )
            self._next_entry_id += 1
            if self._thread is not None:
                entry.next_run = schedule.next_after(_now())
            self._entries.append(entry)
            managed = ManagedTask(info=info, plugin=plugin, task=task, entry_id=entry.entry_id)
            self._tasks[info.name] = managed
            self._wake.notify_all()
        logger.info("task added: %s, schedule: %s", info.name, info.schedule)
        return managed

    def _execute(self, task: Task, info: TaskInfo) -> TaskResult:
        start = _now()
        started = time.monotonic()
        error = ""
        try:
            task.execute()
        except Exception as exc:
            error = str(exc) or type(exc).__name__
        end = _now()
        result = TaskResult(
            task_name=info.name,
            start_time=start,
            end_time=end,
            duration=timedelta(seconds=time.monotonic() - started),
            success=not error,
            error=error,
        )
        if error:
            logger.warning("task failed: %s, error: %s", info.name, error)
        else:
            logger.info("task succeeded: %s, took: %s", info.name, result.duration)
        with self._lock:
            self._results.append(result)
            if len(self._results) > RESULT_LIMIT:
                del self._results[:-RESULT_LIMIT]
        return result

    def run_task(self, name: str) -> TaskResult:
        """Run a managed task now, in the calling thread, and record its result."""
        with self._lock:
            managed = self._tasks.get(name)
        if managed is None:
            raise TaskManagerError(f"task not found: {name}")
        return self._execute(managed.task, managed.info)

    def _run(self) -> None:
        with self._wake:
            now = _now()
            for entry in self._entries:
                entry.next_run = entry.schedule.next_after(now)
            while not self._stopping.is_set():
                pending = [e.next_run for e in self._entries if e.next_run is not None]
                if not pending:
                    self._wake.wait()
                    continue
                delay = (min(pending) - _now()).total_seconds()
                if delay > 0:
                    self._wake.wait(delay)
                    continue
                now = _now()
                for entry in self._entries:
                    if entry.next_run is not None and entry.next_run <= now:
                        threading.Thread(target=entry.job, daemon=True).start()
                        entry.next_run = entry.schedule.next_after(now)

    def start(self) -> None:
        """Start the scheduler thread; does nothing when already running."""
        with self._lock:
            if self._thread is not None:
                return
            self._stopping.clear()
            self._thread = threading.Thread(target=self._run, name="task-scheduler", daemon=True)
            self._thread.start()
        logger.info("task manager started")

    def stop(self) -> None:
        """Stop scheduling; tasks already running are left to finish."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._thread = None
            self._stopping.set()
            self._wake.notify_all()
        thread.join()
        logger.info("task manager stopped")

    def tasks(self) -> dict[str, ManagedTask]:
        """A copy of the managed tasks by name."""
        with self._lock:
            return dict(self._tasks)

    def results(self) -> list[TaskResult]:
        """A copy of the most recent results, oldest first."""
        with self._lock:
            return list(self._results)