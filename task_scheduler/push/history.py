"""Month-partitioned JSON history of delivered and failed messages."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path

from .types import HistoryRecord, Message, PushOptions

SUCCESS_KIND = "success_send"
FAILED_KIND = "failed_send"
_PREFIXES = (SUCCESS_KIND + "_", FAILED_KIND + "_")


def _month_of(file_name: str) -> str | None:
    """Return the ``YYYYMM`` part of a history file name, if it is one."""
    for prefix in _PREFIXES:
        if file_name.startswith(prefix):
            month = file_name[len(prefix):len(prefix) + 6]
            return month if len(month) == 6 else None
    return None


class HistoryHandler:
    """Appends history records to ``{kind}_{YYYYMM}.json`` files in a directory."""

    def __init__(self, history_dir: str | Path) -> None:
        self.history_dir = Path(history_dir)
        self._lock = threading.RLock()

    def record_success(self, msg: Message, pusher_name: str, options: PushOptions) -> HistoryRecord:
        """Append a success record for ``msg`` and return it."""
        record = HistoryRecord.success(msg, pusher_name, options)
        self._write(record, SUCCESS_KIND)
        return record

    def record_failure(
        self, msg: Message, pusher_name: str, options: PushOptions, error_reason: str
    ) -> HistoryRecord:
        """Append a failure record for ``msg`` and return it."""
        record = HistoryRecord.failure(msg, pusher_name, options, error_reason)
        self._write(record, FAILED_KIND)
        return record

    def _path(self, kind: str, year_month: str) -> Path:
        return self.history_dir / f"{kind}_{year_month}.json"

    def _write(self, record: HistoryRecord, kind: str) -> None:
        with self._lock:
            self.history_dir.mkdir(parents=True, exist_ok=True)
            stamp = record.timestamp if record.timestamp is not None else datetime.now()
            path = self._path(kind, stamp.strftime("%Y%m"))
            entries: list = []
            try:
                loaded = json.loads(path.read_text(encoding="utf-8"))
                if isinstance(loaded, list):
                    entries = loaded
            except (OSError, ValueError):
                entries = []
            entries.append(record.to_dict())
            path.write_text(json.dumps(entries, indent=2, ensure_ascii=False), encoding="utf-8")

    def success_records(self, year_month: str) -> list[HistoryRecord]:
        """Return the success records of a ``YYYYMM`` month."""
        return self._records(SUCCESS_KIND, year_month)

    def failed_records(self, year_month: str) -> list[HistoryRecord]:
        """Return the failure records of a ``YYYYMM`` month."""
        return self._records(FAILED_KIND, year_month)

    def _records(self, kind: str, year_month: str) -> list[HistoryRecord]:
        with self._lock:
            try:
                text = self._path(kind, year_month).read_text(encoding="utf-8")
            except FileNotFoundError:
                return []
            data = json.loads(text)
            if data is None:
                return []
            if not isinstance(data, list):
                raise ValueError(f"history file for {year_month} does not hold a list")
            return [HistoryRecord.from_dict(item) for item in data]

    def available_months(self) -> list[str]:
        """Return the sorted ``YYYYMM`` months that have history files."""
        with self._lock:
            if not self.history_dir.is_dir():
                return []
            months = {
                month
                for entry in self.history_dir.iterdir()
                if entry.is_file() and (month := _month_of(entry.name)) is not None
            }
            return sorted(months)

    def cleanup_old_records(self, keep_months: int) -> list[Path]:
        """Delete history files older than ``keep_months`` months; return what was removed."""
        with self._lock:
            if not self.history_dir.is_dir():
                return []
            now = datetime.now()
            total = now.year * 12 + now.month - 1 - keep_months
            cutoff = f"{total // 12:04d}{total % 12 + 1:02d}"
            removed = []
            for entry in self.history_dir.iterdir():
                if not entry.is_file():
                    continue
                month = _month_of(entry.name)
                if month is not None and month < cutoff:
                    entry.unlink()
                    removed.append(entry)
            return removed