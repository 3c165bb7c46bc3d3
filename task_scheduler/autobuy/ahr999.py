"""AHR999 index values: fetched from a public API and cached per month."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import requests

logger = logging.getLogger(__name__)

AHR999_API_URL = "https://dncapi.flink1.com/api/v2/index/arh999?code=bitcoin&webp=1"
HISTORY_DIR = "plugins/auto-buy/ahr999_history"
EARLIEST_MONTH = "2024-01"
EARLIEST_DATE = "2024-01-01"


class Ahr999Error(Exception):
    """Raised when AHR999 data cannot be obtained."""


@dataclass(frozen=True)
class Ahr999Point:
    """The AHR999 value and BTC price of one day."""

    date: str
    timestamp: int
    ahr999: float
    btc_price: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "timestamp": self.timestamp,
            "ahr999": self.ahr999,
            "btc_price": self.btc_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Ahr999Point:
        return cls(
            date=str(data.get("date", "") or ""),
            timestamp=int(data.get("timestamp", 0) or 0),
            ahr999=float(data.get("ahr999", 0.0) or 0.0),
            btc_price=float(data.get("btc_price", 0.0) or 0.0),
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_api_response(payload: Any) -> list[Ahr999Point]:
    """Turn an API response into one point per local day (the earliest), newest first."""
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise Ahr999Error(f"parsing API response failed: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise Ahr999Error("parsing API response failed: not an object")
    if payload.get("code") != 200:
        raise Ahr999Error(f"API returned an error: {payload.get('msg', '')}")

    by_day: dict[str, Ahr999Point] = {}
    for row in payload.get("data") or []:
        if not isinstance(row, (list, tuple)) or len(row) < 5:
            continue
        stamp, value, price = row[0], row[1], row[2]
        if not (_is_number(stamp) and _is_number(value) and _is_number(price)):
            continue
        seconds = int(stamp)
        try:
            day = datetime.fromtimestamp(seconds).strftime("%Y-%m-%d")
        except (OverflowError, OSError, ValueError):
            continue
        point = Ahr999Point(day, seconds, float(value), float(price))
        old = by_day.get(day)
        if old is None or point.timestamp < old.timestamp:
            by_day[day] = point
    return sorted(by_day.values(), key=lambda p: p.timestamp, reverse=True)


def fetch_from_api(timeout: float = 30.0) -> list[Ahr999Point]:
    """Download the AHR999 series and return one point per day, newest first."""
    try:
        response = requests.get(AHR999_API_URL, timeout=timeout)
    except requests.RequestException as exc:
        raise Ahr999Error(f"requesting API failed: {exc}") from exc
    if response.status_code != 200:
        raise Ahr999Error(f"API returned status code {response.status_code}")
    return parse_api_response(response.content)


class Ahr999Source:
    """Looks AHR999 values up in a month-file cache, refreshing it from the API on a miss."""

    def __init__(
        self,
        history_dir: str | Path = HISTORY_DIR,
        fetcher: Callable[[], Iterable[Ahr999Point]] | None = None,
    ) -> None:
        self.history_dir = Path(history_dir)
        self.fetcher = fetcher if fetcher is not None else fetch_from_api
        self._lock = threading.RLock()

    def _month_path(self, month: str) -> Path:
        return self.history_dir / f"{month}.json"

    def _read_month(self, month: str) -> dict[str, Ahr999Point]:
        points: dict[str, Ahr999Point] = {}
        try:
            text = self._month_path(month).read_text(encoding="utf-8")
        except OSError:
            return points
        for line in text.splitlines():
            try:
                data = json.loads(line)
                point = Ahr999Point.from_dict(data)
            except (ValueError, TypeError, AttributeError):
                continue
            points[point.date] = point
        return points

    def lookup(self, date: str) -> Ahr999Point | None:
        """The cached point of a ``YYYY-MM-DD`` date, or None."""
        with self._lock:
            return self._read_month(date[:7]).get(date)

    def update(self, points: Iterable[Ahr999Point]) -> list[Path]:
        """Merge points into the month files, keeping each day's earliest; return files written."""
        with self._lock:
            self.history_dir.mkdir(parents=True, exist_ok=True)
            by_month: dict[str, list[Ahr999Point]] = {}
            for point in points:
                month = point.date[:7]
                if month < EARLIEST_MONTH:
                    continue
                by_month.setdefault(month, []).append(point)

            written = []
            for month, new_points in by_month.items():
                existing = self._read_month(month)
                for point in new_points:
                    if point.date < EARLIEST_DATE:
                        continue
                    old = existing.get(point.date)
                    if old is None or point.timestamp < old.timestamp:
                        existing[point.date] = point
                ordered = sorted(existing.values(), key=lambda p: p.timestamp, reverse=True)
                path = self._month_path(month)
                path.write_text(
                    "".join(
                        json.dumps(p.to_dict(), separators=(",", ":"), ensure_ascii=False) + "\n"
                        for p in ordered
                    ),
                    encoding="utf-8",
                )
                written.append(path)
            return written

    def _resolve(self, day: str) -> Ahr999Point | None:
        point = self.lookup(day)
        if point is not None:
            return point
        points = list(self.fetcher())
        try:
            self.update(points)
        except OSError as exc:
            logger.warning("writing AHR999 cache failed: %s", exc)
        return self.lookup(day)

    def current(self) -> tuple[float, float]:
        """Today's ``(btc_price, ahr999)``."""
        point = self._resolve(date.today().strftime("%Y-%m-%d"))
        if point is None:
            raise Ahr999Error("no valid AHR999 data available")
        return point.btc_price, point.ahr999

    def at(self, when: date | datetime) -> tuple[float, float]:
        """The ``(btc_price, ahr999)`` of the day of ``when``."""
        day = when.strftime("%Y-%m-%d")
        point = self._resolve(day)
        if point is None:
            raise Ahr999Error(f"no AHR999 data for {day}")
        return point.btc_price, point.ahr999