"""Six-field cron expressions (with seconds), descriptors and ``@every`` intervals."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import NamedTuple
from zoneinfo import ZoneInfo


class CronError(ValueError):
    """Raised when a schedule expression cannot be parsed."""


class _Field(NamedTuple):
    name: str
    low: int
    high: int
    names: dict[str, int]


_MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}
_DOW_NAMES = {
    name: number
    for number, name in enumerate(("sun", "mon", "tue", "wed", "thu", "fri", "sat"))
}

_FIELDS = (
    _Field("second", 0, 59, {}),
    _Field("minute", 0, 59, {}),
    _Field("hour", 0, 23, {}),
    _Field("day of month", 1, 31, {}),
    _Field("month", 1, 12, _MONTH_NAMES),
    _Field("day of week", 0, 6, _DOW_NAMES),
)

_DESCRIPTORS = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * 0",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

_INT = re.compile(r"[+-]?\d+")
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_SEARCH_YEARS = 5


@dataclass(frozen=True)
class CronSchedule:
    """A parsed schedule: either field sets to match or a fixed interval."""

    seconds: frozenset[int] = frozenset()
    minutes: frozenset[int] = frozenset()
    hours: frozenset[int] = frozenset()
    days: frozenset[int] = frozenset()
    months: frozenset[int] = frozenset()
    weekdays: frozenset[int] = frozenset()
    dom_star: bool = False
    dow_star: bool = False
    location: tzinfo | None = None
    every: timedelta | None = None

    def _day_matches(self, when: datetime) -> bool:
        dom = when.day in self.days
        dow = (when.weekday() + 1) % 7 in self.weekdays
        if self.dom_star or self.dow_star:
            return dom and dow
        return dom or dow

    def next_after(self, when: datetime) -> datetime | None:
        """The first activation strictly after ``when``, or None if none comes within 5 years."""
        if self.every is not None:
            return when.replace(microsecond=0) + self.every

        original_tz = when.tzinfo
        if self.location is not None:
            when = when.astimezone(self.location)
        tz = when.tzinfo
        t = when.replace(tzinfo=None, microsecond=0) + timedelta(seconds=1)
        added = False
        year_limit = t.year + _SEARCH_YEARS

        while True:
            if t.year > year_limit:
                return None
            wrapped = False

            while t.month not in self.months:
                if not added:
                    added = True
                    t = t.replace(day=1, hour=0, minute=0, second=0)
                t = _add_month(t)
                if t.month == 1:
                    wrapped = True
                    break
            if wrapped:
                continue

            while not self._day_matches(t):
                if not added:
                    added = True
                    t = t.replace(hour=0, minute=0, second=0)
                t += timedelta(days=1)
                if t.day == 1:
                    wrapped = True
                    break
            if wrapped:
                continue

            while t.hour not in self.hours:
                if not added:
                    added = True
                    t = t.replace(minute=0, second=0)
                t += timedelta(hours=1)
                if t.hour == 0:
                    wrapped = True
                    break
            if wrapped:
                continue

            while t.minute not in self.minutes:
                if not added:
                    added = True
                    t = t.replace(second=0)
                t += timedelta(minutes=1)
                if t.minute == 0:
                    wrapped = True
                    break
            if wrapped:
                continue

            while t.second not in self.seconds:
                if not added:
                    added = True
                t += timedelta(seconds=1)
                if t.second == 0:
                    wrapped = True
                    break
            if wrapped:
                continue
            break

        result = t.replace(tzinfo=tz)
        if self.location is None:
            return result
        if original_tz is None:
            return result.astimezone().replace(tzinfo=None)
        return result.astimezone(original_tz)


def _add_month(when: datetime) -> datetime:
    year, month = (when.year + 1, 1) if when.month == 12 else (when.year, when.month + 1)
    return when.replace(year=year, month=month, day=1) + timedelta(days=when.day - 1)


def _parse_int(text: str) -> int:
    if not _INT.fullmatch(text):
        raise CronError(f"failed to parse int from {text!r}")
    value = int(text)
    if value < 0:
        raise CronError(f"negative number ({value}) not allowed: {text}")
    return value


def _parse_value(text: str, spec: _Field) -> int:
    named = spec.names.get(text.lower())
    if named is not None:
        return named
    return _parse_int(text)


def _parse_range(expr: str, spec: _Field) -> tuple[set[int], bool]:
    range_and_step = expr.split("/")
    low_high = range_and_step[0].split("-")
    single = len(low_high) == 1
    star = False

    if low_high[0] in ("*", "?"):
        start, end, star = spec.low, spec.high, True
    else:
        start = _parse_value(low_high[0], spec)
        if len(low_high) == 1:
            end = start
        elif len(low_high) == 2:
            end = _parse_value(low_high[1], spec)
        else:
            raise CronError(f"too many hyphens: {expr}")

    if len(range_and_step) == 1:
        step = 1
    elif len(range_and_step) == 2:
        step = _parse_int(range_and_step[1])
        if single:
            end = spec.high
        if step > 1:
            star = False
    else:
        raise CronError(f"too many slashes: {expr}")

    if start < spec.low:
        raise CronError(f"beginning of {spec.name} range ({start}) below minimum ({spec.low}): {expr}")
    if end > spec.high:
        raise CronError(f"end of {spec.name} range ({end}) above maximum ({spec.high}): {expr}")
    if start > end:
        raise CronError(f"beginning of {spec.name} range ({start}) beyond end ({end}): {expr}")
    if step == 0:
        raise CronError(f"step of range should be a positive number: {expr}")
    return set(range(start, end + 1, step)), star


def _parse_field(expr: str, spec: _Field) -> tuple[frozenset[int], bool]:
    values: set[int] = set()
    star = False
    for part in expr.split(","):
        bits, part_star = _parse_range(part, spec)
        values |= bits
        star = star or part_star
    return frozenset(values), star


def _parse_duration(text: str) -> timedelta:
    body = text
    sign = 1.0
    if body[:1] in ("+", "-"):
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]
    if body == "0":
        total = 0.0
    else:
        if not body:
            raise CronError(f"invalid duration: {text!r}")
        total = 0.0
        pos = 0
        while pos < len(body):
            match = _DURATION_PART.match(body, pos)
            if match is None:
                raise CronError(f"invalid duration: {text!r}")
            total += float(match.group(1)) * _UNITS[match.group(2)]
            pos = match.end()
    seconds = int(sign * total)
    return timedelta(seconds=max(seconds, 1))


def parse_schedule(spec: str) -> CronSchedule:
    """Parse ``sec min hour dom month dow``, a descriptor such as ``@daily``, or ``@every 1h``.

    An optional ``CRON_TZ=Zone`` or ``TZ=Zone`` prefix sets the time zone of the fields.
    """
    text = spec.strip()
    if not text:
        raise CronError("empty spec string")

    location: tzinfo | None = None
    if text.startswith(("TZ=", "CRON_TZ=")):
        zone_part, _, text = text.partition(" ")
        zone_name = zone_part.split("=", 1)[1]
        try:
            location = ZoneInfo(zone_name)
        except (ValueError, OSError, KeyError) as exc:
            raise CronError(f"provided bad location {zone_name}: {exc}") from exc
        text = text.strip()

    if text.startswith("@"):
        if text.startswith("@every "):
            return CronSchedule(every=_parse_duration(text[len("@every "):].strip()))
        expanded = _DESCRIPTORS.get(text)
        if expanded is None:
            raise CronError(f"unrecognized descriptor: {text}")
        text = expanded

    fields = text.split()
    if len(fields) != len(_FIELDS):
        raise CronError(f"expected exactly {len(_FIELDS)} fields, found {len(fields)}: {spec}")

    parsed = [_parse_field(expr, field_spec) for expr, field_spec in zip(fields, _FIELDS)]
    return CronSchedule(
        seconds=parsed[0][0],
        minutes=parsed[1][0],
        hours=parsed[2][0],
        days=parsed[3][0],
        months=parsed[4][0],
        weekdays=parsed[5][0],
        dom_star=parsed[3][1],
        dow_star=parsed[5][1],
        location=location,
    )