"""Sizing of a periodic purchase from the AHR999 index and a multiplier table."""

from __future__ import annotations

import logging
from typing import Mapping

logger = logging.getLogger(__name__)

Ahr999TimerTable = Mapping[str, float]


class AmountError(ValueError):
    """Raised when no purchase amount can be worked out."""


def _parse_float(text: str) -> float | None:
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _bounds(range_str: str) -> tuple[str, float | None, float | None] | None:
    """Classify a range string as ``<x``, ``>x``, ``a-b`` or a single value."""
    text = range_str.strip()
    if text.startswith("<"):
        value = _parse_float(text[1:])
        return None if value is None else ("<", value, None)
    if text.startswith(">"):
        value = _parse_float(text[1:])
        return None if value is None else (">", value, None)
    if "-" in text:
        parts = text.split("-")
        if len(parts) != 2:
            return None
        low = _parse_float(parts[0].strip())
        high = _parse_float(parts[1].strip())
        if low is None or high is None:
            return None
        return ("-", low, high)
    value = _parse_float(text)
    return None if value is None else ("=", value, None)


def is_in_range(value: float, range_str: str) -> bool:
    """Whether ``value`` falls in ``range_str``; ``a-b`` includes ``a`` and excludes ``b``."""
    bounds = _bounds(range_str)
    if bounds is None:
        return False
    kind, low, high = bounds
    if kind == "<":
        return value < low
    if kind == ">":
        return value > low
    if kind == "-":
        return low <= value < high
    return value == low


def is_valid_range(range_str: str) -> bool:
    """Whether ``range_str`` is in one of the accepted forms."""
    return _bounds(range_str) is not None


def validate_timer_table(table: Ahr999TimerTable) -> None:
    """Raise AmountError on a negative multiplier or a malformed range."""
    for range_str, multiplier in table.items():
        if multiplier < 0:
            raise AmountError(
                f"multiplier must not be negative: range {range_str} has {multiplier}"
            )
        if not is_valid_range(range_str):
            raise AmountError(f"invalid range format: {range_str}")


def recommended_amount(
    base_amount: float, ahr999_value: float, table: Ahr999TimerTable
) -> tuple[float, float, str]:
    """``(amount, multiplier, range)`` of the first range holding ``ahr999_value``."""
    if base_amount <= 0:
        raise AmountError(f"base amount must be greater than 0, got {base_amount}")
    if not table:
        raise AmountError("no multiplier table configured, refusing to run")
    for range_str, multiplier in table.items():
        if is_in_range(ahr999_value, range_str):
            return base_amount * multiplier, float(multiplier), range_str
    raise AmountError("no matching range found, refusing to run")


def calculate_amount(base_amount: float, ahr999_value: float, table: Ahr999TimerTable) -> float:
    """The purchase amount for ``ahr999_value``."""
    amount, multiplier, range_str = recommended_amount(base_amount, ahr999_value, table)
    logger.info("investment amount: %f, multiplier: %f, range: %s", amount, multiplier, range_str)
    return amount