"""Minute-of-day arithmetic shared by every scheduling component.

Times travel through the engine as integers (minutes since midnight) and are
rendered as ``HH:MM`` only at the edges. Upstream booking records are not
consistent about how they store a time of day, so :func:`normalize_time`
accepts the shapes seen in practice and reduces them to ``HH:MM``.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone
from typing import Any


MINUTES_PER_DAY = 24 * 60

_HHMM_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
_HHMMSS_PATTERN = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class TimeFormatError(ValueError):
    """Raised when a time or date value cannot be interpreted."""


def time_to_minutes(value: str) -> int:
    match = _HHMM_PATTERN.match(value) if isinstance(value, str) else None
    if match is None:
        raise TimeFormatError(f"time must follow HH:MM format, got {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise TimeFormatError(f"time must lie within 00:00-23:59, got {value!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise TimeFormatError(f"minutes must be an integer, got {minutes!r}")
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise TimeFormatError(f"minutes must lie within 0-{MINUTES_PER_DAY - 1}, got {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_diff_minutes(start_time: str, end_time: str) -> int:
    """Signed difference ``end - start`` in minutes."""
    return time_to_minutes(end_time) - time_to_minutes(start_time)


def time_distance_minutes(first: str, second: str) -> int:
    return abs(time_diff_minutes(first, second))


def max_time(first: str, second: str) -> str:
    return first if time_to_minutes(first) >= time_to_minutes(second) else second


def min_time(first: str, second: str) -> str:
    return first if time_to_minutes(first) <= time_to_minutes(second) else second


def round_up_to_grid(minutes: int, granularity: int) -> int:
    if granularity <= 0:
        raise ValueError("granularity must be > 0")
    return int(math.ceil(minutes / granularity) * granularity)


def is_time_in_interval(minutes: int, start: int, end: int) -> bool:
    """Half-open membership test ``start <= minutes < end``."""
    return start <= minutes < end


def normalize_time(value: Any) -> str:
    """Reduce a source time-of-day to ``HH:MM``.

    Accepted shapes: ``HH:MM``, ``HH:MM:SS``, an ISO timestamp with an embedded
    time (``1970-01-01T10:00:00.000Z``; aware values are read in UTC), and
    ``datetime.time`` / ``datetime.datetime`` instances.
    """
    if isinstance(value, datetime):
        return _format_datetime_time(value)
    if isinstance(value, time):
        return minutes_to_time(value.hour * 60 + value.minute)
    if not isinstance(value, str) or not value.strip():
        raise TimeFormatError(f"time value is empty or not a string: {value!r}")

    text = value.strip()
    if _HHMM_PATTERN.match(text):
        time_to_minutes(text)
        return text
    seconds_match = _HHMMSS_PATTERN.match(text)
    if seconds_match:
        truncated = text[:5]
        time_to_minutes(truncated)
        return truncated
    if "T" in text:
        return _format_datetime_time(_parse_timestamp(text))
    raise TimeFormatError(f"unsupported time format: {value!r}")


def normalize_date(value: Any) -> str:
    """Reduce a source calendar date to ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        raise TimeFormatError(f"date value is empty or not a string: {value!r}")

    text = value.strip().split("T", 1)[0]
    if not _DATE_PATTERN.match(text):
        raise TimeFormatError(f"date must follow YYYY-MM-DD format, got {value!r}")
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise TimeFormatError(f"date is not a valid calendar day: {value!r}") from exc


def parse_date(value: Any) -> date:
    return date.fromisoformat(normalize_date(value))


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours} h"
    return f"{hours} h {remainder} min"


def format_time_slot(slot: Any) -> str:
    return f"{minutes_to_time(slot.start)} - {minutes_to_time(slot.end)}"


def _parse_timestamp(text: str) -> datetime:
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise TimeFormatError(f"unsupported timestamp format: {text!r}") from exc


def _format_datetime_time(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return minutes_to_time(value.hour * 60 + value.minute)
