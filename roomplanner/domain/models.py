"""Domain models for room timelines, conflicts and recurrence expansion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

from roomplanner.domain.time_arithmetic import (
    MINUTES_PER_DAY,
    minutes_to_time,
    time_to_minutes,
)


class ActivityKind(str, Enum):
    CLASS = "class"
    RENTAL = "rental"
    EVENT = "event"
    RESERVATION = "reservation"


class ActivityStatus(str, Enum):
    PLANNED = "PLANNED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ShiftDirection(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


RESOURCE_STATUS_AVAILABLE = "AVAILABLE"


def is_active_status(status: Any) -> bool:
    """Cancelled activities never take part in occupancy or conflict checks."""
    if status is None:
        return True
    return str(getattr(status, "value", status)).upper() != ActivityStatus.CANCELLED.value


def _validate_bounds(start: int, end: int) -> None:
    if not 0 <= start < MINUTES_PER_DAY or not 0 <= end < MINUTES_PER_DAY:
        raise ValueError("interval bounds must lie within the same calendar day")
    if start >= end:
        raise ValueError("interval start must be before end")


@dataclass(frozen=True)
class Resource:
    resource_id: str
    name: str
    status: str = RESOURCE_STATUS_AVAILABLE
    capacity: Optional[int] = None
    area: Optional[float] = None
    resource_type: Optional[str] = None

    @property
    def is_schedulable(self) -> bool:
        return self.status == RESOURCE_STATUS_AVAILABLE


@dataclass(frozen=True)
class TimeInterval:
    start: int
    end: int

    def __post_init__(self) -> None:
        _validate_bounds(self.start, self.end)

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)


TimeSlot = TimeInterval


@dataclass(frozen=True)
class Activity:
    """Unified projection of any booking kind onto one room and day."""

    activity_id: str
    resource_id: str
    kind: ActivityKind
    date: str
    start: int
    end: int
    status: ActivityStatus = ActivityStatus.PLANNED
    title: str = ""
    subtitle: Optional[str] = None
    source: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        _validate_bounds(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return is_active_status(self.status)

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)


@dataclass(frozen=True)
class WorkingWindow:
    day_start: int = 8 * 60
    day_end: int = 22 * 60
    granularity: int = 30

    def __post_init__(self) -> None:
        if not 0 <= self.day_start < self.day_end < MINUTES_PER_DAY:
            raise ValueError("working window must satisfy 00:00 <= day_start < day_end <= 23:59")
        if self.granularity <= 0:
            raise ValueError("granularity must be > 0")

    @classmethod
    def from_times(cls, day_start: str, day_end: str, granularity: int = 30) -> "WorkingWindow":
        return cls(
            day_start=time_to_minutes(day_start),
            day_end=time_to_minutes(day_end),
            granularity=granularity,
        )

    @property
    def total_rows(self) -> int:
        return -(-(self.day_end - self.day_start) // self.granularity)

    def contains(self, start: int, end: int) -> bool:
        return self.day_start <= start and end <= self.day_end


@dataclass(frozen=True)
class RecurrencePattern:
    """Weekly pattern; weekdays use ``date.weekday()`` numbering (Monday = 0)."""

    weekdays: frozenset[int]
    start: int
    end: int
    date_from: date
    date_to: date


@dataclass(frozen=True)
class Placement:
    resource_id: str
    date: str
    start: int
    end: int


@dataclass(frozen=True)
class ConflictResult:
    has_conflict: bool
    conflicts: tuple[Activity, ...] = ()

    def message(self) -> str:
        return "\n".join(
            f"{item.start_time}-{item.end_time}: {item.title}" for item in self.conflicts
        )


@dataclass(frozen=True)
class SlotSearchResult:
    found: bool
    start: int
    end: int
    shifted: bool = False
    direction: Optional[ShiftDirection] = None
    shift_minutes: Optional[int] = None

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)


@dataclass(frozen=True)
class Occurrence:
    date: str
    start: int
    end: int


@dataclass(frozen=True)
class SkippedOccurrence:
    occurrence: Occurrence
    conflicts: tuple[Activity, ...]

    @property
    def reason(self) -> str:
        return ConflictResult(has_conflict=True, conflicts=self.conflicts).message()


@dataclass(frozen=True)
class TimeGroup:
    start: int
    end: int
    activities: tuple[Activity, ...]

    @property
    def dates(self) -> list[str]:
        return [item.date for item in self.activities]


@dataclass(frozen=True)
class RecurrenceExpansion:
    created: list[Activity]
    skipped: list[SkippedOccurrence]
    time_groups: list[TimeGroup]

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


@dataclass(frozen=True)
class ResourceTimeline:
    resource: Resource
    activities: tuple[Activity, ...]
    free_slots: tuple[TimeInterval, ...]
    current_activity: Optional[Activity]
    is_occupied_now: bool
    has_activities: bool
    total_activities_count: int


@dataclass(frozen=True)
class ResourceSearchResult:
    resource: Resource
    is_available: bool
    available_slots: tuple[TimeInterval, ...]
    activities_count: int
    conflicting_activities: tuple[Activity, ...]

    @property
    def first_free_slot(self) -> Optional[TimeInterval]:
        return self.available_slots[0] if self.available_slots else None


@dataclass(frozen=True)
class GridPosition:
    top: float
    height: float
    row_start: int
    row_span: int


@dataclass(frozen=True)
class ActivityLayout:
    activity: Activity
    column: int
    total_columns: int
