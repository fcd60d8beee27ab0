"""Domain-level validation rules for scheduling inputs."""

from __future__ import annotations

from dataclasses import dataclass

from roomplanner.domain.models import RecurrencePattern, WorkingWindow


@dataclass(frozen=True)
class SchedulingConfig:
    window: WorkingWindow
    min_free_slot_minutes: int
    grid_row_height: int
    recurrence_max_days: int


def validate_scheduling_config(config: SchedulingConfig) -> None:
    if config.min_free_slot_minutes <= 0:
        raise ValueError("min_free_slot_minutes must be > 0")
    if config.grid_row_height <= 0:
        raise ValueError("grid_row_height must be > 0")
    if config.recurrence_max_days <= 0:
        raise ValueError("recurrence_max_days must be > 0")
    if config.window.granularity > config.window.day_end - config.window.day_start:
        raise ValueError("granularity must not exceed the working window length")


def validate_recurrence_pattern(pattern: RecurrencePattern, max_days: int | None = None) -> None:
    if not pattern.weekdays:
        raise ValueError("at least one weekday must be selected")
    if any(not 0 <= day <= 6 for day in pattern.weekdays):
        raise ValueError("weekdays must be in 0..6 (Monday = 0)")
    if pattern.start >= pattern.end:
        raise ValueError("recurrence start time must be before end time")
    if pattern.date_from > pattern.date_to:
        raise ValueError("date_from must not be after date_to")
    if max_days is not None and (pattern.date_to - pattern.date_from).days >= max_days:
        raise ValueError(f"recurrence range must not exceed {max_days} days")


def validate_placement_bounds(start: int, end: int, window: WorkingWindow) -> None:
    if start >= end:
        raise ValueError("start time must be before end time")
    if not window.contains(start, end):
        raise ValueError("placement must lie within working hours")
