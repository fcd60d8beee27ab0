"""Tests for scheduling validation rules.

Covers every branch of validate_scheduling_config(), validate_recurrence_pattern()
and validate_placement_bounds().
"""

from __future__ import annotations

from datetime import date

import pytest

from roomplanner.domain.constraints import (
    SchedulingConfig,
    validate_placement_bounds,
    validate_recurrence_pattern,
    validate_scheduling_config,
)
from roomplanner.domain.models import RecurrencePattern, WorkingWindow


def valid_config(**overrides) -> SchedulingConfig:
    """Return a valid baseline SchedulingConfig, optionally overriding fields."""
    defaults = {
        "window": WorkingWindow(),
        "min_free_slot_minutes": 30,
        "grid_row_height": 48,
        "recurrence_max_days": 366,
    }
    defaults.update(overrides)
    return SchedulingConfig(**defaults)


def valid_pattern(**overrides) -> RecurrencePattern:
    defaults = {
        "weekdays": frozenset({0, 2}),
        "start": 600,
        "end": 660,
        "date_from": date(2026, 3, 2),
        "date_to": date(2026, 3, 29),
    }
    defaults.update(overrides)
    return RecurrencePattern(**defaults)


# --- Baseline pass ---

def test_valid_config_passes() -> None:
    """A fully valid config must not raise."""
    validate_scheduling_config(valid_config())


def test_min_free_slot_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(min_free_slot_minutes=0))


def test_grid_row_height_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(grid_row_height=-1))


def test_recurrence_max_days_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(recurrence_max_days=0))


def test_granularity_longer_than_window_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(
            valid_config(window=WorkingWindow(day_start=480, day_end=500, granularity=30))
        )


# --- WorkingWindow ---

def test_window_ending_at_midnight_raises() -> None:
    with pytest.raises(ValueError):
        WorkingWindow(day_start=480, day_end=1440)


def test_window_with_zero_granularity_raises() -> None:
    with pytest.raises(ValueError):
        WorkingWindow(granularity=0)


def test_window_total_rows_rounds_up() -> None:
    assert WorkingWindow(day_start=480, day_end=500, granularity=15).total_rows == 2


# --- Recurrence pattern ---

def test_valid_pattern_passes() -> None:
    validate_recurrence_pattern(valid_pattern(), max_days=366)


def test_single_day_range_passes() -> None:
    """date_from == date_to is a one-day range."""
    validate_recurrence_pattern(valid_pattern(date_to=date(2026, 3, 2)))


def test_empty_weekdays_raises() -> None:
    with pytest.raises(ValueError):
        validate_recurrence_pattern(valid_pattern(weekdays=frozenset()))


def test_weekday_out_of_range_raises() -> None:
    with pytest.raises(ValueError):
        validate_recurrence_pattern(valid_pattern(weekdays=frozenset({-1})))


def test_pattern_start_equal_end_raises() -> None:
    with pytest.raises(ValueError):
        validate_recurrence_pattern(valid_pattern(start=600, end=600))


def test_pattern_reversed_dates_raise() -> None:
    with pytest.raises(ValueError):
        validate_recurrence_pattern(valid_pattern(date_from=date(2026, 3, 30)))


def test_pattern_longer_than_limit_raises() -> None:
    with pytest.raises(ValueError):
        validate_recurrence_pattern(
            valid_pattern(date_from=date(2026, 1, 1), date_to=date(2027, 1, 1)),
            max_days=365,
        )


# --- Placement bounds ---

def test_placement_inside_window_passes() -> None:
    validate_placement_bounds(480, 1320, WorkingWindow())


def test_placement_before_opening_raises() -> None:
    with pytest.raises(ValueError):
        validate_placement_bounds(450, 540, WorkingWindow())


def test_placement_inverted_raises() -> None:
    with pytest.raises(ValueError):
        validate_placement_bounds(600, 540, WorkingWindow())
