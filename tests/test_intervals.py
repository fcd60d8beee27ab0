"""Interval merging and free-slot derivation."""

from __future__ import annotations

import random

import pytest

from roomplanner.domain.intervals import calculate_free_slots, merge_intervals, slot_overlaps_range
from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityStatus,
    TimeInterval,
    WorkingWindow,
)
from roomplanner.domain.time_arithmetic import time_to_minutes


WINDOW = WorkingWindow.from_times("08:00", "22:00", 30)


def make_activity(
    start: str,
    end: str,
    activity_id: str = "a1",
    status: ActivityStatus = ActivityStatus.PLANNED,
) -> Activity:
    return Activity(
        activity_id=activity_id,
        resource_id="studio-1",
        kind=ActivityKind.RENTAL,
        date="2026-03-02",
        start=time_to_minutes(start),
        end=time_to_minutes(end),
        status=status,
        title="Rental",
    )


def _random_intervals(rng: random.Random, count: int) -> list[TimeInterval]:
    intervals = []
    for _ in range(count):
        start = rng.randrange(WINDOW.day_start, WINDOW.day_end - 15, 5)
        end = min(start + rng.randrange(5, 180, 5), WINDOW.day_end)
        intervals.append(TimeInterval(start=start, end=end))
    return intervals


def _covered(intervals) -> set[int]:
    return {minute for item in intervals for minute in range(item.start, item.end)}


def test_merge_of_nothing_and_single() -> None:
    assert merge_intervals([]) == []
    assert merge_intervals([TimeInterval(600, 660)]) == [TimeInterval(600, 660)]


def test_touching_and_overlapping_intervals_merge() -> None:
    merged = merge_intervals(
        [
            TimeInterval(660, 720),
            TimeInterval(600, 660),
            TimeInterval(700, 750),
            TimeInterval(800, 830),
        ]
    )
    assert merged == [TimeInterval(600, 750), TimeInterval(800, 830)]


def test_cancelled_activities_are_not_busy() -> None:
    merged = merge_intervals(
        [
            make_activity("10:00", "11:00", "a1"),
            make_activity("11:00", "12:00", "a2", status=ActivityStatus.CANCELLED),
        ]
    )
    assert merged == [TimeInterval(600, 660)]


@pytest.mark.parametrize("seed", range(20))
def test_merge_output_is_disjoint_with_equal_coverage(seed: int) -> None:
    rng = random.Random(seed)
    intervals = _random_intervals(rng, rng.randint(0, 12))
    merged = merge_intervals(intervals)

    for previous, current in zip(merged, merged[1:]):
        assert previous.end < current.start
    assert _covered(merged) == _covered(intervals)


@pytest.mark.parametrize("seed", range(20))
def test_free_slots_partition_the_window(seed: int) -> None:
    rng = random.Random(seed)
    intervals = _random_intervals(rng, rng.randint(0, 10))
    free = calculate_free_slots(intervals, WINDOW, min_duration=1)

    busy_minutes = _covered(merge_intervals(intervals))
    free_minutes = _covered(free)
    assert not busy_minutes & free_minutes
    assert busy_minutes | free_minutes == set(range(WINDOW.day_start, WINDOW.day_end))


@pytest.mark.parametrize("seed", range(10))
def test_free_slots_respect_minimum_duration(seed: int) -> None:
    rng = random.Random(seed)
    free = calculate_free_slots(_random_intervals(rng, 8), WINDOW, min_duration=45)
    assert all(slot.duration >= 45 for slot in free)


def test_free_slots_of_empty_day_is_whole_window() -> None:
    assert calculate_free_slots([], WINDOW, 30) == [TimeInterval(WINDOW.day_start, WINDOW.day_end)]


def test_free_slots_between_bookings() -> None:
    free = calculate_free_slots(
        [make_activity("10:00", "11:30", "a1"), make_activity("12:00", "12:20", "a2")],
        WINDOW,
        30,
    )
    assert [(slot.start_time, slot.end_time) for slot in free] == [
        ("08:00", "10:00"),
        ("11:30", "12:00"),
        ("12:20", "22:00"),
    ]


def test_short_gaps_are_dropped() -> None:
    free = calculate_free_slots(
        [make_activity("08:00", "10:00", "a1"), make_activity("10:20", "22:00", "a2")],
        WINDOW,
        30,
    )
    assert free == []


def test_cutoff_is_rounded_up_to_the_grid() -> None:
    free = calculate_free_slots([], WINDOW, 30, now_minutes=time_to_minutes("14:47"))
    assert free == [TimeInterval(time_to_minutes("15:00"), WINDOW.day_end)]


def test_cutoff_skips_finished_bookings_and_clips_running_gap() -> None:
    free = calculate_free_slots(
        [make_activity("09:00", "10:00", "a1"), make_activity("16:00", "17:00", "a2")],
        WINDOW,
        30,
        now_minutes=time_to_minutes("14:47"),
    )
    assert [(slot.start_time, slot.end_time) for slot in free] == [
        ("15:00", "16:00"),
        ("17:00", "22:00"),
    ]


def test_cutoff_after_closing_yields_nothing() -> None:
    assert calculate_free_slots([], WINDOW, 30, now_minutes=time_to_minutes("21:45")) == []


def test_slot_overlaps_range() -> None:
    slot = TimeInterval(600, 720)
    assert slot_overlaps_range(slot, 700, 800)
    assert not slot_overlaps_range(slot, 720, 800)
    assert not slot_overlaps_range(slot, 700, 800, min_duration=30)
    assert slot_overlaps_range(slot, 630, 690, min_duration=60)
