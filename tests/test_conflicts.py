from __future__ import annotations

import pytest

from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityStatus,
    Placement,
)
from roomplanner.domain.time_arithmetic import time_to_minutes
from roomplanner.services.conflict_service import (
    detect_conflicts,
    format_conflict_message,
    intervals_overlap,
)


def booking(
    activity_id: str,
    start: str,
    end: str,
    resource_id: str = "hall-a",
    day: str = "2026-03-02",
    status: ActivityStatus = ActivityStatus.PLANNED,
    title: str = "Rehearsal",
) -> Activity:
    return Activity(
        activity_id=activity_id,
        resource_id=resource_id,
        kind=ActivityKind.EVENT,
        date=day,
        start=time_to_minutes(start),
        end=time_to_minutes(end),
        status=status,
        title=title,
    )


def placement(start: str, end: str, resource_id: str = "hall-a", day: str = "2026-03-02") -> Placement:
    return Placement(
        resource_id=resource_id,
        date=day,
        start=time_to_minutes(start),
        end=time_to_minutes(end),
    )


def test_touching_intervals_do_not_overlap() -> None:
    assert not intervals_overlap(600, 660, 660, 720)
    assert not intervals_overlap(660, 720, 600, 660)
    assert intervals_overlap(600, 661, 660, 720)
    assert intervals_overlap(600, 720, 630, 640)


def test_back_to_back_booking_is_not_a_conflict() -> None:
    result = detect_conflicts(placement("11:00", "12:00"), [booking("e1", "10:00", "11:00")])
    assert not result.has_conflict
    assert result.conflicts == ()


def test_all_overlaps_are_reported_in_order() -> None:
    existing = [
        booking("e3", "12:00", "13:00", title="Late"),
        booking("e1", "10:00", "11:00", title="Early"),
        booking("e2", "10:00", "10:30", title="Short"),
    ]
    result = detect_conflicts(placement("10:15", "12:30"), existing)
    assert result.has_conflict
    assert [item.activity_id for item in result.conflicts] == ["e2", "e1", "e3"]
    assert format_conflict_message(result) == (
        "10:00-10:30: Short\n10:00-11:00: Early\n12:00-13:00: Late"
    )


def test_other_rooms_days_and_cancelled_bookings_are_ignored() -> None:
    existing = [
        booking("e1", "10:00", "11:00", resource_id="studio-1"),
        booking("e2", "10:00", "11:00", day="2026-03-03"),
        booking("e3", "10:00", "11:00", status=ActivityStatus.CANCELLED),
    ]
    assert not detect_conflicts(placement("10:00", "11:00"), existing).has_conflict


def test_moved_booking_never_conflicts_with_itself() -> None:
    existing = [booking("e1", "10:00", "11:00")]
    result = detect_conflicts(placement("10:30", "11:30"), existing, exclude_activity_id="e1")
    assert not result.has_conflict


def test_inverted_placement_is_rejected() -> None:
    with pytest.raises(ValueError):
        detect_conflicts(Placement("hall-a", "2026-03-02", 660, 600), [])
