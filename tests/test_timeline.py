from __future__ import annotations

from datetime import datetime

import pytest

from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityStatus,
    Resource,
    WorkingWindow,
)
from roomplanner.domain.time_arithmetic import time_to_minutes
from roomplanner.services.timeline_service import (
    build_resource_timelines,
    build_week_activities,
    calculate_drop_position,
    current_time_position,
    grid_row_labels,
    layout_overlapping_activities,
    project_to_grid,
    row_to_time_range,
    search_resources,
    week_dates,
)


WINDOW = WorkingWindow.from_times("08:00", "22:00", 30)
DAY = "2026-03-02"

RESOURCES = [
    Resource("hall-a", "Hall A", capacity=80, area=120.0, resource_type="HALL"),
    Resource("studio-1", "Studio 1", capacity=20, area=45.0, resource_type="STUDIO"),
    Resource("studio-2", "Studio 2", capacity=15, area=35.0, resource_type="STUDIO"),
    Resource("room-102", "Room 102", status="MAINTENANCE"),
]


def activity(
    activity_id: str,
    resource_id: str,
    start: str,
    end: str,
    kind: ActivityKind = ActivityKind.RENTAL,
    day: str = DAY,
    status: ActivityStatus = ActivityStatus.PLANNED,
) -> Activity:
    return Activity(
        activity_id=activity_id,
        resource_id=resource_id,
        kind=kind,
        date=day,
        start=time_to_minutes(start),
        end=time_to_minutes(end),
        status=status,
        title=activity_id,
    )


ACTIVITIES = [
    activity("r1", "hall-a", "09:00", "10:00"),
    activity("r2", "hall-a", "15:00", "17:00", kind=ActivityKind.EVENT),
    activity("c1", "studio-1", "14:00", "15:30", kind=ActivityKind.CLASS),
    activity("x1", "studio-2", "11:00", "12:00", status=ActivityStatus.CANCELLED),
    activity("o1", "studio-2", "11:00", "12:00", day="2026-03-03"),
]


def test_rooms_occupied_now_rank_first() -> None:
    now = datetime(2026, 3, 2, 14, 47)
    timelines = build_resource_timelines(RESOURCES, ACTIVITIES, DAY, WINDOW, 30, now=now)

    assert [item.resource.resource_id for item in timelines] == ["studio-1", "hall-a", "studio-2"]
    assert timelines[0].is_occupied_now
    assert timelines[0].current_activity.activity_id == "c1"
    assert timelines[0].free_slots[0].start_time == "15:30"


def test_without_now_rooms_with_bookings_rank_first_then_fewer_bookings() -> None:
    timelines = build_resource_timelines(RESOURCES, ACTIVITIES, DAY, WINDOW, 30)
    assert [item.resource.resource_id for item in timelines] == ["studio-1", "hall-a", "studio-2"]
    assert not any(item.is_occupied_now for item in timelines)


def test_cancelled_bookings_count_but_do_not_occupy() -> None:
    timelines = build_resource_timelines(RESOURCES, ACTIVITIES, DAY, WINDOW, 30)
    studio_2 = next(item for item in timelines if item.resource.resource_id == "studio-2")
    assert studio_2.total_activities_count == 1
    assert not studio_2.has_activities
    assert [(slot.start_time, slot.end_time) for slot in studio_2.free_slots] == [("08:00", "22:00")]


def test_now_on_another_day_does_not_cut_free_slots() -> None:
    now = datetime(2026, 3, 1, 18, 0)
    timelines = build_resource_timelines(RESOURCES, ACTIVITIES, DAY, WINDOW, 30, now=now)
    hall = next(item for item in timelines if item.resource.resource_id == "hall-a")
    assert hall.free_slots[0].start_time == "08:00"


def test_filters() -> None:
    by_kind = build_resource_timelines(
        RESOURCES,
        ACTIVITIES,
        DAY,
        WINDOW,
        30,
        kinds=[ActivityKind.EVENT],
        must_have_activity=True,
    )
    assert [item.resource.resource_id for item in by_kind] == ["hall-a"]
    assert [item.activity_id for item in by_kind[0].activities] == ["r2"]

    by_id = build_resource_timelines(RESOURCES, ACTIVITIES, DAY, WINDOW, 30, resource_ids=["studio-2"])
    assert [item.resource.resource_id for item in by_id] == ["studio-2"]

    occupied = build_resource_timelines(
        RESOURCES,
        ACTIVITIES,
        DAY,
        WINDOW,
        30,
        now=datetime(2026, 3, 2, 9, 30),
        occupied_now_only=True,
    )
    assert [item.resource.resource_id for item in occupied] == ["hall-a"]


def test_search_prefers_free_and_least_loaded_rooms() -> None:
    timelines = build_resource_timelines(RESOURCES, ACTIVITIES, DAY, WINDOW, 30)
    results = search_resources(timelines, time_to_minutes("14:30"), time_to_minutes("15:30"))

    assert [item.resource.resource_id for item in results] == ["studio-2", "studio-1", "hall-a"]
    assert results[0].is_available
    assert results[0].first_free_slot.start_time == "08:00"
    assert [item.activity_id for item in results[1].conflicting_activities] == ["c1"]
    assert [item.activity_id for item in results[2].conflicting_activities] == ["r2"]

    studios = search_resources(
        timelines,
        time_to_minutes("14:30"),
        time_to_minutes("15:30"),
        resource_type="STUDIO",
        min_capacity=18,
        only_available=True,
    )
    assert studios == []


def test_search_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        search_resources([], 600, 600)


def test_grid_projection_clips_to_window() -> None:
    inside = project_to_grid(time_to_minutes("10:00"), time_to_minutes("11:15"), WINDOW, 48)
    assert (inside.row_start, inside.row_span, inside.top, inside.height) == (4, 3, 192, 144)

    early = project_to_grid(time_to_minutes("07:00"), time_to_minutes("09:00"), WINDOW, 48)
    assert (early.row_start, early.row_span) == (0, 2)

    late = project_to_grid(time_to_minutes("21:30"), time_to_minutes("23:00"), WINDOW, 48)
    assert late.row_start + late.row_span == WINDOW.total_rows

    assert project_to_grid(time_to_minutes("06:00"), time_to_minutes("08:00"), WINDOW, 48) is None


def test_rows_and_labels() -> None:
    labels = grid_row_labels(WINDOW)
    assert len(labels) == WINDOW.total_rows == 28
    assert labels[0] == "08:00" and labels[-1] == "21:30"
    assert row_to_time_range(1, WINDOW).start_time == "08:30"
    with pytest.raises(ValueError):
        row_to_time_range(28, WINDOW)


def test_current_time_line() -> None:
    assert current_time_position(time_to_minutes("08:00"), WINDOW, 48) == 0
    assert current_time_position(time_to_minutes("15:00"), WINDOW, 48) == pytest.approx(14 * 48)
    assert current_time_position(time_to_minutes("07:59"), WINDOW, 48) is None


def test_drop_position_snaps_and_stays_inside_day() -> None:
    interval, row = calculate_drop_position(100, 60, WINDOW, 48)
    assert (interval.start_time, interval.end_time, row) == ("09:00", "10:00", 2)

    interval, row = calculate_drop_position(10_000, 90, WINDOW, 48)
    assert (interval.start_time, interval.end_time) == ("20:30", "22:00")
    assert row == 25


def test_overlapping_cards_get_columns() -> None:
    layouts = layout_overlapping_activities(
        [
            activity("a", "hall-a", "10:00", "12:00"),
            activity("b", "hall-a", "11:00", "13:00"),
            activity("c", "hall-a", "12:00", "14:00"),
            activity("d", "hall-a", "16:00", "17:00"),
        ]
    )
    by_id = {item.activity.activity_id: item for item in layouts}
    assert (by_id["a"].column, by_id["b"].column, by_id["c"].column) == (0, 1, 0)
    assert by_id["a"].total_columns == 2
    assert (by_id["d"].column, by_id["d"].total_columns) == (0, 1)


def test_week_view_is_monday_first() -> None:
    assert week_dates("2026-03-04") == [
        "2026-03-02",
        "2026-03-03",
        "2026-03-04",
        "2026-03-05",
        "2026-03-06",
        "2026-03-07",
        "2026-03-08",
    ]
    week = build_week_activities(ACTIVITIES, "2026-03-04", resource_ids=["studio-2", "hall-a"])
    assert [item.activity_id for item in week["2026-03-02"]] == ["r1", "r2"]
    assert [item.activity_id for item in week["2026-03-03"]] == ["o1"]
    assert week["2026-03-08"] == []
