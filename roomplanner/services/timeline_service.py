"""Per-room day timelines, ranking, room search and chess-grid projection."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from roomplanner.domain.intervals import calculate_free_slots, slot_overlaps_range
from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityLayout,
    GridPosition,
    Resource,
    ResourceSearchResult,
    ResourceTimeline,
    TimeInterval,
    WorkingWindow,
)
from roomplanner.domain.time_arithmetic import is_time_in_interval, parse_date
from roomplanner.services.conflict_service import intervals_overlap


def now_minutes_if_today(query_date: str, now: Optional[datetime]) -> Optional[int]:
    """Return the minute-of-day of ``now`` when it falls on ``query_date``."""
    if now is None or now.date().isoformat() != query_date:
        return None
    return now.hour * 60 + now.minute


def _timeline_rank(timeline: ResourceTimeline) -> tuple[bool, bool, int, str]:
    return (
        not timeline.is_occupied_now,
        not timeline.has_activities,
        timeline.total_activities_count,
        timeline.resource.name,
    )


def build_resource_timelines(
    resources: Iterable[Resource],
    activities: Iterable[Activity],
    query_date: str,
    window: WorkingWindow,
    min_slot_duration: int,
    *,
    now: Optional[datetime] = None,
    resource_ids: Optional[Sequence[str]] = None,
    kinds: Optional[Iterable[ActivityKind | str]] = None,
    must_have_activity: bool = False,
    occupied_now_only: bool = False,
) -> list[ResourceTimeline]:
    """Group one day's activities by room and rank rooms for display.

    Ranking: rooms occupied right now first (today only), then rooms with any
    active booking, then fewer bookings, then name.
    """
    wanted_kinds = {ActivityKind(kind) for kind in kinds} if kinds else None
    current_minutes = now_minutes_if_today(query_date, now)

    by_resource: dict[str, list[Activity]] = defaultdict(list)
    for activity in activities:
        if activity.date != query_date:
            continue
        if wanted_kinds is not None and activity.kind not in wanted_kinds:
            continue
        by_resource[activity.resource_id].append(activity)

    selected = [resource for resource in resources if resource.is_schedulable]
    if resource_ids:
        wanted_ids = set(resource_ids)
        selected = [resource for resource in selected if resource.resource_id in wanted_ids]

    timelines: list[ResourceTimeline] = []
    for resource in selected:
        day_activities = tuple(
            sorted(
                by_resource.get(resource.resource_id, []),
                key=lambda activity: (activity.start, activity.end, activity.activity_id),
            )
        )
        current_activity = None
        if current_minutes is not None:
            current_activity = next(
                (
                    activity
                    for activity in day_activities
                    if activity.is_active
                    and is_time_in_interval(current_minutes, activity.start, activity.end)
                ),
                None,
            )
        timelines.append(
            ResourceTimeline(
                resource=resource,
                activities=day_activities,
                free_slots=tuple(
                    calculate_free_slots(
                        day_activities,
                        window,
                        min_slot_duration,
                        now_minutes=current_minutes,
                    )
                ),
                current_activity=current_activity,
                is_occupied_now=current_activity is not None,
                has_activities=any(activity.is_active for activity in day_activities),
                total_activities_count=len(day_activities),
            )
        )

    if must_have_activity:
        timelines = [timeline for timeline in timelines if timeline.has_activities]
    if occupied_now_only and current_minutes is not None:
        timelines = [timeline for timeline in timelines if timeline.is_occupied_now]
    return sorted(timelines, key=_timeline_rank)


def search_resources(
    timelines: Iterable[ResourceTimeline],
    search_start: int,
    search_end: int,
    *,
    resource_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    min_capacity: Optional[int] = None,
    min_area: Optional[float] = None,
    only_available: bool = False,
) -> list[ResourceSearchResult]:
    """Match rooms against a wanted time range, least loaded first."""
    if search_start >= search_end:
        raise ValueError("search start must be before search end")

    results: list[ResourceSearchResult] = []
    for timeline in timelines:
        resource = timeline.resource
        if resource_id and resource.resource_id != resource_id:
            continue
        if resource_type and resource.resource_type != resource_type:
            continue
        if min_capacity and (resource.capacity or 0) < min_capacity:
            continue
        if min_area and (resource.area or 0) < min_area:
            continue

        conflicting = tuple(
            activity
            for activity in timeline.activities
            if activity.is_active
            and intervals_overlap(search_start, search_end, activity.start, activity.end)
        )
        is_available = not conflicting
        if only_available and not is_available:
            continue
        results.append(
            ResourceSearchResult(
                resource=resource,
                is_available=is_available,
                available_slots=tuple(
                    slot
                    for slot in timeline.free_slots
                    if slot_overlaps_range(slot, search_start, search_end, search_end - search_start)
                ),
                activities_count=timeline.total_activities_count,
                conflicting_activities=conflicting,
            )
        )

    return sorted(
        results,
        key=lambda item: (not item.is_available, item.activities_count, item.resource.name),
    )


def project_to_grid(
    start: int,
    end: int,
    window: WorkingWindow,
    row_height: float,
) -> Optional[GridPosition]:
    """Map an interval onto fixed-height grid rows, clipped to the window.

    Returns ``None`` when nothing of the interval is visible.
    """
    effective_start = max(start, window.day_start)
    effective_end = min(end, window.day_end)
    if effective_start >= effective_end:
        return None

    row_start = (effective_start - window.day_start) // window.granularity
    row_span = -(-(effective_end - effective_start) // window.granularity)
    row_span = min(row_span, window.total_rows - row_start)
    return GridPosition(
        top=row_start * row_height,
        height=row_span * row_height,
        row_start=row_start,
        row_span=row_span,
    )


def row_to_time_range(row_index: int, window: WorkingWindow) -> TimeInterval:
    if not 0 <= row_index < window.total_rows:
        raise ValueError(f"row index must be in 0..{window.total_rows - 1}")
    start = window.day_start + row_index * window.granularity
    return TimeInterval(start=start, end=min(start + window.granularity, window.day_end))


def grid_row_labels(window: WorkingWindow) -> list[str]:
    return [row_to_time_range(row, window).start_time for row in range(window.total_rows)]


def current_time_position(
    now_minutes: int,
    window: WorkingWindow,
    row_height: float,
) -> Optional[float]:
    """Pixel offset of the "now" line, or ``None`` outside working hours."""
    if now_minutes < window.day_start or now_minutes > window.day_end:
        return None
    total_height = window.total_rows * row_height
    return (now_minutes - window.day_start) / (window.day_end - window.day_start) * total_height


def calculate_drop_position(
    y_offset: float,
    duration: int,
    window: WorkingWindow,
    row_height: float,
    scale: float = 1.0,
) -> tuple[TimeInterval, int]:
    """Snap a dragged card to the grid; returns the new interval and its row."""
    row_index = round(y_offset / (row_height * scale))
    row_index = max(0, min(row_index, window.total_rows - 1))
    start = window.day_start + row_index * window.granularity
    end = start + duration

    if end > window.day_end:
        end = window.day_end
        adjusted_start = end - duration
        if adjusted_start >= window.day_start:
            adjusted_row = (adjusted_start - window.day_start) // window.granularity
            return TimeInterval(start=adjusted_start, end=end), adjusted_row
    return TimeInterval(start=start, end=end), row_index


def layout_overlapping_activities(activities: Iterable[Activity]) -> list[ActivityLayout]:
    """Assign side-by-side columns to activities that overlap in time."""
    ordered = sorted(activities, key=lambda activity: (activity.start, -activity.end))
    if not ordered:
        return []

    clusters: list[list[Activity]] = []
    cluster_end = 0
    for activity in ordered:
        if clusters and activity.start < cluster_end:
            clusters[-1].append(activity)
            cluster_end = max(cluster_end, activity.end)
        else:
            clusters.append([activity])
            cluster_end = activity.end

    layouts: list[ActivityLayout] = []
    for cluster in clusters:
        column_ends: list[int] = []
        assignments: list[int] = []
        for activity in cluster:
            for column, column_end in enumerate(column_ends):
                if activity.start >= column_end:
                    column_ends[column] = activity.end
                    assignments.append(column)
                    break
            else:
                column_ends.append(activity.end)
                assignments.append(len(column_ends) - 1)
        total_columns = len(column_ends)
        layouts.extend(
            ActivityLayout(activity=activity, column=column, total_columns=total_columns)
            for activity, column in zip(cluster, assignments)
        )
    return layouts


def week_dates(day: date | str) -> list[str]:
    """Monday-first dates of the week containing ``day``."""
    anchor = parse_date(day) if not isinstance(day, date) else day
    monday = anchor - timedelta(days=anchor.weekday())
    return [(monday + timedelta(days=offset)).isoformat() for offset in range(7)]


def build_week_activities(
    activities: Iterable[Activity],
    day: date | str,
    resource_ids: Optional[Sequence[str]] = None,
) -> dict[str, list[Activity]]:
    dates = week_dates(day)
    week: dict[str, list[Activity]] = {item: [] for item in dates}
    wanted_ids = set(resource_ids) if resource_ids else None
    for activity in activities:
        if not activity.is_active or activity.date not in week:
            continue
        if wanted_ids is not None and activity.resource_id not in wanted_ids:
            continue
        week[activity.date].append(activity)
    for items in week.values():
        items.sort(key=lambda activity: (activity.start, activity.end, activity.activity_id))
    return week
