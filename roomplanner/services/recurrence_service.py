"""Expansion of weekly patterns into dated class occurrences.

Expansion never fails as a whole because one date is taken: every candidate
is checked on its own and either accepted or reported as skipped with the
activities that block it.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Optional, Sequence

from roomplanner.domain.constraints import validate_recurrence_pattern
from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityStatus,
    Occurrence,
    Placement,
    RecurrenceExpansion,
    RecurrencePattern,
    SkippedOccurrence,
    TimeGroup,
)
from roomplanner.domain.time_arithmetic import minutes_to_time
from roomplanner.services.conflict_service import detect_conflicts
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_OCCURRENCE_TITLE = "Group class"


def generate_occurrence_dates(pattern: RecurrencePattern) -> list[date]:
    dates: list[date] = []
    current = pattern.date_from
    while current <= pattern.date_to:
        if current.weekday() in pattern.weekdays:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def generate_occurrences(patterns: Sequence[RecurrencePattern]) -> list[Occurrence]:
    occurrences = {
        Occurrence(date=day.isoformat(), start=pattern.start, end=pattern.end)
        for pattern in patterns
        for day in generate_occurrence_dates(pattern)
    }
    return sorted(occurrences, key=lambda item: (item.date, item.start, item.end))


def group_by_time_of_day(items: Iterable[Any]) -> dict[tuple[int, int], list[Any]]:
    """Group occurrences or activities by identical ``(start, end)``."""
    groups: dict[tuple[int, int], list[Any]] = defaultdict(list)
    for item in items:
        groups[(item.start, item.end)].append(item)
    return dict(sorted(groups.items()))


def default_occurrence_id(resource_id: str, occurrence: Occurrence) -> str:
    return (
        f"pending:{resource_id}:{occurrence.date}:"
        f"{minutes_to_time(occurrence.start)}-{minutes_to_time(occurrence.end)}"
    )


def expand_weekly_schedule(
    patterns: Sequence[RecurrencePattern],
    resource_id: str,
    existing: Iterable[Activity],
    *,
    teacher_id: Optional[str] = None,
    auto_enroll: bool = False,
    title: str = DEFAULT_OCCURRENCE_TITLE,
    max_days: Optional[int] = None,
    id_factory: Optional[Callable[[Occurrence], str]] = None,
) -> RecurrenceExpansion:
    """Expand one or more weekly patterns for a single room.

    Candidates accepted earlier in the same run count as existing activities
    for later candidates, so overlapping patterns never book the room twice.
    """
    if not patterns:
        raise ValueError("at least one recurrence pattern is required")
    for pattern in patterns:
        validate_recurrence_pattern(pattern, max_days=max_days)

    make_id = id_factory or (lambda occurrence: default_occurrence_id(resource_id, occurrence))
    activities_by_date: dict[str, list[Activity]] = defaultdict(list)
    for activity in existing:
        if activity.resource_id == resource_id:
            activities_by_date[activity.date].append(activity)

    created: list[Activity] = []
    skipped: list[SkippedOccurrence] = []
    for occurrence in generate_occurrences(patterns):
        day_activities = activities_by_date[occurrence.date]
        result = detect_conflicts(
            Placement(
                resource_id=resource_id,
                date=occurrence.date,
                start=occurrence.start,
                end=occurrence.end,
            ),
            day_activities,
        )
        if result.has_conflict:
            skipped.append(SkippedOccurrence(occurrence=occurrence, conflicts=result.conflicts))
            continue

        candidate = Activity(
            activity_id=make_id(occurrence),
            resource_id=resource_id,
            kind=ActivityKind.CLASS,
            date=occurrence.date,
            start=occurrence.start,
            end=occurrence.end,
            status=ActivityStatus.PLANNED,
            title=title,
            source={"teacher_id": teacher_id, "auto_enroll": auto_enroll},
        )
        day_activities.append(candidate)
        created.append(candidate)

    time_groups = [
        TimeGroup(start=start, end=end, activities=tuple(items))
        for (start, end), items in group_by_time_of_day(created).items()
    ]
    logger.info(
        "Recurrence expanded | resource_id=%s | created=%s | skipped=%s | time_groups=%s",
        resource_id,
        len(created),
        len(skipped),
        len(time_groups),
    )
    return RecurrenceExpansion(created=created, skipped=skipped, time_groups=time_groups)


def expand_recurrence(
    pattern: RecurrencePattern,
    resource_id: str,
    existing: Iterable[Activity],
    **options: Any,
) -> RecurrenceExpansion:
    return expand_weekly_schedule([pattern], resource_id, existing, **options)
