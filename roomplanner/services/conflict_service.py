"""Overlap detection between a candidate placement and existing activities."""

from __future__ import annotations

from typing import Iterable, Optional

from roomplanner.domain.models import Activity, ConflictResult, Placement
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return a_start < b_end and a_end > b_start


def detect_conflicts(
    placement: Placement,
    existing: Iterable[Activity],
    exclude_activity_id: Optional[str] = None,
) -> ConflictResult:
    """Return every active activity on the same room and day that overlaps.

    The activity being moved is passed as ``exclude_activity_id`` so it never
    conflicts with its own previous slot.
    """
    if placement.start >= placement.end:
        raise ValueError("placement start must be before end")

    conflicts = sorted(
        (
            activity
            for activity in existing
            if activity.is_active
            and activity.activity_id != exclude_activity_id
            and activity.resource_id == placement.resource_id
            and activity.date == placement.date
            and intervals_overlap(placement.start, placement.end, activity.start, activity.end)
        ),
        key=lambda activity: (activity.start, activity.end, activity.activity_id),
    )
    if conflicts:
        logger.debug(
            "Conflict detected | resource_id=%s | date=%s | conflicts=%s",
            placement.resource_id,
            placement.date,
            [activity.activity_id for activity in conflicts],
        )
    return ConflictResult(has_conflict=bool(conflicts), conflicts=tuple(conflicts))


def format_conflict_message(result: ConflictResult) -> str:
    return result.message()
