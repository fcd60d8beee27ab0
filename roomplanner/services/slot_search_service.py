"""Stepped bidirectional search for the closest open placement."""

from __future__ import annotations

from typing import Iterable, Optional

from roomplanner.domain.models import Activity, ShiftDirection, SlotSearchResult, WorkingWindow
from roomplanner.services.conflict_service import intervals_overlap
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)


def find_nearest_slot(
    activities: Iterable[Activity],
    preferred_start: int,
    duration: int,
    window: WorkingWindow,
    exclude_activity_id: Optional[str] = None,
    earliest_start: Optional[int] = None,
) -> SlotSearchResult:
    """Find the nearest free start for ``duration`` minutes.

    The preferred start is tried first, then later starts on the window grid
    step, then earlier ones. Delaying is preferred over moving earlier. The
    result is a pure function of the inputs.

    ``earliest_start`` excludes candidates before it; callers pass the
    grid-rounded current time when placing on today's date.
    """
    if duration <= 0:
        raise ValueError("duration must be > 0")

    lower = window.day_start if earliest_start is None else max(window.day_start, earliest_start)

    busy = sorted(
        (activity.start, activity.end)
        for activity in activities
        if activity.is_active and activity.activity_id != exclude_activity_id
    )

    def is_free(candidate_start: int) -> bool:
        candidate_end = candidate_start + duration
        if candidate_start < lower:
            return False
        if not window.contains(candidate_start, candidate_end):
            return False
        return not any(
            intervals_overlap(candidate_start, candidate_end, start, end)
            for start, end in busy
        )

    if is_free(preferred_start):
        return SlotSearchResult(
            found=True,
            start=preferred_start,
            end=preferred_start + duration,
        )

    step = window.granularity
    offset = step
    while preferred_start + offset + duration <= window.day_end:
        candidate = preferred_start + offset
        if is_free(candidate):
            return _shifted(candidate, duration, ShiftDirection.FORWARD, offset)
        offset += step

    offset = step
    while preferred_start - offset >= lower:
        candidate = preferred_start - offset
        if is_free(candidate):
            return _shifted(candidate, duration, ShiftDirection.BACKWARD, offset)
        offset += step

    logger.info(
        "No free slot found | preferred_start=%s | duration=%s | busy_intervals=%s",
        preferred_start,
        duration,
        len(busy),
    )
    return SlotSearchResult(found=False, start=preferred_start, end=preferred_start + duration)


def _shifted(start: int, duration: int, direction: ShiftDirection, offset: int) -> SlotSearchResult:
    return SlotSearchResult(
        found=True,
        start=start,
        end=start + duration,
        shifted=True,
        direction=direction,
        shift_minutes=offset,
    )
