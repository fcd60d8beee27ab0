"""Busy-interval merging and free-slot derivation for one room and day."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from roomplanner.domain.models import TimeInterval, WorkingWindow, is_active_status
from roomplanner.domain.time_arithmetic import round_up_to_grid


def merge_intervals(items: Iterable[Any]) -> list[TimeInterval]:
    """Collapse overlapping or touching intervals into a minimal ordered set.

    ``items`` may be activities or plain intervals; anything carrying a
    cancelled ``status`` is ignored.
    """
    active = sorted(
        (item.start, item.end)
        for item in items
        if is_active_status(getattr(item, "status", None))
    )
    if not active:
        return []

    merged: list[list[int]] = [list(active[0])]
    for start, end in active[1:]:
        last = merged[-1]
        if start <= last[1]:
            last[1] = max(last[1], end)
        else:
            merged.append([start, end])
    return [TimeInterval(start=start, end=end) for start, end in merged]


def calculate_free_slots(
    busy: Iterable[Any],
    window: WorkingWindow,
    min_duration: int,
    now_minutes: Optional[int] = None,
) -> list[TimeInterval]:
    """Return the free intervals of the working window.

    ``now_minutes`` is only supplied for today's date: it is rounded up to the
    next grid line and slots before it are never offered.
    """
    effective_start = window.day_start
    if now_minutes is not None:
        rounded = round_up_to_grid(now_minutes, window.granularity)
        effective_start = max(window.day_start, rounded)
    if effective_start >= window.day_end:
        return []

    free_slots: list[TimeInterval] = []

    def emit(slot_start: int, slot_end: int) -> None:
        slot_start = max(slot_start, effective_start)
        slot_end = min(slot_end, window.day_end)
        if slot_start < slot_end and slot_end - slot_start >= min_duration:
            free_slots.append(TimeInterval(start=slot_start, end=slot_end))

    cursor = effective_start
    for interval in merge_intervals(busy):
        if interval.end <= effective_start:
            continue
        if cursor < interval.start:
            emit(cursor, interval.start)
        cursor = max(cursor, interval.end)

    if cursor < window.day_end:
        emit(cursor, window.day_end)
    return free_slots


def slot_overlaps_range(
    slot: TimeInterval,
    range_start: int,
    range_end: int,
    min_duration: Optional[int] = None,
) -> bool:
    overlap_start = max(slot.start, range_start)
    overlap_end = min(slot.end, range_end)
    if overlap_start >= overlap_end:
        return False
    if min_duration and overlap_end - overlap_start < min_duration:
        return False
    return True
