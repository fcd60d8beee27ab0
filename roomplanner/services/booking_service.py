"""Read-check-write orchestration around the scheduling engine.

The engine functions are pure. This service supplies them with the current
bookings of a room and day, and persists the outcome while holding both an
in-process lock for every ``(resource_id, date)`` it touches and a SQLite
write transaction, so two writers can never accept the same slot.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence
from uuid import uuid4

from roomplanner.domain.adapters import build_record, normalize_calendar_payload
from roomplanner.domain.constraints import (
    SchedulingConfig,
    validate_placement_bounds,
    validate_scheduling_config,
)
from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityStatus,
    ConflictResult,
    Occurrence,
    Placement,
    RecurrenceExpansion,
    RecurrencePattern,
    Resource,
    ResourceSearchResult,
    ResourceTimeline,
    SkippedOccurrence,
    SlotSearchResult,
    TimeGroup,
    TimeInterval,
)
from roomplanner.domain.time_arithmetic import (
    minutes_to_time,
    normalize_date,
    parse_date,
    round_up_to_grid,
    time_to_minutes,
)
from roomplanner.repository.data_repository import DataRepository
from roomplanner.services import timeline_service
from roomplanner.services.conflict_service import detect_conflicts
from roomplanner.services.recurrence_service import (
    DEFAULT_OCCURRENCE_TITLE,
    expand_weekly_schedule,
    group_by_time_of_day,
)
from roomplanner.services.slot_search_service import find_nearest_slot
from roomplanner.utils.config import Settings, get_settings
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)


class SchedulingValidationError(Exception):
    """Raised when scheduling request inputs are malformed."""


class ResourceNotFoundError(Exception):
    """Raised when a room id does not exist."""


class ResourceUnavailableError(Exception):
    """Raised when a room exists but is not open for booking."""


class ActivityNotFoundError(Exception):
    """Raised when a booking id does not exist."""


class PlacementStatus(str, Enum):
    ACCEPTED = "ACCEPTED"
    RELOCATED = "RELOCATED"
    CONFLICT = "CONFLICT"
    NO_SLOT = "NO_SLOT"


@dataclass(frozen=True)
class PlacementRequest:
    resource_id: str
    kind: ActivityKind
    date: str
    start_time: str
    end_time: str
    title: Optional[str] = None
    subtitle: Optional[str] = None
    extra: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class PlacementOutcome:
    status: PlacementStatus
    activity: Optional[Activity] = None
    conflicts: tuple[Activity, ...] = ()
    slot: Optional[SlotSearchResult] = None

    @property
    def accepted(self) -> bool:
        return self.status in (PlacementStatus.ACCEPTED, PlacementStatus.RELOCATED)

    @property
    def message(self) -> str:
        return ConflictResult(has_conflict=bool(self.conflicts), conflicts=self.conflicts).message()


@dataclass(frozen=True)
class WeeklySlot:
    weekdays: tuple[int, ...]
    start_time: str
    end_time: str


@dataclass(frozen=True)
class RecurrenceRequest:
    resource_id: str
    date_from: str
    date_to: str
    slots: tuple[WeeklySlot, ...]
    title: str = DEFAULT_OCCURRENCE_TITLE
    teacher_id: Optional[str] = None
    auto_enroll: bool = False
    subtitle: Optional[str] = None


class ResourceDayLocks:
    """Registry of one lock per ``(resource_id, date)`` key."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[tuple[str, str], Lock] = {}

    def _lock_for(self, key: tuple[str, str]) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[tuple[str, str]]) -> Iterator[None]:
        """Acquire every key in sorted order; release in reverse."""
        acquired: list[Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class BookingService:
    def __init__(
        self,
        repository: DataRepository,
        settings: Optional[Settings] = None,
        locks: Optional[ResourceDayLocks] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._window = self._settings.working_window
        self._config = SchedulingConfig(
            window=self._window,
            min_free_slot_minutes=self._settings.min_free_slot_minutes,
            grid_row_height=self._settings.grid_row_height,
            recurrence_max_days=self._settings.recurrence_max_days,
        )
        validate_scheduling_config(self._config)
        self._locks = locks or ResourceDayLocks()

    @property
    def config(self) -> SchedulingConfig:
        return self._config

    def get_day_timelines(
        self,
        target_date: str,
        now: Optional[datetime] = None,
        *,
        resource_ids: Optional[Sequence[str]] = None,
        kinds: Optional[Sequence[ActivityKind | str]] = None,
        must_have_activity: bool = False,
        occupied_now_only: bool = False,
    ) -> list[ResourceTimeline]:
        day = self._parse_date(target_date)
        return timeline_service.build_resource_timelines(
            self._repository.list_resources(),
            self._repository.list_activities(day, resource_ids),
            day,
            self._window,
            self._config.min_free_slot_minutes,
            now=now,
            resource_ids=resource_ids,
            kinds=self._parse_kinds(kinds),
            must_have_activity=must_have_activity,
            occupied_now_only=occupied_now_only,
        )

    def preview_timelines(
        self,
        payload: Mapping[str, Iterable[Mapping[str, Any]]],
        target_date: str,
        now: Optional[datetime] = None,
        *,
        kinds: Optional[Sequence[ActivityKind | str]] = None,
    ) -> list[ResourceTimeline]:
        """Build timelines from an externally supplied per-kind calendar."""
        day = self._parse_date(target_date)
        try:
            activities = normalize_calendar_payload(payload, self._parse_kinds(kinds))
        except (KeyError, TypeError, ValueError) as exc:
            raise SchedulingValidationError(f"calendar payload is malformed: {exc}") from exc
        return timeline_service.build_resource_timelines(
            self._repository.list_resources(),
            activities,
            day,
            self._window,
            self._config.min_free_slot_minutes,
            now=now,
        )

    def get_free_slots(
        self,
        resource_id: str,
        target_date: str,
        now: Optional[datetime] = None,
    ) -> list[TimeInterval]:
        self._require_schedulable(resource_id)
        timelines = self.get_day_timelines(target_date, now, resource_ids=[resource_id])
        return list(timelines[0].free_slots) if timelines else []

    def search_resources(
        self,
        target_date: str,
        start_time: str,
        end_time: str,
        now: Optional[datetime] = None,
        *,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        min_capacity: Optional[int] = None,
        min_area: Optional[float] = None,
        only_available: bool = False,
    ) -> list[ResourceSearchResult]:
        start = self._parse_time(start_time, "start_time")
        end = self._parse_time(end_time, "end_time")
        timelines = self.get_day_timelines(target_date, now)
        try:
            return timeline_service.search_resources(
                timelines,
                start,
                end,
                resource_id=resource_id,
                resource_type=resource_type,
                min_capacity=min_capacity,
                min_area=min_area,
                only_available=only_available,
            )
        except ValueError as exc:
            raise SchedulingValidationError(str(exc)) from exc

    def get_week(self, resource_id: str, day: str) -> dict[str, list[Activity]]:
        self._require_resource(resource_id)
        try:
            dates = timeline_service.week_dates(day)
        except ValueError as exc:
            raise SchedulingValidationError("date must follow YYYY-MM-DD format") from exc
        activities = self._repository.list_resource_activities(resource_id, dates)
        return timeline_service.build_week_activities(activities, day)

    def check_placement(
        self,
        resource_id: str,
        target_date: str,
        start_time: str,
        end_time: str,
        exclude_activity_id: Optional[str] = None,
    ) -> ConflictResult:
        """Advisory conflict check; takes no locks and writes nothing."""
        self._require_schedulable(resource_id)
        day = self._parse_date(target_date)
        start, end = self._parse_bounds(start_time, end_time)
        existing = self._repository.list_resource_activities(resource_id, [day])
        return detect_conflicts(
            Placement(resource_id=resource_id, date=day, start=start, end=end),
            existing,
            exclude_activity_id=exclude_activity_id,
        )

    def place_activity(
        self,
        request: PlacementRequest,
        relocate: bool = False,
        now: Optional[datetime] = None,
    ) -> PlacementOutcome:
        """Create a booking, or report why it cannot be created as asked.

        With ``relocate`` a conflicting request is moved to the nearest free
        start of the same duration instead of being rejected. When ``now``
        falls on the requested date the relocated start is never in the past.
        """
        kind = self._parse_kind(request.kind)
        self._require_schedulable(request.resource_id)
        day = self._parse_date(request.date)
        start, end = self._parse_bounds(request.start_time, request.end_time)

        with self._locks.hold([(request.resource_id, day)]), self._repository.transaction() as conn:
            existing = self._repository.list_resource_activities(request.resource_id, [day], conn=conn)
            outcome_status, start, end, conflicts, slot = self._resolve_slot(
                request.resource_id,
                day,
                start,
                end,
                existing,
                relocate=relocate,
                now=now,
            )
            if outcome_status in (PlacementStatus.CONFLICT, PlacementStatus.NO_SLOT):
                logger.info(
                    "Placement rejected | resource_id=%s | date=%s | status=%s | conflicts=%s",
                    request.resource_id,
                    day,
                    outcome_status.value,
                    len(conflicts),
                )
                return PlacementOutcome(status=outcome_status, conflicts=conflicts, slot=slot)

            record = build_record(
                kind,
                record_id=uuid4().hex,
                resource_id=request.resource_id,
                date=day,
                start_time=minutes_to_time(start),
                end_time=minutes_to_time(end),
                title=request.title,
                subtitle=request.subtitle,
                extra=request.extra,
            )
            activity = self._repository.insert_booking(kind, record, conn=conn)

        logger.info(
            "Placement stored | activity_id=%s | resource_id=%s | date=%s | slot=%s-%s | status=%s",
            activity.activity_id,
            activity.resource_id,
            activity.date,
            activity.start_time,
            activity.end_time,
            outcome_status.value,
        )
        return PlacementOutcome(status=outcome_status, activity=activity, conflicts=conflicts, slot=slot)

    def move_activity(
        self,
        activity_id: str,
        target_date: str,
        start_time: str,
        resource_id: Optional[str] = None,
        relocate: bool = False,
        now: Optional[datetime] = None,
    ) -> PlacementOutcome:
        """Move a booking keeping its duration; it never conflicts with itself."""
        current = self._require_activity(activity_id)
        target_resource = resource_id or current.resource_id
        self._require_schedulable(target_resource)
        day = self._parse_date(target_date)
        start = self._parse_time(start_time, "start_time")
        end = start + current.duration
        self._validate_window(start, end)

        keys = [(current.resource_id, current.date), (target_resource, day)]
        with self._locks.hold(keys), self._repository.transaction() as conn:
            current = self._repository.get_activity(activity_id, conn=conn)
            if current is None:
                raise ActivityNotFoundError(f"activity_id={activity_id} was not found")
            if not current.is_active:
                raise SchedulingValidationError("cancelled activities cannot be moved")

            existing = self._repository.list_resource_activities(target_resource, [day], conn=conn)
            outcome_status, start, end, conflicts, slot = self._resolve_slot(
                target_resource,
                day,
                start,
                end,
                existing,
                relocate=relocate,
                exclude_activity_id=activity_id,
                now=now,
            )
            if outcome_status in (PlacementStatus.CONFLICT, PlacementStatus.NO_SLOT):
                return PlacementOutcome(status=outcome_status, conflicts=conflicts, slot=slot)

            moved = self._repository.update_booking_placement(
                activity_id,
                resource_id=target_resource,
                target_date=day,
                start_time=minutes_to_time(start),
                end_time=minutes_to_time(end),
                conn=conn,
            )

        logger.info(
            "Activity moved | activity_id=%s | resource_id=%s | date=%s | slot=%s-%s",
            activity_id,
            moved.resource_id,
            moved.date,
            moved.start_time,
            moved.end_time,
        )
        return PlacementOutcome(status=outcome_status, activity=moved, conflicts=conflicts, slot=slot)

    def cancel_activity(self, activity_id: str) -> Activity:
        current = self._require_activity(activity_id)
        with self._locks.hold([(current.resource_id, current.date)]), self._repository.transaction() as conn:
            cancelled = self._repository.update_booking_status(
                activity_id,
                ActivityStatus.CANCELLED,
                conn=conn,
            )
        logger.info("Activity cancelled | activity_id=%s", activity_id)
        return cancelled

    def create_recurring(self, request: RecurrenceRequest) -> RecurrenceExpansion:
        """Expand and persist a weekly schedule, one transaction per time group.

        Occurrences are re-checked inside each group's transaction, so a
        booking stored after planning turns the occurrence into a skipped one.
        """
        self._require_schedulable(request.resource_id)
        patterns = self._build_patterns(request)
        date_from = min(pattern.date_from for pattern in patterns).isoformat()
        date_to = max(pattern.date_to for pattern in patterns).isoformat()
        existing = self._repository.list_resource_activities_between(
            request.resource_id,
            date_from,
            date_to,
        )
        try:
            plan = expand_weekly_schedule(
                patterns,
                request.resource_id,
                existing,
                teacher_id=request.teacher_id,
                auto_enroll=request.auto_enroll,
                title=request.title,
                max_days=self._config.recurrence_max_days,
                id_factory=lambda occurrence: uuid4().hex,
            )
        except ValueError as exc:
            raise SchedulingValidationError(str(exc)) from exc

        created: list[Activity] = []
        skipped: list[SkippedOccurrence] = list(plan.skipped)
        for group in plan.time_groups:
            keys = [(request.resource_id, day) for day in group.dates]
            with self._locks.hold(keys), self._repository.transaction() as conn:
                current = self._repository.list_resource_activities(
                    request.resource_id,
                    group.dates,
                    conn=conn,
                )
                records: list[tuple[ActivityKind, dict[str, Any]]] = []
                for candidate in group.activities:
                    result = detect_conflicts(
                        Placement(
                            resource_id=candidate.resource_id,
                            date=candidate.date,
                            start=candidate.start,
                            end=candidate.end,
                        ),
                        current,
                    )
                    if result.has_conflict:
                        skipped.append(self._skipped(candidate, result))
                        continue
                    current.append(candidate)
                    records.append(
                        (
                            ActivityKind.CLASS,
                            build_record(
                                ActivityKind.CLASS,
                                record_id=candidate.activity_id,
                                resource_id=candidate.resource_id,
                                date=candidate.date,
                                start_time=candidate.start_time,
                                end_time=candidate.end_time,
                                title=request.title,
                                subtitle=request.subtitle,
                                extra=candidate.source,
                            ),
                        )
                    )
                created.extend(self._repository.insert_bookings(records, conn=conn))

        created.sort(key=lambda item: (item.date, item.start, item.end))
        skipped.sort(key=lambda item: (item.occurrence.date, item.occurrence.start, item.occurrence.end))
        time_groups = [
            TimeGroup(start=start, end=end, activities=tuple(items))
            for (start, end), items in group_by_time_of_day(created).items()
        ]
        logger.info(
            "Recurring schedule stored | resource_id=%s | created=%s | skipped=%s | time_groups=%s",
            request.resource_id,
            len(created),
            len(skipped),
            len(time_groups),
        )
        return RecurrenceExpansion(created=created, skipped=skipped, time_groups=time_groups)

    def _resolve_slot(
        self,
        resource_id: str,
        day: str,
        start: int,
        end: int,
        existing: Sequence[Activity],
        *,
        relocate: bool,
        exclude_activity_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> tuple[PlacementStatus, int, int, tuple[Activity, ...], Optional[SlotSearchResult]]:
        result = detect_conflicts(
            Placement(resource_id=resource_id, date=day, start=start, end=end),
            existing,
            exclude_activity_id=exclude_activity_id,
        )
        if not result.has_conflict:
            return PlacementStatus.ACCEPTED, start, end, (), None
        if not relocate:
            return PlacementStatus.CONFLICT, start, end, result.conflicts, None

        now_minutes = timeline_service.now_minutes_if_today(day, now)
        slot = find_nearest_slot(
            existing,
            start,
            end - start,
            self._window,
            exclude_activity_id=exclude_activity_id,
            earliest_start=(
                round_up_to_grid(now_minutes, self._window.granularity)
                if now_minutes is not None
                else None
            ),
        )
        if not slot.found:
            return PlacementStatus.NO_SLOT, start, end, result.conflicts, slot
        return PlacementStatus.RELOCATED, slot.start, slot.end, result.conflicts, slot

    def _build_patterns(self, request: RecurrenceRequest) -> list[RecurrencePattern]:
        if not request.slots:
            raise SchedulingValidationError("at least one weekly slot is required")
        try:
            date_from = parse_date(request.date_from)
            date_to = parse_date(request.date_to)
        except ValueError as exc:
            raise SchedulingValidationError("dates must follow YYYY-MM-DD format") from exc

        patterns: list[RecurrencePattern] = []
        for slot in request.slots:
            start, end = self._parse_bounds(slot.start_time, slot.end_time)
            patterns.append(
                RecurrencePattern(
                    weekdays=frozenset(slot.weekdays),
                    start=start,
                    end=end,
                    date_from=date_from,
                    date_to=date_to,
                )
            )
        return patterns

    @staticmethod
    def _skipped(candidate: Activity, result: ConflictResult) -> SkippedOccurrence:
        return SkippedOccurrence(
            occurrence=Occurrence(date=candidate.date, start=candidate.start, end=candidate.end),
            conflicts=result.conflicts,
        )

    def _require_resource(self, resource_id: str) -> Resource:
        resource = self._repository.get_resource(resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"resource_id={resource_id} was not found")
        return resource

    def _require_schedulable(self, resource_id: str) -> Resource:
        resource = self._require_resource(resource_id)
        if not resource.is_schedulable:
            raise ResourceUnavailableError(
                f"resource_id={resource_id} is not available for booking (status={resource.status})"
            )
        return resource

    def _require_activity(self, activity_id: str) -> Activity:
        activity = self._repository.get_activity(activity_id)
        if activity is None:
            raise ActivityNotFoundError(f"activity_id={activity_id} was not found")
        return activity

    def _parse_bounds(self, start_time: str, end_time: str) -> tuple[int, int]:
        start = self._parse_time(start_time, "start_time")
        end = self._parse_time(end_time, "end_time")
        self._validate_window(start, end)
        return start, end

    def _validate_window(self, start: int, end: int) -> None:
        try:
            validate_placement_bounds(start, end, self._window)
        except ValueError as exc:
            raise SchedulingValidationError(str(exc)) from exc

    @staticmethod
    def _parse_time(value: str, field_name: str) -> int:
        try:
            return time_to_minutes(value)
        except ValueError as exc:
            raise SchedulingValidationError(f"{field_name} must follow HH:MM format") from exc

    @staticmethod
    def _parse_date(value: Any) -> str:
        try:
            return normalize_date(value)
        except ValueError as exc:
            raise SchedulingValidationError("date must follow YYYY-MM-DD format") from exc

    @staticmethod
    def _parse_kind(value: ActivityKind | str) -> ActivityKind:
        try:
            return ActivityKind(value)
        except ValueError as exc:
            raise SchedulingValidationError(f"unknown activity kind: {value}") from exc

    def _parse_kinds(
        self,
        kinds: Optional[Sequence[ActivityKind | str]],
    ) -> Optional[list[ActivityKind]]:
        if not kinds:
            return None
        return [self._parse_kind(kind) for kind in kinds]
