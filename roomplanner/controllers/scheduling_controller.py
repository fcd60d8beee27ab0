"""HTTP controller layer for room timelines, placements and recurring classes."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from roomplanner.controllers.dependencies import get_booking_service, get_now
from roomplanner.domain.constraints import SchedulingConfig
from roomplanner.domain.models import (
    Activity,
    ActivityKind,
    ActivityLayout,
    ResourceTimeline,
    TimeInterval,
)
from roomplanner.domain.time_arithmetic import format_duration, minutes_to_time, time_to_minutes
from roomplanner.services import timeline_service
from roomplanner.services.booking_service import (
    ActivityNotFoundError,
    BookingService,
    PlacementOutcome,
    PlacementRequest,
    PlacementStatus,
    RecurrenceRequest,
    ResourceNotFoundError,
    ResourceUnavailableError,
    SchedulingValidationError,
    WeeklySlot,
)
from roomplanner.utils.config import get_settings
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["scheduling"])


def _check_time_order(value: str, info: ValidationInfo, start_field: str = "start_time") -> str:
    start = info.data.get(start_field)
    if start is not None and time_to_minutes(start) >= time_to_minutes(value):
        raise ValueError("end_time must be after start_time")
    return value


class ResourceResponse(BaseModel):
    resource_id: str
    name: str
    status: str
    capacity: Optional[int] = None
    area: Optional[float] = None
    resource_type: Optional[str] = None


class GridPlacementResponse(BaseModel):
    top: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    row_start: int = Field(ge=0)
    row_span: int = Field(ge=1)
    column: int = Field(default=0, ge=0)
    total_columns: int = Field(default=1, ge=1)


class ActivityResponse(BaseModel):
    activity_id: str
    resource_id: str
    kind: ActivityKind
    date: str
    start_time: str
    end_time: str
    duration_minutes: int = Field(gt=0)
    status: str
    title: str
    subtitle: Optional[str] = None
    grid: Optional[GridPlacementResponse] = None


class TimeSlotResponse(BaseModel):
    start_time: str
    end_time: str
    duration_minutes: int = Field(gt=0)
    duration_label: str


class ResourceTimelineResponse(BaseModel):
    resource: ResourceResponse
    activities: list[ActivityResponse]
    free_slots: list[TimeSlotResponse]
    current_activity: Optional[ActivityResponse] = None
    is_occupied_now: bool
    has_activities: bool
    total_activities_count: int = Field(ge=0)


class TimelineResponse(BaseModel):
    date: str
    row_height: int = Field(gt=0)
    row_labels: list[str]
    now_line_offset: Optional[float] = None
    timelines: list[ResourceTimelineResponse]


class CalendarPreviewRequest(BaseModel):
    date: date
    calendar: dict[str, list[dict[str, Any]]]
    kinds: Optional[list[ActivityKind]] = None


class FreeSlotsResponse(BaseModel):
    resource_id: str
    date: str
    free_slots: list[TimeSlotResponse]


class WeekResponse(BaseModel):
    resource_id: str
    days: dict[str, list[ActivityResponse]]


class SearchRequest(BaseModel):
    date: date
    start_time: str = Field(pattern=settings.time_regex)
    end_time: str = Field(pattern=settings.time_regex)
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    min_capacity: Optional[int] = Field(default=None, gt=0)
    min_area: Optional[float] = Field(default=None, gt=0.0)
    only_available: bool = False

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, value: str, info: ValidationInfo) -> str:
        return _check_time_order(value, info)


class SearchResultResponse(BaseModel):
    resource: ResourceResponse
    is_available: bool
    activities_count: int = Field(ge=0)
    available_slots: list[TimeSlotResponse]
    first_free_slot: Optional[TimeSlotResponse] = None
    conflicting_activities: list[ActivityResponse]


class ConflictCheckRequest(BaseModel):
    resource_id: str = Field(min_length=1)
    date: date
    start_time: str = Field(pattern=settings.time_regex)
    end_time: str = Field(pattern=settings.time_regex)
    exclude_activity_id: Optional[str] = None

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, value: str, info: ValidationInfo) -> str:
        return _check_time_order(value, info)


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    message: str
    conflicts: list[ActivityResponse]


class PlacementCreateRequest(BaseModel):
    resource_id: str = Field(min_length=1)
    kind: ActivityKind = ActivityKind.RESERVATION
    date: date
    start_time: str = Field(pattern=settings.time_regex)
    end_time: str = Field(pattern=settings.time_regex)
    title: Optional[str] = Field(default=None, max_length=200)
    subtitle: Optional[str] = Field(default=None, max_length=200)
    relocate: bool = False

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, value: str, info: ValidationInfo) -> str:
        return _check_time_order(value, info)


class MoveRequest(BaseModel):
    date: date
    start_time: str = Field(pattern=settings.time_regex)
    resource_id: Optional[str] = None
    relocate: bool = False


class PlacementResponse(BaseModel):
    status: PlacementStatus
    activity: ActivityResponse
    shifted: bool = False
    direction: Optional[str] = None
    shift_minutes: Optional[int] = None
    conflicts: list[ActivityResponse] = Field(default_factory=list)


class WeeklySlotRequest(BaseModel):
    weekdays: list[int] = Field(min_length=1)
    start_time: str = Field(pattern=settings.time_regex)
    end_time: str = Field(pattern=settings.time_regex)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, value: list[int]) -> list[int]:
        for weekday in value:
            if not 0 <= weekday <= 6:
                raise ValueError("weekdays must be in 0..6 (Monday = 0)")
        return value

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, value: str, info: ValidationInfo) -> str:
        return _check_time_order(value, info)


class RecurrenceCreateRequest(BaseModel):
    resource_id: str = Field(min_length=1)
    date_from: date
    date_to: date
    slots: list[WeeklySlotRequest] = Field(min_length=1)
    title: str = Field(default="Group class", min_length=1, max_length=200)
    subtitle: Optional[str] = Field(default=None, max_length=200)
    teacher_id: Optional[str] = None
    auto_enroll: bool = False

    @field_validator("date_to")
    @classmethod
    def validate_date_order(cls, value: date, info: ValidationInfo) -> date:
        date_from = info.data.get("date_from")
        if date_from is not None and value < date_from:
            raise ValueError("date_to must not be before date_from")
        return value


class SkippedOccurrenceResponse(BaseModel):
    date: str
    start_time: str
    end_time: str
    reason: str
    conflicts: list[ActivityResponse]


class TimeGroupResponse(BaseModel):
    start_time: str
    end_time: str
    dates: list[str]


class RecurrenceResponse(BaseModel):
    created_count: int = Field(ge=0)
    skipped_count: int = Field(ge=0)
    created: list[ActivityResponse]
    skipped: list[SkippedOccurrenceResponse]
    time_groups: list[TimeGroupResponse]


class DropRequest(BaseModel):
    y_offset: float = Field(ge=0.0)
    duration_minutes: int = Field(gt=0)
    scale: float = Field(default=1.0, gt=0.0)


class DropResponse(BaseModel):
    start_time: str
    end_time: str
    row: int = Field(ge=0)


def _resource_response(resource: Any) -> ResourceResponse:
    return ResourceResponse(
        resource_id=resource.resource_id,
        name=resource.name,
        status=resource.status,
        capacity=resource.capacity,
        area=resource.area,
        resource_type=resource.resource_type,
    )


def _slot_response(slot: TimeInterval) -> TimeSlotResponse:
    return TimeSlotResponse(
        start_time=slot.start_time,
        end_time=slot.end_time,
        duration_minutes=slot.duration,
        duration_label=format_duration(slot.duration),
    )


def _activity_response(
    activity: Activity,
    layout: Optional[ActivityLayout] = None,
    config: Optional[SchedulingConfig] = None,
) -> ActivityResponse:
    grid = None
    if layout is not None and config is not None:
        position = timeline_service.project_to_grid(
            activity.start,
            activity.end,
            config.window,
            config.grid_row_height,
        )
        if position is not None:
            grid = GridPlacementResponse(
                top=position.top,
                height=position.height,
                row_start=position.row_start,
                row_span=position.row_span,
                column=layout.column,
                total_columns=layout.total_columns,
            )
    return ActivityResponse(
        activity_id=activity.activity_id,
        resource_id=activity.resource_id,
        kind=activity.kind,
        date=activity.date,
        start_time=activity.start_time,
        end_time=activity.end_time,
        duration_minutes=activity.duration,
        status=activity.status.value,
        title=activity.title,
        subtitle=activity.subtitle,
        grid=grid,
    )


def _timeline_response(
    timeline: ResourceTimeline,
    config: SchedulingConfig,
) -> ResourceTimelineResponse:
    active = [activity for activity in timeline.activities if activity.is_active]
    layouts = {
        layout.activity.activity_id: layout
        for layout in timeline_service.layout_overlapping_activities(active)
    }
    return ResourceTimelineResponse(
        resource=_resource_response(timeline.resource),
        activities=[
            _activity_response(activity, layouts.get(activity.activity_id), config)
            for activity in timeline.activities
        ],
        free_slots=[_slot_response(slot) for slot in timeline.free_slots],
        current_activity=(
            _activity_response(timeline.current_activity)
            if timeline.current_activity is not None
            else None
        ),
        is_occupied_now=timeline.is_occupied_now,
        has_activities=timeline.has_activities,
        total_activities_count=timeline.total_activities_count,
    )


def _day_response(
    query_date: str,
    timelines: list[ResourceTimeline],
    now: datetime,
    config: SchedulingConfig,
) -> TimelineResponse:
    window = config.window
    now_minutes = timeline_service.now_minutes_if_today(query_date, now)
    return TimelineResponse(
        date=query_date,
        row_height=config.grid_row_height,
        row_labels=timeline_service.grid_row_labels(window),
        now_line_offset=(
            timeline_service.current_time_position(now_minutes, window, config.grid_row_height)
            if now_minutes is not None
            else None
        ),
        timelines=[_timeline_response(timeline, config) for timeline in timelines],
    )


def _placement_response(outcome: PlacementOutcome) -> PlacementResponse:
    slot = outcome.slot
    return PlacementResponse(
        status=outcome.status,
        activity=_activity_response(outcome.activity),
        shifted=bool(slot and slot.shifted),
        direction=slot.direction.value if slot and slot.direction else None,
        shift_minutes=slot.shift_minutes if slot else None,
        conflicts=[_activity_response(item) for item in outcome.conflicts],
    )


def _rejection(outcome: PlacementOutcome) -> HTTPException:
    detail: dict[str, Any] = {
        "status": outcome.status.value,
        "message": outcome.message,
        "conflicts": [_activity_response(item).model_dump() for item in outcome.conflicts],
    }
    if outcome.status is PlacementStatus.NO_SLOT:
        detail["message"] = "No free slot of the requested duration within working hours"
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def _service_error(exc: Exception) -> HTTPException:
    logger.warning("Scheduling request rejected | error=%s | detail=%s", type(exc).__name__, exc)
    if isinstance(exc, (ResourceNotFoundError, ActivityNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ResourceUnavailableError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


SERVICE_ERRORS = (
    SchedulingValidationError,
    ResourceNotFoundError,
    ResourceUnavailableError,
    ActivityNotFoundError,
)


@router.get(
    "/timeline",
    response_model=TimelineResponse,
    status_code=status.HTTP_200_OK,
)
def get_timeline(
    date: date,
    resource_ids: Optional[list[str]] = Query(default=None),
    kinds: Optional[list[ActivityKind]] = Query(default=None),
    must_have_activity: bool = False,
    occupied_now_only: bool = False,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> TimelineResponse:
    """Ranked per-room timelines of one day for the chess grid."""
    query_date = date.isoformat()
    try:
        timelines = service.get_day_timelines(
            query_date,
            now,
            resource_ids=resource_ids,
            kinds=kinds,
            must_have_activity=must_have_activity,
            occupied_now_only=occupied_now_only,
        )
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return _day_response(query_date, timelines, now, service.config)


@router.post(
    "/timeline/preview",
    response_model=TimelineResponse,
    status_code=status.HTTP_200_OK,
)
def preview_timeline(
    payload: CalendarPreviewRequest,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> TimelineResponse:
    """Compute timelines for a calendar supplied by the caller; nothing is stored."""
    query_date = payload.date.isoformat()
    try:
        timelines = service.preview_timelines(payload.calendar, query_date, now, kinds=payload.kinds)
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return _day_response(query_date, timelines, now, service.config)


@router.get(
    "/resources/{resource_id}/free_slots",
    response_model=FreeSlotsResponse,
    status_code=status.HTTP_200_OK,
)
def get_free_slots(
    resource_id: str,
    date: date,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> FreeSlotsResponse:
    try:
        slots = service.get_free_slots(resource_id, date.isoformat(), now)
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return FreeSlotsResponse(
        resource_id=resource_id,
        date=date.isoformat(),
        free_slots=[_slot_response(slot) for slot in slots],
    )


@router.get(
    "/resources/{resource_id}/week",
    response_model=WeekResponse,
    status_code=status.HTTP_200_OK,
)
def get_week(
    resource_id: str,
    date: date,
    service: BookingService = Depends(get_booking_service),
) -> WeekResponse:
    try:
        week = service.get_week(resource_id, date.isoformat())
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return WeekResponse(
        resource_id=resource_id,
        days={day: [_activity_response(item) for item in items] for day, items in week.items()},
    )


@router.post(
    "/search",
    response_model=list[SearchResultResponse],
    status_code=status.HTTP_200_OK,
)
def search_resources(
    payload: SearchRequest,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> list[SearchResultResponse]:
    """Rooms matching the filters, free rooms and least loaded first."""
    try:
        results = service.search_resources(
            payload.date.isoformat(),
            payload.start_time,
            payload.end_time,
            now,
            resource_id=payload.resource_id,
            resource_type=payload.resource_type,
            min_capacity=payload.min_capacity,
            min_area=payload.min_area,
            only_available=payload.only_available,
        )
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return [
        SearchResultResponse(
            resource=_resource_response(item.resource),
            is_available=item.is_available,
            activities_count=item.activities_count,
            available_slots=[_slot_response(slot) for slot in item.available_slots],
            first_free_slot=(
                _slot_response(item.first_free_slot) if item.first_free_slot is not None else None
            ),
            conflicting_activities=[_activity_response(activity) for activity in item.conflicting_activities],
        )
        for item in results
    ]


@router.post(
    "/placements/check",
    response_model=ConflictCheckResponse,
    status_code=status.HTTP_200_OK,
)
def check_placement(
    payload: ConflictCheckRequest,
    service: BookingService = Depends(get_booking_service),
) -> ConflictCheckResponse:
    try:
        result = service.check_placement(
            payload.resource_id,
            payload.date.isoformat(),
            payload.start_time,
            payload.end_time,
            exclude_activity_id=payload.exclude_activity_id,
        )
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return ConflictCheckResponse(
        has_conflict=result.has_conflict,
        message=result.message(),
        conflicts=[_activity_response(item) for item in result.conflicts],
    )


@router.post(
    "/placements",
    response_model=PlacementResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_placement(
    payload: PlacementCreateRequest,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> PlacementResponse:
    """Store a booking; 409 carries the conflicting bookings when it is refused."""
    try:
        outcome = service.place_activity(
            PlacementRequest(
                resource_id=payload.resource_id,
                kind=payload.kind,
                date=payload.date.isoformat(),
                start_time=payload.start_time,
                end_time=payload.end_time,
                title=payload.title,
                subtitle=payload.subtitle,
            ),
            relocate=payload.relocate,
            now=now,
        )
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    if not outcome.accepted:
        raise _rejection(outcome)
    return _placement_response(outcome)


@router.post(
    "/activities/{activity_id}/move",
    response_model=PlacementResponse,
    status_code=status.HTTP_200_OK,
)
def move_activity(
    activity_id: str,
    payload: MoveRequest,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_now),
) -> PlacementResponse:
    try:
        outcome = service.move_activity(
            activity_id,
            payload.date.isoformat(),
            payload.start_time,
            resource_id=payload.resource_id,
            relocate=payload.relocate,
            now=now,
        )
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    if not outcome.accepted:
        raise _rejection(outcome)
    return _placement_response(outcome)


@router.post(
    "/activities/{activity_id}/cancel",
    response_model=ActivityResponse,
    status_code=status.HTTP_200_OK,
)
def cancel_activity(
    activity_id: str,
    service: BookingService = Depends(get_booking_service),
) -> ActivityResponse:
    try:
        activity = service.cancel_activity(activity_id)
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return _activity_response(activity)


@router.post(
    "/recurrences",
    response_model=RecurrenceResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_recurrence(
    payload: RecurrenceCreateRequest,
    service: BookingService = Depends(get_booking_service),
) -> RecurrenceResponse:
    """Expand weekly slots into dated classes; taken dates are reported, not fatal."""
    try:
        expansion = service.create_recurring(
            RecurrenceRequest(
                resource_id=payload.resource_id,
                date_from=payload.date_from.isoformat(),
                date_to=payload.date_to.isoformat(),
                slots=tuple(
                    WeeklySlot(
                        weekdays=tuple(slot.weekdays),
                        start_time=slot.start_time,
                        end_time=slot.end_time,
                    )
                    for slot in payload.slots
                ),
                title=payload.title,
                subtitle=payload.subtitle,
                teacher_id=payload.teacher_id,
                auto_enroll=payload.auto_enroll,
            )
        )
    except SERVICE_ERRORS as exc:
        raise _service_error(exc) from exc
    return RecurrenceResponse(
        created_count=expansion.created_count,
        skipped_count=expansion.skipped_count,
        created=[_activity_response(item) for item in expansion.created],
        skipped=[
            SkippedOccurrenceResponse(
                date=item.occurrence.date,
                start_time=minutes_to_time(item.occurrence.start),
                end_time=minutes_to_time(item.occurrence.end),
                reason=item.reason,
                conflicts=[_activity_response(activity) for activity in item.conflicts],
            )
            for item in expansion.skipped
        ],
        time_groups=[
            TimeGroupResponse(
                start_time=minutes_to_time(group.start),
                end_time=minutes_to_time(group.end),
                dates=group.dates,
            )
            for group in expansion.time_groups
        ],
    )


@router.post(
    "/grid/drop",
    response_model=DropResponse,
    status_code=status.HTTP_200_OK,
)
async def snap_drop(
    payload: DropRequest,
    service: BookingService = Depends(get_booking_service),
) -> DropResponse:
    """Snap a dragged card offset to a grid row within working hours."""
    try:
        interval, row = timeline_service.calculate_drop_position(
            payload.y_offset,
            payload.duration_minutes,
            service.config.window,
            service.config.grid_row_height,
            scale=payload.scale,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return DropResponse(start_time=interval.start_time, end_time=interval.end_time, row=row)
