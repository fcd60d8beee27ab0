"""Projection of kind-specific booking records onto the unified Activity.

Each booking kind is stored in its own shape. Labels and subtitles are
decided here so the engine only ever sees :class:`Activity`.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Optional

from roomplanner.domain.models import Activity, ActivityKind, ActivityStatus
from roomplanner.domain.time_arithmetic import normalize_date, normalize_time, time_to_minutes


CLASS_TYPE_LABELS: dict[str, str] = {
    "GROUP_CLASS": "Group class",
    "INDIVIDUAL_CLASS": "Individual class",
    "OPEN_CLASS": "Open class",
    "EVENT": "Event",
}

KIND_LABELS: dict[ActivityKind, str] = {
    ActivityKind.CLASS: "Class",
    ActivityKind.RENTAL: "Rental",
    ActivityKind.EVENT: "Event",
    ActivityKind.RESERVATION: "Reservation",
}

PAYLOAD_KEYS: dict[str, ActivityKind] = {
    "classes": ActivityKind.CLASS,
    "rentals": ActivityKind.RENTAL,
    "events": ActivityKind.EVENT,
    "reservations": ActivityKind.RESERVATION,
}


def _nested_name(record: Mapping[str, Any], key: str) -> Optional[str]:
    value = record.get(key)
    if isinstance(value, Mapping):
        name = value.get("name")
        return str(name) if name else None
    return None


def _teacher_label(teacher: Any) -> Optional[str]:
    if not isinstance(teacher, Mapping):
        return None
    last_name = teacher.get("last_name") or ""
    first_name = teacher.get("first_name") or ""
    if not last_name:
        return None
    initial = f" {first_name[0]}." if first_name else ""
    return f"{last_name}{initial}"


def _build(
    record: Mapping[str, Any],
    kind: ActivityKind,
    title: str,
    subtitle: Optional[str],
) -> Activity:
    status = str(record.get("status") or ActivityStatus.PLANNED.value).upper()
    return Activity(
        activity_id=str(record["id"]),
        resource_id=str(record["room_id"]),
        kind=kind,
        date=normalize_date(record["date"]),
        start=time_to_minutes(normalize_time(record["start_time"])),
        end=time_to_minutes(normalize_time(record["end_time"])),
        status=ActivityStatus(status),
        title=title,
        subtitle=subtitle,
        source=record,
    )


def class_record_to_activity(record: Mapping[str, Any]) -> Activity:
    group = record.get("group")
    group_name = group.get("name") if isinstance(group, Mapping) else None
    studio_name = _nested_name(group, "studio") if isinstance(group, Mapping) else None
    title = (
        group_name
        or CLASS_TYPE_LABELS.get(str(record.get("type") or ""))
        or KIND_LABELS[ActivityKind.CLASS]
    )
    subtitle = _teacher_label(record.get("teacher")) or record.get("teacher_name") or studio_name
    return _build(record, ActivityKind.CLASS, str(title), subtitle)


def rental_record_to_activity(record: Mapping[str, Any]) -> Activity:
    title = record.get("event_type") or KIND_LABELS[ActivityKind.RENTAL]
    return _build(record, ActivityKind.RENTAL, str(title), record.get("client_name"))


def event_record_to_activity(record: Mapping[str, Any]) -> Activity:
    title = record.get("name") or KIND_LABELS[ActivityKind.EVENT]
    return _build(record, ActivityKind.EVENT, str(title), _nested_name(record, "event_type"))


def reservation_record_to_activity(record: Mapping[str, Any]) -> Activity:
    return _build(
        record,
        ActivityKind.RESERVATION,
        KIND_LABELS[ActivityKind.RESERVATION],
        record.get("reserved_by"),
    )


_ADAPTERS: dict[ActivityKind, Callable[[Mapping[str, Any]], Activity]] = {
    ActivityKind.CLASS: class_record_to_activity,
    ActivityKind.RENTAL: rental_record_to_activity,
    ActivityKind.EVENT: event_record_to_activity,
    ActivityKind.RESERVATION: reservation_record_to_activity,
}


def record_to_activity(kind: ActivityKind | str, record: Mapping[str, Any]) -> Activity:
    return _ADAPTERS[ActivityKind(kind)](record)


def build_record(
    kind: ActivityKind | str,
    *,
    record_id: str,
    resource_id: str,
    date: str,
    start_time: str,
    end_time: str,
    title: Optional[str] = None,
    subtitle: Optional[str] = None,
    status: ActivityStatus | str = ActivityStatus.PLANNED,
    extra: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Build a stored record of the given kind from plain placement fields."""
    kind = ActivityKind(kind)
    record: dict[str, Any] = dict(extra or {})
    record.update(
        {
            "id": record_id,
            "room_id": resource_id,
            "date": date,
            "start_time": start_time,
            "end_time": end_time,
            "status": ActivityStatus(str(getattr(status, "value", status)).upper()).value,
        }
    )
    if kind is ActivityKind.CLASS:
        record.setdefault("type", "GROUP_CLASS")
        if title:
            record["group"] = {"name": title}
        if subtitle:
            record["teacher_name"] = subtitle
    elif kind is ActivityKind.RENTAL:
        record["event_type"] = title
        record["client_name"] = subtitle
    elif kind is ActivityKind.EVENT:
        record["name"] = title
        record["event_type"] = {"name": subtitle} if subtitle else None
    else:
        record["reserved_by"] = subtitle
    return record


def normalize_calendar_payload(
    payload: Mapping[str, Iterable[Mapping[str, Any]]],
    kinds: Optional[Iterable[ActivityKind | str]] = None,
) -> list[Activity]:
    """Project a per-kind calendar payload into one activity list.

    An empty or missing ``kinds`` filter means every kind is included.
    Unknown top-level keys raise ``ValueError``.
    """
    unknown = sorted(set(payload) - set(PAYLOAD_KEYS))
    if unknown:
        raise ValueError(
            f"unknown calendar keys {unknown}; expected one of {sorted(PAYLOAD_KEYS)}"
        )
    wanted = {ActivityKind(kind) for kind in kinds} if kinds else set(ActivityKind)
    activities: list[Activity] = []
    for key, kind in PAYLOAD_KEYS.items():
        if kind not in wanted:
            continue
        activities.extend(record_to_activity(kind, record) for record in payload.get(key, ()))
    return activities
