from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from roomplanner.controllers.scheduling_controller import router as scheduling_router
from roomplanner.repository.data_repository import DataRepository
from roomplanner.services.booking_service import BookingService
from roomplanner.utils.config import get_settings


DAY = "2026-03-02"


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, seed_demo_data=False)


def _build_test_app(tmp_path) -> tuple[FastAPI, DataRepository]:
    settings = _build_test_settings(tmp_path, "scheduling_api.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data(date(2026, 3, 2))

    app = FastAPI()
    app.include_router(scheduling_router)
    app.state.repository = repository
    app.state.booking_service = BookingService(repository=repository, settings=settings)
    app.state.clock = lambda: datetime(2026, 3, 2, 10, 15)
    return app, repository


@pytest.fixture
def client(tmp_path) -> TestClient:
    app, _ = _build_test_app(tmp_path)
    return TestClient(app)


def test_timeline_ranks_and_projects_bookings(client: TestClient) -> None:
    response = client.get("/timeline", params={"date": DAY})
    assert response.status_code == 200
    body = response.json()

    assert body["row_labels"][0] == "08:00"
    assert body["now_line_offset"] == pytest.approx((615 - 480) / 840 * 28 * 48)
    first = body["timelines"][0]
    assert first["resource"]["resource_id"] == "studio-1"
    assert first["is_occupied_now"] is True
    assert first["current_activity"]["title"] == "Ballet Juniors"
    grid = first["activities"][0]["grid"]
    assert (grid["row_start"], grid["row_span"], grid["column"]) == (4, 3, 0)
    assert first["free_slots"][0]["start_time"] == "11:30"


def test_timeline_filters_by_kind(client: TestClient) -> None:
    response = client.get(
        "/timeline",
        params={"date": DAY, "kinds": ["event"], "must_have_activity": True},
    )
    assert response.status_code == 200
    timelines = response.json()["timelines"]
    assert [item["resource"]["resource_id"] for item in timelines] == ["hall-a"]
    assert [item["title"] for item in timelines[0]["activities"]] == ["Spring Concert"]


def test_timeline_preview_uses_supplied_calendar(client: TestClient) -> None:
    response = client.post(
        "/timeline/preview",
        json={
            "date": "2026-03-05",
            "calendar": {
                "reservations": [
                    {
                        "id": "ext-1",
                        "room_id": "room-101",
                        "date": "2026-03-05",
                        "start_time": "1970-01-01T09:00:00.000Z",
                        "end_time": "1970-01-01T10:00:00.000Z",
                        "reserved_by": "Reception",
                    }
                ]
            },
        },
    )
    assert response.status_code == 200
    first = response.json()["timelines"][0]
    assert first["resource"]["resource_id"] == "room-101"
    assert first["activities"][0]["subtitle"] == "Reception"


def test_free_slots_endpoint(client: TestClient) -> None:
    response = client.get("/resources/hall-a/free_slots", params={"date": "2026-03-03"})
    assert response.status_code == 200
    slots = response.json()["free_slots"]
    assert slots == [
        {"start_time": "08:00", "end_time": "22:00", "duration_minutes": 840, "duration_label": "14 h"}
    ]

    missing = client.get("/resources/nope/free_slots", params={"date": DAY})
    assert missing.status_code == 404


def test_search_endpoint(client: TestClient) -> None:
    response = client.post(
        "/search",
        json={"date": DAY, "start_time": "12:00", "end_time": "13:00", "resource_type": "STUDIO"},
    )
    assert response.status_code == 200
    results = response.json()
    assert [item["resource"]["resource_id"] for item in results] == ["studio-2", "studio-1"]
    assert all(item["is_available"] for item in results)

    inverted = client.post("/search", json={"date": DAY, "start_time": "13:00", "end_time": "12:00"})
    assert inverted.status_code == 422


def test_placement_lifecycle(client: TestClient) -> None:
    check = client.post(
        "/placements/check",
        json={"resource_id": "hall-a", "date": DAY, "start_time": "14:00", "end_time": "16:00"},
    )
    assert check.status_code == 200
    assert check.json()["message"] == "12:00-15:00: Photo shoot"

    conflict = client.post(
        "/placements",
        json={"resource_id": "hall-a", "date": DAY, "start_time": "14:00", "end_time": "16:00"},
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["status"] == "CONFLICT"
    assert conflict.json()["detail"]["message"] == "12:00-15:00: Photo shoot"

    relocated = client.post(
        "/placements",
        json={
            "resource_id": "hall-a",
            "kind": "rental",
            "date": DAY,
            "start_time": "14:00",
            "end_time": "16:00",
            "title": "Yoga retreat",
            "relocate": True,
        },
    )
    assert relocated.status_code == 201
    body = relocated.json()
    assert body["status"] == "RELOCATED"
    assert (body["activity"]["start_time"], body["activity"]["end_time"]) == ("15:00", "17:00")
    assert body["direction"] == "forward"

    activity_id = body["activity"]["activity_id"]
    moved = client.post(f"/activities/{activity_id}/move", json={"date": DAY, "start_time": "08:00"})
    assert moved.status_code == 200
    assert moved.json()["activity"]["end_time"] == "10:00"

    cancelled = client.post(f"/activities/{activity_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    week = client.get("/resources/hall-a/week", params={"date": DAY})
    assert week.status_code == 200
    assert [item["title"] for item in week.json()["days"][DAY]] == ["Photo shoot", "Spring Concert"]


def test_full_day_placement_reports_no_slot(client: TestClient) -> None:
    client.post(
        "/placements",
        json={"resource_id": "room-101", "date": DAY, "start_time": "08:00", "end_time": "22:00"},
    )
    response = client.post(
        "/placements",
        json={
            "resource_id": "room-101",
            "date": DAY,
            "start_time": "10:00",
            "end_time": "11:00",
            "relocate": True,
        },
    )
    assert response.status_code == 409
    assert response.json()["detail"]["status"] == "NO_SLOT"


def test_placement_errors(client: TestClient) -> None:
    bad_time = client.post(
        "/placements",
        json={"resource_id": "hall-a", "date": DAY, "start_time": "9:00", "end_time": "10:00"},
    )
    assert bad_time.status_code == 422

    closed = client.post(
        "/placements",
        json={"resource_id": "hall-a", "date": DAY, "start_time": "06:00", "end_time": "07:00"},
    )
    assert closed.status_code == 400

    maintenance = client.post(
        "/placements",
        json={"resource_id": "room-102", "date": DAY, "start_time": "10:00", "end_time": "11:00"},
    )
    assert maintenance.status_code == 409

    missing = client.post("/activities/missing/cancel")
    assert missing.status_code == 404


def test_recurrence_endpoint_reports_skips(client: TestClient) -> None:
    client.post(
        "/placements",
        json={"resource_id": "studio-2", "date": "2026-03-09", "start_time": "10:30", "end_time": "10:45"},
    )
    response = client.post(
        "/recurrences",
        json={
            "resource_id": "studio-2",
            "date_from": "2026-03-02",
            "date_to": "2026-03-29",
            "slots": [{"weekdays": [0, 2], "start_time": "10:00", "end_time": "11:00"}],
            "title": "Ballet",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert (body["created_count"], body["skipped_count"]) == (7, 1)
    assert body["skipped"][0]["date"] == "2026-03-09"
    assert body["skipped"][0]["reason"] == "10:30-10:45: Reservation"
    assert body["time_groups"][0]["start_time"] == "10:00"
    assert len(body["time_groups"][0]["dates"]) == 7

    bad_weekday = client.post(
        "/recurrences",
        json={
            "resource_id": "studio-2",
            "date_from": "2026-03-02",
            "date_to": "2026-03-29",
            "slots": [{"weekdays": [7], "start_time": "10:00", "end_time": "11:00"}],
        },
    )
    assert bad_weekday.status_code == 422


def test_drop_snapping(client: TestClient) -> None:
    response = client.post("/grid/drop", json={"y_offset": 100, "duration_minutes": 60})
    assert response.status_code == 200
    assert response.json() == {"start_time": "09:00", "end_time": "10:00", "row": 2}


def test_concurrent_placements_over_http_accept_exactly_one(client: TestClient) -> None:
    body = {"resource_id": "studio-2", "date": DAY, "start_time": "16:00", "end_time": "17:00"}
    barrier = threading.Barrier(2)
    codes: list[int] = []
    guard = threading.Lock()

    def worker() -> None:
        barrier.wait()
        response = client.post("/placements", json=body)
        with guard:
            codes.append(response.status_code)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(codes) == [201, 409]
    week = client.get("/resources/studio-2/week", params={"date": DAY}).json()
    assert [item["start_time"] for item in week["days"][DAY]] == ["16:00"]


def test_preview_rejects_unknown_calendar_key(client: TestClient) -> None:
    response = client.post(
        "/timeline/preview",
        json={"date": "2026-03-05", "calendar": {"rentalz": []}},
    )
    assert response.status_code == 400
    assert "rentalz" in response.json()["detail"]
