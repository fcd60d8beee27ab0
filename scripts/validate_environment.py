#!/usr/bin/env python3
"""Validate local Room Planner environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from roomplanner.domain.models import ActivityKind
from roomplanner.repository.data_repository import DataRepository
from roomplanner.services.booking_service import (
    BookingService,
    PlacementRequest,
    PlacementStatus,
)
from roomplanner.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="roomplanner-env-")

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_names = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pandas",
        "requests",
        "streamlit",
        "httpx",
        "pytest",
    ]
    import_errors: list[str] = []
    for module_name in package_names:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "roomplanner_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo seeding
        today = date.today()
        try:
            repository.seed_demo_data(today)
            seeded = repository.count_bookings()
            if seeded != 4:
                raise RuntimeError(f"expected 4 demo bookings, got {seeded}")
            ok, line = _print_result("Demo seed: 4 bookings", True)
        except RuntimeError as exc:
            ok, line = _print_result("Demo seed", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Conflict detection on a seeded booking
        service = BookingService(repository=repository, settings=validation_settings)
        try:
            outcome = service.place_activity(
                PlacementRequest(
                    resource_id="studio-1",
                    kind=ActivityKind.RESERVATION,
                    date=today.isoformat(),
                    start_time="10:30",
                    end_time="11:00",
                )
            )
            if outcome.status is not PlacementStatus.CONFLICT:
                raise RuntimeError(f"expected CONFLICT, got {outcome.status.value}")
            ok, line = _print_result("Conflict detection", True)
        except Exception as exc:
            ok, line = _print_result("Conflict detection", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6: Nearest-slot relocation
        try:
            outcome = service.place_activity(
                PlacementRequest(
                    resource_id="studio-1",
                    kind=ActivityKind.RESERVATION,
                    date=today.isoformat(),
                    start_time="10:30",
                    end_time="11:00",
                ),
                relocate=True,
            )
            if outcome.status is not PlacementStatus.RELOCATED or outcome.activity is None:
                raise RuntimeError(f"expected RELOCATED, got {outcome.status.value}")
            ok, line = _print_result(
                "Nearest-slot relocation",
                True,
                f": {outcome.activity.start_time}-{outcome.activity.end_time}",
            )
        except Exception as exc:
            ok, line = _print_result("Nearest-slot relocation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Room Planner Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
