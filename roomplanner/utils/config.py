"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from roomplanner.domain.models import WorkingWindow
from roomplanner.domain.time_arithmetic import time_to_minutes


PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class Settings:
    app_name: str = "Room Planner"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = PROJECT_ROOT / "data" / "roomplanner.db"
    working_day_start: str = "08:00"
    working_day_end: str = "22:00"
    slot_granularity_minutes: int = 30
    min_free_slot_minutes: int = 30
    grid_row_height: int = 48
    recurrence_max_days: int = 366
    local_timezone: str = "UTC"
    time_regex: str = r"^([01]\d|2[0-3]):[0-5]\d$"
    seed_demo_data: bool = True

    @property
    def working_window(self) -> WorkingWindow:
        return WorkingWindow(
            day_start=time_to_minutes(self.working_day_start),
            day_end=time_to_minutes(self.working_day_end),
            granularity=self.slot_granularity_minutes,
        )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    defaults = Settings()
    return Settings(
        app_name=os.getenv("APP_NAME", defaults.app_name),
        app_version=os.getenv("APP_VERSION", defaults.app_version),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        database_path=Path(os.getenv("DATABASE_PATH", str(defaults.database_path))),
        working_day_start=os.getenv("WORKING_DAY_START", defaults.working_day_start),
        working_day_end=os.getenv("WORKING_DAY_END", defaults.working_day_end),
        slot_granularity_minutes=int(
            os.getenv("SLOT_GRANULARITY_MINUTES", defaults.slot_granularity_minutes)
        ),
        min_free_slot_minutes=int(
            os.getenv("MIN_FREE_SLOT_MINUTES", defaults.min_free_slot_minutes)
        ),
        grid_row_height=int(os.getenv("GRID_ROW_HEIGHT", defaults.grid_row_height)),
        recurrence_max_days=int(
            os.getenv("RECURRENCE_MAX_DAYS", defaults.recurrence_max_days)
        ),
        local_timezone=os.getenv("LOCAL_TIMEZONE", defaults.local_timezone),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", defaults.seed_demo_data),
    )
