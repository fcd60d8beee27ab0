"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository and booking service, registers the scheduling
router, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI

from roomplanner.controllers.scheduling_controller import router as scheduling_router
from roomplanner.repository.data_repository import DataRepository
from roomplanner.services.booking_service import BookingService
from roomplanner.utils.config import Settings, get_settings
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Dependencies are injected via app.state so tests can swap the clock or
    the database path without touching module globals.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    booking_service = BookingService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.include_router(scheduling_router)

    app.state.repository = repository
    app.state.booking_service = booking_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before seeding; seeding is skipped when rooms exist.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo rooms and bookings")
        repository.seed_demo_data(datetime.now(ZoneInfo(settings.local_timezone)).date())

    logger.info("Startup complete | bookings=%s", repository.count_bookings())


# Module-level app object for uvicorn
app = create_app()
