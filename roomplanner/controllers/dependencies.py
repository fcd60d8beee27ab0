"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import HTTPException, Request, status

from roomplanner.services.booking_service import BookingService
from roomplanner.utils.config import get_settings


def get_booking_service(request: Request) -> BookingService:
    service = getattr(request.app.state, "booking_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            service = BookingService(repository=repository, settings=get_settings())
            request.app.state.booking_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking service is not initialized",
        )
    return service


def get_now(request: Request) -> datetime:
    """Read the wall clock once per request in the venue's timezone."""
    clock: Callable[[], datetime] | None = getattr(request.app.state, "clock", None)
    if clock is not None:
        return clock()
    return datetime.now(ZoneInfo(get_settings().local_timezone))
