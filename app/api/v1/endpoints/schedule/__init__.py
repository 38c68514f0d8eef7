"""
Schedule Module - API Endpoints

Booking and waitlist surface of the gym class system:
- Weekly class schedules and their dated occurrences
- Seat availability and admin cancellation of occurrences
- Member bookings
- Per-occurrence waitlists with time-limited seat offers

Member identity arrives in the X-Member-ID header; admin endpoints require
the X-API-Key header.
"""

from fastapi import APIRouter

from app.api.v1.endpoints.schedule import (
    schedules,
    occurrences,
    bookings,
    waitlist
)

router = APIRouter()

router.include_router(schedules.router, tags=["schedules"])
router.include_router(occurrences.router, tags=["occurrences"])
router.include_router(bookings.router, tags=["bookings"])
router.include_router(waitlist.router, tags=["waitlist"])
