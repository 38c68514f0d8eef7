"""
Common imports and dependencies for the schedule module.

This module centralizes shared imports and dependencies used across
all booking and waitlist endpoints: database and Redis access, member
identity, admin verification, services and schemas.
"""

from typing import Any, List, Optional
from datetime import date
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Path, Body, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_member_id, verify_admin_api_key
from app.db.session import get_db
from app.db.redis_client import get_redis_client
from app.services.booking import booking_service
from app.services.class_schedule import class_schedule_service
from app.services.waitlist import waitlist_service
from app.schemas.schedule import (
    ClassSchedule, ClassScheduleCreate,
    ClassOccurrence, ClassOccurrenceResolve,
    OccurrenceAvailability, OccurrenceCancelRequest, OccurrenceCancellationResult,
)
from app.schemas.booking import Booking, BookingWithOccurrence, BookingCancelRequest
from app.schemas.waitlist import (
    WaitlistEntry, WaitlistJoinResponse, WaitlistStatusResponse, WaitlistCountResponse,
)
