from fastapi import APIRouter

from app.api.v1.endpoints.notification import router as notification_router
from app.api.v1.endpoints.schedule import router as schedule_router

api_router = APIRouter()

# Schedules, occurrences, bookings and waitlists
api_router.include_router(schedule_router)

# In-app notifications
api_router.include_router(notification_router, prefix="/notifications", tags=["notifications"])
