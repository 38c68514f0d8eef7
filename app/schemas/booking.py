from typing import Optional
from pydantic import BaseModel
from datetime import datetime

from app.models.booking import BookingStatus
from app.schemas.schedule import ClassOccurrence


class Booking(BaseModel):
    id: int
    occurrence_id: int
    member_id: int
    status: BookingStatus
    booked_at: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class BookingWithOccurrence(Booking):
    occurrence: ClassOccurrence


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = None
