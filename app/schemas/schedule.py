from typing import Optional
from pydantic import BaseModel, Field, model_validator
from datetime import datetime, time, date


# ClassSchedule schemas
class ClassScheduleBase(BaseModel):
    class_name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    instructor_name: Optional[str] = Field(None, max_length=120)
    day_of_week: int = Field(..., ge=0, le=6, description="0=lunes ... 6=domingo")
    start_time: time
    end_time: time
    max_capacity: int = Field(..., gt=0)
    is_active: bool = True

    @model_validator(mode='after')
    def check_time_range(self):
        if self.end_time <= self.start_time:
            raise ValueError('end_time debe ser posterior a start_time')
        return self


class ClassScheduleCreate(ClassScheduleBase):
    pass


class ClassSchedule(ClassScheduleBase):
    id: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ClassOccurrence schemas
class ClassOccurrenceResolve(BaseModel):
    class_date: date


class ClassOccurrence(BaseModel):
    id: int
    schedule_id: int
    class_date: date
    day_of_week: int
    start_time: time
    end_time: time
    capacity: int
    is_cancelled: bool
    cancellation_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class OccurrenceAvailability(BaseModel):
    occurrence_id: int
    capacity: int
    confirmed_count: int
    held_offers: int
    available_seats: int
    is_full: bool
    is_cancelled: bool
    waiting_count: int


class OccurrenceCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OccurrenceCancellationResult(BaseModel):
    occurrence_id: int
    notified_members: int
    removed_waitlist_entries: int
