from app.schemas.schedule import (
    ClassSchedule,
    ClassScheduleCreate,
    ClassOccurrence,
    ClassOccurrenceResolve,
    OccurrenceAvailability,
    OccurrenceCancelRequest,
    OccurrenceCancellationResult,
)
from app.schemas.booking import Booking, BookingWithOccurrence, BookingCancelRequest
from app.schemas.waitlist import (
    WaitlistEntry,
    WaitlistJoinResponse,
    WaitlistStatusResponse,
    WaitlistCountResponse,
    PromotionSummary,
)
from app.schemas.notification import MemberNotification
