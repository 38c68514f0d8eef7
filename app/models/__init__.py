from app.models.schedule import DayOfWeek, ClassSchedule, ClassOccurrence
from app.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from app.models.waitlist import WaitlistEntry, WaitlistStatus, NON_TERMINAL_WAITLIST_STATUSES
from app.models.notification import MemberNotification, MemberNotificationType
