"""
Tests de horarios semanales, ocurrencias, disponibilidad y cancelación de clases.
"""

import pytest
from datetime import time, timedelta

from app.core.exceptions import (
    ClassCancelledError,
    InvalidOccurrenceDateError,
    OccurrenceNotFoundError,
    ScheduleNotFoundError,
)
from app.models.booking import BookingStatus
from app.models.notification import MemberNotificationType
from app.models.waitlist import WaitlistStatus
from app.repositories.booking import booking_repository
from app.repositories.waitlist import waitlist_repository
from app.schemas.schedule import ClassScheduleCreate
from app.services.notification_dispatcher import NotificationChannel
from tests.conftest import NOW


def _schedule_in(day_of_week: int, capacity: int = 10, **overrides) -> ClassScheduleCreate:
    data = dict(
        class_name="Crossfit",
        instructor_name="Marta",
        day_of_week=day_of_week,
        start_time=time(7, 0),
        end_time=time(8, 0),
        max_capacity=capacity,
    )
    data.update(overrides)
    return ClassScheduleCreate(**data)


class TestSchedules:

    def test_create_and_list_by_day(self, db, schedule_svc):
        monday = schedule_svc.create_schedule(db, _schedule_in(0))
        schedule_svc.create_schedule(db, _schedule_in(2, class_name="Zumba"))

        assert monday.id is not None
        assert [s.class_name for s in schedule_svc.list_schedules(db)] == ["Crossfit", "Zumba"]
        assert [s.id for s in schedule_svc.list_schedules(db, day_of_week=0)] == [monday.id]

    def test_invalid_time_range_is_rejected(self):
        with pytest.raises(ValueError):
            _schedule_in(0, start_time=time(9, 0), end_time=time(8, 0))

    def test_resolve_occurrence_is_created_once(self, db, schedule_svc):
        class_date = NOW.date() + timedelta(days=4)
        schedule = schedule_svc.create_schedule(db, _schedule_in(class_date.weekday(), capacity=12))

        first = schedule_svc.resolve_occurrence(db, schedule.id, class_date)
        second = schedule_svc.resolve_occurrence(db, schedule.id, class_date)

        assert first.id == second.id
        assert first.capacity == 12
        assert first.start_time == time(7, 0)
        assert first.confirmed_count == 0

    def test_resolve_on_wrong_weekday(self, db, schedule_svc):
        class_date = NOW.date() + timedelta(days=4)
        schedule = schedule_svc.create_schedule(db, _schedule_in((class_date.weekday() + 1) % 7))

        with pytest.raises(InvalidOccurrenceDateError):
            schedule_svc.resolve_occurrence(db, schedule.id, class_date)

    def test_resolve_inactive_or_missing_schedule(self, db, schedule_svc):
        class_date = NOW.date() + timedelta(days=4)
        inactive = schedule_svc.create_schedule(db, _schedule_in(class_date.weekday(), is_active=False))

        with pytest.raises(ScheduleNotFoundError):
            schedule_svc.resolve_occurrence(db, inactive.id, class_date)
        with pytest.raises(ScheduleNotFoundError):
            schedule_svc.resolve_occurrence(db, 999, class_date)

    def test_get_unknown_occurrence(self, db, schedule_svc):
        with pytest.raises(OccurrenceNotFoundError):
            schedule_svc.get_occurrence(db, 999)


class TestAvailability:

    @pytest.mark.asyncio
    async def test_availability_reports_held_offers(
        self, db, make_occurrence, make_entry, booking_svc, schedule_svc
    ):
        occurrence = make_occurrence(capacity=3)
        await booking_svc.book_class(db, occurrence.id, 1, now=NOW)
        make_entry(occurrence, member_id=2, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=NOW + timedelta(hours=2))
        make_entry(occurrence, member_id=3, position=2)

        availability = await schedule_svc.get_availability(db, occurrence.id, now=NOW)

        assert availability.capacity == 3
        assert availability.confirmed_count == 1
        assert availability.held_offers == 1
        assert availability.available_seats == 1
        assert availability.is_full is False
        assert availability.waiting_count == 1

    @pytest.mark.asyncio
    async def test_availability_expires_elapsed_offers_first(
        self, db, make_occurrence, make_entry, schedule_svc
    ):
        occurrence = make_occurrence(capacity=1)
        make_entry(occurrence, member_id=2, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=NOW - timedelta(seconds=1))
        make_entry(occurrence, member_id=3, position=2)

        availability = await schedule_svc.get_availability(db, occurrence.id, now=NOW)

        # La plaza vencida se ofreció al siguiente miembro
        assert availability.held_offers == 1
        assert availability.available_seats == 0
        assert availability.waiting_count == 0


class TestCancelOccurrence:

    @pytest.mark.asyncio
    async def test_cancel_notifies_booked_members_and_closes_waitlist(
        self, db, make_occurrence, fill_occurrence, waitlist_svc, booking_svc, schedule_svc, notifier
    ):
        occurrence = make_occurrence(capacity=2)
        await fill_occurrence(db, occurrence)
        await waitlist_svc.join_waitlist(db, occurrence.id, 3, now=NOW)
        await waitlist_svc.join_waitlist(db, occurrence.id, 4, now=NOW)

        result = await schedule_svc.cancel_occurrence(db, occurrence.id, reason="Instructor enfermo", now=NOW)

        assert result.notified_members == 2
        assert result.removed_waitlist_entries == 2
        for member_id in (3, 4):
            entry = waitlist_repository.get_latest_entry(db, occurrence_id=occurrence.id, member_id=member_id)
            assert entry.status == WaitlistStatus.REMOVED

        cancelled = notifier.calls_of_type(MemberNotificationType.CLASS_CANCELLED)
        assert sorted(c["member_id"] for c in cancelled) == [1, 2]
        assert "Instructor enfermo" in cancelled[0]["message"]
        assert NotificationChannel.PUSH in cancelled[0]["channels"]

        # Las reservas se conservan para el historial del miembro
        booking = booking_repository.get_by_occurrence_and_member(db, occurrence_id=occurrence.id, member_id=1)
        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_cancel_twice_does_not_notify_again(
        self, db, make_occurrence, fill_occurrence, schedule_svc, notifier
    ):
        occurrence = make_occurrence(capacity=1)
        await fill_occurrence(db, occurrence)
        await schedule_svc.cancel_occurrence(db, occurrence.id, now=NOW)

        again = await schedule_svc.cancel_occurrence(db, occurrence.id, now=NOW)

        assert again.notified_members == 0
        assert again.removed_waitlist_entries == 0
        assert len(notifier.calls_of_type(MemberNotificationType.CLASS_CANCELLED)) == 1

    @pytest.mark.asyncio
    async def test_cancelled_occurrence_rejects_bookings(
        self, db, make_occurrence, booking_svc, schedule_svc
    ):
        occurrence = make_occurrence(capacity=2)
        await schedule_svc.cancel_occurrence(db, occurrence.id, now=NOW)

        with pytest.raises(ClassCancelledError):
            await booking_svc.book_class(db, occurrence.id, 1, now=NOW)

        availability = await schedule_svc.get_availability(db, occurrence.id, now=NOW)
        assert availability.is_cancelled is True
        assert availability.available_seats == 0

    @pytest.mark.asyncio
    async def test_cancel_unknown_occurrence(self, db, schedule_svc):
        with pytest.raises(OccurrenceNotFoundError):
            await schedule_svc.cancel_occurrence(db, 999, now=NOW)
