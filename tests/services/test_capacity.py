"""
Tests del cálculo de aforo: reservas confirmadas, ofertas retenidas y plazas libres.
"""

import pytest
from datetime import timedelta
from sqlalchemy.exc import OperationalError

from app.core.exceptions import DataUnavailableError, OccurrenceNotFoundError
from app.models.booking import Booking, BookingStatus
from app.models.waitlist import WaitlistStatus
from app.services.capacity import CapacityService
from tests.conftest import NOW


class TestCapacityService:

    @pytest.fixture
    def capacity(self):
        return CapacityService()

    def test_empty_occurrence_has_all_seats(self, db, make_occurrence, capacity):
        occurrence = make_occurrence(capacity=3)

        assert capacity.confirmed_count(db, occurrence.id) == 0
        assert capacity.is_full(db, occurrence.id) is False
        assert capacity.available_seats(db, occurrence, NOW) == 3

    @pytest.mark.asyncio
    async def test_full_when_confirmed_reaches_capacity(self, db, make_occurrence, fill_occurrence, capacity):
        occurrence = make_occurrence(capacity=2)
        await fill_occurrence(db, occurrence)

        assert capacity.confirmed_count(db, occurrence.id) == 2
        assert capacity.is_full(db, occurrence.id) is True
        assert capacity.available_seats(db, occurrence, NOW) == 0

    def test_pending_and_cancelled_bookings_do_not_count(self, db, make_occurrence, capacity):
        occurrence = make_occurrence(capacity=2)
        db.add(Booking(occurrence_id=occurrence.id, member_id=1, status=BookingStatus.PENDING, booked_at=NOW))
        db.add(Booking(occurrence_id=occurrence.id, member_id=2, status=BookingStatus.CANCELLED, booked_at=NOW))
        db.commit()

        assert capacity.confirmed_count(db, occurrence.id) == 0
        assert capacity.is_full(db, occurrence.id) is False

    def test_live_offers_hold_seats_except_for_their_holder(self, db, make_occurrence, make_entry, capacity):
        occurrence = make_occurrence(capacity=2)
        make_entry(occurrence, member_id=7, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=NOW + timedelta(hours=1))

        assert capacity.held_offers(db, occurrence.id, NOW) == 1
        assert capacity.available_seats(db, occurrence, NOW) == 1
        # El titular de la oferta no se descuenta su propia plaza
        assert capacity.available_seats(db, occurrence, NOW, member_id=7) == 2

    def test_offer_at_its_deadline_no_longer_holds_a_seat(self, db, make_occurrence, make_entry, capacity):
        occurrence = make_occurrence(capacity=1)
        make_entry(occurrence, member_id=7, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=NOW)

        assert capacity.held_offers(db, occurrence.id, NOW) == 0
        assert capacity.available_seats(db, occurrence, NOW) == 1

    def test_unknown_occurrence(self, db, capacity):
        with pytest.raises(OccurrenceNotFoundError):
            capacity.confirmed_count(db, 999)

    def test_storage_failure_is_reported_as_unavailable(self, db, make_occurrence, capacity, monkeypatch):
        occurrence = make_occurrence(capacity=2)

        def broken(*args, **kwargs):
            raise OperationalError("SELECT count(*)", {}, Exception("conexión perdida"))

        monkeypatch.setattr("app.services.capacity.booking_repository.count_confirmed", broken)

        with pytest.raises(DataUnavailableError) as exc_info:
            capacity.is_full(db, occurrence.id)
        assert exc_info.value.retryable is True
