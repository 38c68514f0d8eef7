"""
Tests del proceso de promoción: ofertas de plaza, vencimiento y re-promoción.
"""

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy.exc import OperationalError

from app.core.exceptions import OccurrenceNotFoundError
from app.core.timezone_utils import ensure_utc
from app.models.notification import MemberNotificationType
from app.models.waitlist import WaitlistStatus
from app.repositories.booking import booking_repository
from app.repositories.waitlist import waitlist_repository
from app.services.notification_dispatcher import NotificationChannel
from app.services.waitlist_promotion import WaitlistPromotionService
from tests.conftest import NOW, RecordingNotifier

OFFER = timedelta(hours=24)


async def _full_class_with_queue(db, make_occurrence, fill_occurrence, waitlist_svc, capacity=1, waiting=(2, 3)):
    occurrence = make_occurrence(capacity=capacity)
    await fill_occurrence(db, occurrence)
    for member_id in waiting:
        await waitlist_svc.join_waitlist(db, occurrence.id, member_id, now=NOW)
    return occurrence


def _entry_of(db, occurrence, member_id):
    return waitlist_repository.get_latest_entry(db, occurrence_id=occurrence.id, member_id=member_id)


class TestPromotion:

    @pytest.mark.asyncio
    async def test_cancellation_offers_seat_to_head_of_queue(
        self, db, make_occurrence, fill_occurrence, waitlist_svc, booking_svc, notifier
    ):
        occurrence = await _full_class_with_queue(db, make_occurrence, fill_occurrence, waitlist_svc)
        booking = booking_repository.get_by_occurrence_and_member(db, occurrence_id=occurrence.id, member_id=1)

        await booking_svc.cancel_booking(db, booking.id, 1, now=NOW)

        head = _entry_of(db, occurrence, 2)
        assert head.status == WaitlistStatus.NOTIFIED
        assert ensure_utc(head.offer_expires_at) == NOW + OFFER
        assert _entry_of(db, occurrence, 3).status == WaitlistStatus.WAITING

        offers = notifier.calls_of_type(MemberNotificationType.WAITLIST_SPOT_AVAILABLE)
        assert [c["member_id"] for c in offers] == [2]
        assert offers[0]["related_id"] == occurrence.id

    @pytest.mark.asyncio
    async def test_no_promotion_while_class_is_full(
        self, db, make_occurrence, fill_occurrence, waitlist_svc, promotion_service
    ):
        occurrence = await _full_class_with_queue(db, make_occurrence, fill_occurrence, waitlist_svc)

        summary = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.notified_count == 0
        assert summary.failed is False
        assert _entry_of(db, occurrence, 2).status == WaitlistStatus.WAITING

    @pytest.mark.asyncio
    async def test_one_offer_per_free_seat(
        self, db, make_occurrence, fill_occurrence, waitlist_svc, promotion_service
    ):
        occurrence = await _full_class_with_queue(
            db, make_occurrence, fill_occurrence, waitlist_svc, capacity=2, waiting=(3, 4, 5)
        )
        for member_id in (1, 2):
            booking = booking_repository.get_by_occurrence_and_member(
                db, occurrence_id=occurrence.id, member_id=member_id
            )
            booking_repository.cancel_if_active(db, booking_id=booking.id, cancelled_at=NOW)
        occurrence.confirmed_count = 0
        db.commit()

        summary = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.notified_count == 2
        assert summary.offer_expires_at == NOW + OFFER
        assert _entry_of(db, occurrence, 3).status == WaitlistStatus.NOTIFIED
        assert _entry_of(db, occurrence, 4).status == WaitlistStatus.NOTIFIED
        assert _entry_of(db, occurrence, 5).status == WaitlistStatus.WAITING

        # Una segunda ronda no vuelve a ofrecer las plazas retenidas
        again = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)
        assert again.notified_count == 0

    @pytest.mark.asyncio
    async def test_offer_expires_at_its_deadline_and_next_member_is_promoted(
        self, db, make_occurrence, fill_occurrence, waitlist_svc, booking_svc, promotion_service
    ):
        occurrence = await _full_class_with_queue(db, make_occurrence, fill_occurrence, waitlist_svc)
        booking = booking_repository.get_by_occurrence_and_member(db, occurrence_id=occurrence.id, member_id=1)
        await booking_svc.cancel_booking(db, booking.id, 1, now=NOW)

        just_before = await promotion_service.expire_and_promote_if_needed(
            db, occurrence.id, now=NOW + OFFER - timedelta(seconds=1)
        )
        assert just_before is None
        assert _entry_of(db, occurrence, 2).status == WaitlistStatus.NOTIFIED

        deadline = NOW + OFFER
        summary = await promotion_service.expire_and_promote_if_needed(db, occurrence.id, now=deadline)

        assert summary.expired_count == 1
        assert summary.notified_count == 1
        assert _entry_of(db, occurrence, 2).status == WaitlistStatus.EXPIRED
        next_entry = _entry_of(db, occurrence, 3)
        assert next_entry.status == WaitlistStatus.NOTIFIED
        assert ensure_utc(next_entry.offer_expires_at) == deadline + OFFER

    @pytest.mark.asyncio
    async def test_expired_offer_with_empty_queue_frees_the_seat(
        self, db, make_occurrence, make_entry, promotion_service, capacity_free_seats
    ):
        occurrence = make_occurrence(capacity=1)
        make_entry(occurrence, member_id=2, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=NOW - timedelta(hours=1))

        summary = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.expired_count == 1
        assert summary.notified_count == 0
        assert capacity_free_seats(occurrence) == 1

    @pytest.mark.asyncio
    async def test_cancelled_occurrence_promotes_nobody(
        self, db, make_occurrence, make_entry, promotion_service
    ):
        occurrence = make_occurrence(capacity=1)
        make_entry(occurrence, member_id=2, position=1)
        occurrence.is_cancelled = True
        db.commit()

        summary = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.notified_count == 0
        assert _entry_of(db, occurrence, 2).status == WaitlistStatus.WAITING

    @pytest.mark.asyncio
    async def test_started_class_promotes_nobody(
        self, db, make_occurrence, make_entry, promotion_service, notifier
    ):
        occurrence = make_occurrence(capacity=1)
        started = datetime.combine(occurrence.class_date, occurrence.start_time, tzinfo=timezone.utc)
        make_entry(occurrence, member_id=2, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=started - timedelta(minutes=30))
        make_entry(occurrence, member_id=3, position=2)

        summary = await promotion_service.process_waitlist(db, occurrence.id, now=started + timedelta(minutes=5))

        # La oferta vencida se cierra pero nadie recibe una plaza que ya no puede reservar
        assert summary.expired_count == 1
        assert summary.notified_count == 0
        assert _entry_of(db, occurrence, 3).status == WaitlistStatus.WAITING
        assert notifier.calls_of_type(MemberNotificationType.WAITLIST_SPOT_AVAILABLE) == []

    @pytest.mark.asyncio
    async def test_unknown_occurrence(self, db, promotion_service):
        with pytest.raises(OccurrenceNotFoundError):
            await promotion_service.process_waitlist(db, 999, now=NOW)

    @pytest.mark.asyncio
    async def test_failed_transition_is_reported_and_seat_stays_free(
        self, db, make_occurrence, make_entry, promotion_service, monkeypatch
    ):
        occurrence = make_occurrence(capacity=1)
        make_entry(occurrence, member_id=2, position=1)

        def broken(*args, **kwargs):
            raise OperationalError("UPDATE waitlist_entry", {}, Exception("timeout"))

        monkeypatch.setattr(waitlist_repository, "mark_notified_if_waiting", broken)
        summary = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.failed is True
        assert summary.notified_count == 0
        assert _entry_of(db, occurrence, 2).status == WaitlistStatus.WAITING

        # El siguiente disparo la recupera
        monkeypatch.undo()
        retry = await promotion_service.process_waitlist(db, occurrence.id, now=NOW)
        assert retry.notified_count == 1

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_the_promotion(self, db, make_occurrence, make_entry):
        promotion = WaitlistPromotionService(RecordingNotifier(fail=True))
        occurrence = make_occurrence(capacity=1)
        make_entry(occurrence, member_id=2, position=1)

        summary = await promotion.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.notified_count == 1
        assert summary.channels_succeeded == {}
        assert _entry_of(db, occurrence, 2).status == WaitlistStatus.NOTIFIED

    @pytest.mark.asyncio
    async def test_summary_counts_successful_channels(self, db, make_occurrence, make_entry):
        notifier = RecordingNotifier(failing_channels=(NotificationChannel.EMAIL,))
        promotion = WaitlistPromotionService(notifier)
        occurrence = make_occurrence(capacity=2)
        make_entry(occurrence, member_id=2, position=1)
        make_entry(occurrence, member_id=3, position=2)

        summary = await promotion.process_waitlist(db, occurrence.id, now=NOW)

        assert summary.notified_count == 2
        assert summary.channels_succeeded == {"in_app": 2, "push": 2}


class TestSweep:

    @pytest.mark.asyncio
    async def test_sweep_processes_every_occurrence_with_elapsed_offers(
        self, db, make_occurrence, make_entry, promotion_service
    ):
        first = make_occurrence(capacity=1, class_name="Spinning")
        second = make_occurrence(capacity=1, class_name="Pilates")
        untouched = make_occurrence(capacity=1, class_name="Boxeo")
        for occurrence in (first, second):
            make_entry(occurrence, member_id=2, position=1, status=WaitlistStatus.NOTIFIED,
                       offer_expires_at=NOW - timedelta(minutes=5))
            make_entry(occurrence, member_id=3, position=2)
        make_entry(untouched, member_id=2, position=1, status=WaitlistStatus.NOTIFIED,
                   offer_expires_at=NOW + timedelta(minutes=5))

        summaries = await promotion_service.sweep_expired_offers(db, now=NOW)

        assert sorted(s.occurrence_id for s in summaries) == sorted([first.id, second.id])
        for occurrence in (first, second):
            assert _entry_of(db, occurrence, 2).status == WaitlistStatus.EXPIRED
            assert _entry_of(db, occurrence, 3).status == WaitlistStatus.NOTIFIED
        assert _entry_of(db, untouched, 2).status == WaitlistStatus.NOTIFIED

    @pytest.mark.asyncio
    async def test_sweep_with_nothing_to_do(self, db, make_occurrence, promotion_service):
        make_occurrence(capacity=1)

        assert await promotion_service.sweep_expired_offers(db, now=NOW) == []
