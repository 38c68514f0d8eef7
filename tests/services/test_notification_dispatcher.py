"""
Tests del adaptador de notificaciones: canal in-app, OneSignal y tolerancia a fallos.
"""

import asyncio

import pytest
from fastapi import BackgroundTasks
from unittest.mock import AsyncMock
from sqlalchemy.exc import OperationalError

from app.models.notification import MemberNotification, MemberNotificationType
from app.repositories.notification import member_notification_repository
from app.services.notification_dispatcher import (
    MemberNotificationDispatcher,
    NotificationChannel,
    notify_safely,
)
from app.services.notification_service import MemberNotificationService
from app.services.waitlist import WaitlistService
from app.services.waitlist_promotion import WaitlistPromotionService
from app.core.exceptions import NotificationNotFoundError
from tests.conftest import NOW, RecordingNotifier


@pytest.fixture
def onesignal():
    client = AsyncMock()
    client.send_to_users.return_value = {"success": True, "notification_id": "n-1", "recipients": 1}
    client.send_email_to_users.return_value = {"success": False, "errors": ["sin email"]}
    return client


class TestMemberNotificationDispatcher:

    @pytest.mark.asyncio
    async def test_dispatch_reports_each_channel(self, db, onesignal):
        dispatcher = MemberNotificationDispatcher(onesignal)

        result = await dispatcher.dispatch(
            db,
            member_id=8,
            title="¡Plaza disponible!",
            message="Se ha liberado una plaza",
            notification_type=MemberNotificationType.WAITLIST_SPOT_AVAILABLE,
            related_id=15,
        )

        assert result.delivered == {"in_app": True, "email": False, "push": True}
        assert sorted(result.succeeded_channels) == ["in_app", "push"]
        assert result.any_delivered is True

        stored = db.query(MemberNotification).filter(MemberNotification.member_id == 8).all()
        assert len(stored) == 1
        assert stored[0].related_id == 15
        assert stored[0].is_read is False

        onesignal.send_to_users.assert_awaited_once()
        args, kwargs = onesignal.send_to_users.call_args
        assert args[0] == ["8"]
        assert kwargs["data"] == {"type": "waitlist_spot_available", "related_id": 15}

    @pytest.mark.asyncio
    async def test_only_requested_channels_are_used(self, db, onesignal):
        dispatcher = MemberNotificationDispatcher(onesignal)

        result = await dispatcher.dispatch(
            db,
            member_id=8,
            title="Reserva confirmada",
            message="Tu reserva está confirmada",
            notification_type=MemberNotificationType.BOOKING_CONFIRMED,
            channels=(NotificationChannel.IN_APP,),
        )

        assert result.delivered == {"in_app": True}
        onesignal.send_to_users.assert_not_called()
        onesignal.send_email_to_users.assert_not_called()

    @pytest.mark.asyncio
    async def test_in_app_storage_failure_is_reported_not_raised(self, db, onesignal, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("INSERT INTO member_notification", {}, Exception("disco lleno"))

        monkeypatch.setattr(member_notification_repository, "create", broken)
        dispatcher = MemberNotificationDispatcher(onesignal)

        result = await dispatcher.dispatch(
            db,
            member_id=8,
            title="t",
            message="m",
            notification_type=MemberNotificationType.WAITLIST_JOINED,
        )

        assert result.delivered["in_app"] is False
        assert result.delivered["push"] is True


class TestNotifySafely:

    @pytest.mark.asyncio
    async def test_errors_are_swallowed(self, db):
        result = await notify_safely(
            RecordingNotifier(fail=True),
            db,
            member_id=1,
            title="t",
            message="m",
            notification_type=MemberNotificationType.BOOKING_CONFIRMED,
        )

        assert result is None


class TestMemberNotificationService:

    def _store(self, db, member_id, title):
        notification = member_notification_repository.create(db, obj_in={
            "member_id": member_id,
            "notification_type": MemberNotificationType.WAITLIST_JOINED,
            "title": title,
            "message": "...",
            "is_read": False,
        })
        db.commit()
        return notification

    def test_list_and_mark_read(self, db):
        service = MemberNotificationService()
        first = self._store(db, 5, "primera")
        self._store(db, 5, "segunda")
        self._store(db, 6, "de otro miembro")

        assert len(service.get_member_notifications(db, 5)) == 2

        read = service.mark_as_read(db, first.id, 5)
        assert read.is_read is True
        assert read.read_at is not None
        assert [n.title for n in service.get_member_notifications(db, 5, unread_only=True)] == ["segunda"]

    def test_cannot_read_another_members_notification(self, db):
        service = MemberNotificationService()
        notification = self._store(db, 5, "privada")

        with pytest.raises(NotificationNotFoundError):
            service.mark_as_read(db, notification.id, 6)


class SlowOneSignal:
    """Cliente OneSignal que tarda ``delay`` segundos en cada envío."""

    def __init__(self, delay: float):
        self.delay = delay
        self.sent = []

    async def send_to_users(self, user_ids, title, message, data=None):
        await asyncio.sleep(self.delay)
        self.sent.append(("push", user_ids[0]))
        return {"success": True}

    async def send_email_to_users(self, user_ids, title, message):
        await asyncio.sleep(self.delay)
        self.sent.append(("email", user_ids[0]))
        return {"success": True}


class TestBackgroundDelivery:

    @pytest.mark.asyncio
    async def test_remote_channels_are_queued(self, db, onesignal):
        dispatcher = MemberNotificationDispatcher(onesignal)
        background_tasks = BackgroundTasks()

        result = await dispatcher.dispatch(
            db,
            member_id=8,
            title="Reserva confirmada",
            message="Tu reserva está confirmada",
            notification_type=MemberNotificationType.BOOKING_CONFIRMED,
            background_tasks=background_tasks,
        )

        assert result.delivered == {"in_app": True}
        assert sorted(result.queued) == ["email", "push"]
        assert result.any_accepted is True
        assert db.query(MemberNotification).filter(MemberNotification.member_id == 8).count() == 1
        onesignal.send_to_users.assert_not_called()
        onesignal.send_email_to_users.assert_not_called()

        await background_tasks()

        onesignal.send_to_users.assert_awaited_once()
        onesignal.send_email_to_users.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_join_does_not_wait_for_a_slow_provider(
        self, db, make_occurrence, fill_occurrence, promotion_service
    ):
        slow = SlowOneSignal(delay=5)
        waitlist = WaitlistService(promotion_service, MemberNotificationDispatcher(slow))
        occurrence = make_occurrence(capacity=1)
        await fill_occurrence(db, occurrence)
        background_tasks = BackgroundTasks()

        entry, rank = await asyncio.wait_for(
            waitlist.join_waitlist(db, occurrence.id, 2, now=NOW, background_tasks=background_tasks),
            timeout=1,
        )

        assert rank == 1
        assert slow.sent == []
        stored = db.query(MemberNotification).filter(MemberNotification.member_id == 2).all()
        assert [n.notification_type for n in stored] == [MemberNotificationType.WAITLIST_JOINED]

        slow.delay = 0
        await background_tasks()
        assert slow.sent == [("email", "2")]

    @pytest.mark.asyncio
    async def test_promotion_reports_queued_channels(self, db, make_occurrence, make_entry, onesignal):
        promotion = WaitlistPromotionService(MemberNotificationDispatcher(onesignal))
        occurrence = make_occurrence(capacity=2)
        make_entry(occurrence, member_id=2, position=1)
        make_entry(occurrence, member_id=3, position=2)
        background_tasks = BackgroundTasks()

        summary = await promotion.process_waitlist(
            db, occurrence.id, now=NOW, background_tasks=background_tasks
        )

        assert summary.notified_count == 2
        assert summary.channels_succeeded == {"in_app": 2}
        assert summary.channels_queued == {"email": 2, "push": 2}
        assert len(background_tasks.tasks) == 2
