import logging
from typing import List

from sqlalchemy.orm import Session

from app.core.exceptions import NotificationNotFoundError
from app.core.timezone_utils import utc_now
from app.models.notification import MemberNotification
from app.repositories.notification import member_notification_repository

logger = logging.getLogger(__name__)


class MemberNotificationService:
    """Bandeja de notificaciones in-app de cada miembro"""

    def get_member_notifications(
        self, db: Session, member_id: int, *, unread_only: bool = False, skip: int = 0, limit: int = 50
    ) -> List[MemberNotification]:
        return member_notification_repository.get_for_member(
            db, member_id=member_id, unread_only=unread_only, skip=skip, limit=limit
        )

    def mark_as_read(self, db: Session, notification_id: int, member_id: int) -> MemberNotification:
        notification = member_notification_repository.get_member_notification(
            db, notification_id=notification_id, member_id=member_id
        )
        if not notification:
            raise NotificationNotFoundError()
        if notification.is_read:
            return notification

        member_notification_repository.mark_read(db, db_obj=notification, read_at=utc_now())
        db.commit()
        db.refresh(notification)
        logger.debug(f"Notificación {notification_id} marcada como leída por miembro {member_id}")
        return notification


member_notification_service = MemberNotificationService()
