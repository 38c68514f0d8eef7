from typing import List, Optional
from datetime import datetime

from sqlalchemy.orm import Session

from app.models.notification import MemberNotification
from app.repositories.base import BaseRepository
from app.schemas.notification import MemberNotification as MemberNotificationSchema


class MemberNotificationRepository(
    BaseRepository[MemberNotification, MemberNotificationSchema, MemberNotificationSchema]
):
    def get_for_member(
        self, db: Session, *, member_id: int, unread_only: bool = False, skip: int = 0, limit: int = 50
    ) -> List[MemberNotification]:
        query = db.query(MemberNotification).filter(MemberNotification.member_id == member_id)
        if unread_only:
            query = query.filter(MemberNotification.is_read.is_(False))
        return query.order_by(
            MemberNotification.created_at.desc(), MemberNotification.id.desc()
        ).offset(skip).limit(limit).all()

    def get_member_notification(
        self, db: Session, *, notification_id: int, member_id: int
    ) -> Optional[MemberNotification]:
        return db.query(MemberNotification).filter(
            MemberNotification.id == notification_id,
            MemberNotification.member_id == member_id
        ).first()

    def mark_read(self, db: Session, *, db_obj: MemberNotification, read_at: datetime) -> MemberNotification:
        return self.update(db, db_obj=db_obj, obj_in={"is_read": True, "read_at": read_at})


member_notification_repository = MemberNotificationRepository(MemberNotification)
