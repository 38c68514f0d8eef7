from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Index
from sqlalchemy.sql import func

from app.db.base_class import Base


class MemberNotificationType:
    """Tipos de notificación in-app emitidos por el motor de reservas"""
    WAITLIST_JOINED = "waitlist_joined"
    WAITLIST_SPOT_AVAILABLE = "waitlist_spot_available"
    BOOKING_CONFIRMED = "booking_confirmed"
    CLASS_CANCELLED = "class_cancelled"


class MemberNotification(Base):
    """Notificación in-app para un miembro"""

    __tablename__ = "member_notification"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(Integer, nullable=True)  # ocurrencia relacionada
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_member_notification_member_read', 'member_id', 'is_read'),
    )
