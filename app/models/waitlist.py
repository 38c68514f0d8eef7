from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
import sqlalchemy as sa

from app.db.base_class import Base


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    EXPIRED = "expired"
    BOOKED = "booked"
    REMOVED = "removed"


NON_TERMINAL_WAITLIST_STATUSES = (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED)

_ACTIVE_ENTRY_PREDICATE = text("status IN ('waiting', 'notified')")


class WaitlistEntry(Base):
    """
    Entrada en la lista de espera de una ocurrencia.

    ``queue_position`` es única por ocurrencia, crece en orden de llegada y
    nunca se renumera ni se reutiliza. ``offer_expires_at`` solo tiene valor
    mientras la entrada está (o estuvo) notificada.
    """
    __tablename__ = "waitlist_entry"

    id = Column(Integer, primary_key=True, index=True)
    occurrence_id = Column(Integer, ForeignKey("class_occurrence.id"), nullable=False, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    queue_position = Column(Integer, nullable=False)
    status = Column(
        Enum(WaitlistStatus, name="waitlist_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=WaitlistStatus.WAITING,
    )
    joined_at = Column(DateTime(timezone=True), nullable=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    offer_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Relaciones
    occurrence = relationship("ClassOccurrence", back_populates="waitlist_entries")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        sa.UniqueConstraint('occurrence_id', 'queue_position', name='uq_waitlist_occurrence_position'),
        sa.CheckConstraint('queue_position > 0', name='check_waitlist_positive_position'),
        # Una sola entrada no terminal por (ocurrencia, miembro)
        Index(
            'uq_waitlist_active_member',
            'occurrence_id', 'member_id',
            unique=True,
            postgresql_where=_ACTIVE_ENTRY_PREDICATE,
            sqlite_where=_ACTIVE_ENTRY_PREDICATE,
        ),
        Index('ix_waitlist_occurrence_status_position', 'occurrence_id', 'status', 'queue_position'),
    )
