from sqlalchemy import Column, Integer, ForeignKey, DateTime, Text, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
import sqlalchemy as sa

from app.db.base_class import Base


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"


# Estados que bloquean una nueva reserva o unirse a la lista de espera
ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.PENDING)


class Booking(Base):
    """
    Reserva de un miembro para una ocurrencia de clase.

    Hay una sola fila por (ocurrencia, miembro): cancelar y volver a reservar
    reactiva la misma fila.
    """
    __tablename__ = "booking"

    id = Column(Integer, primary_key=True, index=True)
    occurrence_id = Column(Integer, ForeignKey("class_occurrence.id"), nullable=False, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    status = Column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BookingStatus.CONFIRMED,
    )
    booked_at = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Relaciones
    occurrence = relationship("ClassOccurrence", back_populates="bookings")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        sa.UniqueConstraint('occurrence_id', 'member_id', name='uq_booking_occurrence_member'),
    )
