from typing import List, Optional
from datetime import date, datetime, time

from sqlalchemy.orm import Session, joinedload

from app.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from app.models.schedule import ClassOccurrence
from app.repositories.base import BaseRepository
from app.schemas.booking import Booking as BookingSchema


class BookingRepository(BaseRepository[Booking, BookingSchema, BookingSchema]):
    def get_by_occurrence_and_member(
        self, db: Session, *, occurrence_id: int, member_id: int
    ) -> Optional[Booking]:
        """Obtener la reserva (de cualquier estado) de un miembro en una ocurrencia"""
        return db.query(Booking).filter(
            Booking.occurrence_id == occurrence_id,
            Booking.member_id == member_id
        ).first()

    def get_active_booking(
        self, db: Session, *, occurrence_id: int, member_id: int
    ) -> Optional[Booking]:
        """Reserva confirmada o pendiente del miembro para la ocurrencia"""
        return db.query(Booking).filter(
            Booking.occurrence_id == occurrence_id,
            Booking.member_id == member_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).first()

    def count_confirmed(self, db: Session, *, occurrence_id: int) -> int:
        return db.query(Booking).filter(
            Booking.occurrence_id == occurrence_id,
            Booking.status == BookingStatus.CONFIRMED
        ).count()

    def get_active_member_ids(self, db: Session, *, occurrence_id: int) -> List[int]:
        rows = db.query(Booking.member_id).filter(
            Booking.occurrence_id == occurrence_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).all()
        return [row[0] for row in rows]

    def get_overlapping_confirmed(
        self,
        db: Session,
        *,
        member_id: int,
        class_date: date,
        start_time: time,
        end_time: time,
        exclude_occurrence_id: Optional[int] = None
    ) -> Optional[Booking]:
        """
        Reserva confirmada del miembro el mismo día cuyo horario se solapa con
        [start_time, end_time). Clases contiguas no se consideran solapadas.
        """
        query = db.query(Booking).join(
            ClassOccurrence, Booking.occurrence_id == ClassOccurrence.id
        ).filter(
            Booking.member_id == member_id,
            Booking.status == BookingStatus.CONFIRMED,
            ClassOccurrence.class_date == class_date,
            ClassOccurrence.is_cancelled.is_(False),
            ClassOccurrence.start_time < end_time,
            ClassOccurrence.end_time > start_time
        )
        if exclude_occurrence_id is not None:
            query = query.filter(Booking.occurrence_id != exclude_occurrence_id)
        return query.first()

    def get_member_bookings(
        self,
        db: Session,
        *,
        member_id: int,
        from_date: Optional[date] = None,
        include_cancelled: bool = False,
        skip: int = 0,
        limit: int = 100
    ) -> List[Booking]:
        """Reservas de un miembro ordenadas por fecha y hora de la clase"""
        query = db.query(Booking).join(
            ClassOccurrence, Booking.occurrence_id == ClassOccurrence.id
        ).options(joinedload(Booking.occurrence)).filter(Booking.member_id == member_id)
        if not include_cancelled:
            query = query.filter(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        if from_date is not None:
            query = query.filter(ClassOccurrence.class_date >= from_date)
        return query.order_by(
            ClassOccurrence.class_date, ClassOccurrence.start_time
        ).offset(skip).limit(limit).all()

    def cancel_if_active(
        self, db: Session, *, booking_id: int, cancelled_at: datetime, reason: Optional[str] = None
    ) -> bool:
        """Transición condicional confirmed/pending -> cancelled; False si ya estaba cancelada"""
        updated = db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).update(
            {
                Booking.status: BookingStatus.CANCELLED,
                Booking.cancelled_at: cancelled_at,
                Booking.cancellation_reason: reason,
            },
            synchronize_session=False
        )
        return updated == 1


booking_repository = BookingRepository(Booking)
