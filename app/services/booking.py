import logging
from datetime import datetime
from typing import List, Optional

from fastapi import BackgroundTasks
from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AlreadyBookedError,
    BookingNotFoundError,
    ClassAlreadyStartedError,
    ClassCancelledError,
    ClassFullError,
    ConcurrencyConflictError,
    DataUnavailableError,
    OccurrenceNotFoundError,
    OfferExpiredError,
    TimeConflictError,
)
from app.core.timezone_utils import convert_utc_to_local, ensure_utc, is_occurrence_in_future, utc_now
from app.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from app.models.notification import MemberNotificationType
from app.models.waitlist import WaitlistStatus, NON_TERMINAL_WAITLIST_STATUSES
from app.repositories.booking import booking_repository
from app.repositories.schedule import class_occurrence_repository
from app.repositories.waitlist import waitlist_repository
from app.services import notification_messages
from app.services.capacity import capacity_service
from app.services.notification_dispatcher import (
    NotificationChannel,
    NotificationDispatcher,
    notification_dispatcher,
    notify_safely,
)
from app.services.waitlist_cache import invalidate_waiting_count
from app.services.waitlist_promotion import WaitlistPromotionService, waitlist_promotion_service

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(self, promotion: WaitlistPromotionService, notifier: NotificationDispatcher):
        self.promotion = promotion
        self.notifier = notifier

    async def book_class(
        self,
        db: Session,
        occurrence_id: int,
        member_id: int,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Booking:
        """
        Reservar una plaza confirmada para el miembro.

        Un miembro con una oferta vigente de la lista de espera usa la plaza que
        tiene retenida; el resto solo puede reservar si queda una plaza libre
        después de descontar las ofertas vigentes de otros miembros. Si la
        reserva consume una entrada de la lista, esta pasa a ``booked`` en la
        misma transacción.

        Raises:
            AlreadyBookedError, ClassFullError, OfferExpiredError,
            ClassCancelledError, ClassAlreadyStartedError, TimeConflictError,
            OccurrenceNotFoundError, DataUnavailableError
        """
        now = ensure_utc(now) if now else utc_now()

        try:
            own_entry = waitlist_repository.get_active_entry(
                db, occurrence_id=occurrence_id, member_id=member_id
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"No se pudo leer la lista de espera de la ocurrencia {occurrence_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e
        own_offer_elapsed = (
            own_entry is not None
            and own_entry.status == WaitlistStatus.NOTIFIED
            and ensure_utc(own_entry.offer_expires_at) <= now
        )

        await self.promotion.expire_and_promote_if_needed(
            db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
        )
        if own_offer_elapsed:
            logger.info(f"Miembro {member_id} intentó usar una oferta vencida en la ocurrencia {occurrence_id}")
            raise OfferExpiredError()

        try:
            booking_id, consumed_entry = self._reserve(db, occurrence_id, member_id, now)
        except IntegrityError:
            db.rollback()
            # Otra petición creó la fila a la vez; re-leer y traducir una sola vez
            logger.info(f"Conflicto de unicidad al reservar ocurrencia {occurrence_id} para miembro {member_id}")
            try:
                booking_id, consumed_entry = self._reserve(db, occurrence_id, member_id, now)
            except IntegrityError as e:
                db.rollback()
                raise ConcurrencyConflictError() from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error al reservar ocurrencia {occurrence_id} para miembro {member_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

        logger.info(f"Reserva {booking_id} confirmada: miembro {member_id}, ocurrencia {occurrence_id}")
        if consumed_entry:
            await invalidate_waiting_count(redis_client, occurrence_id)

        occurrence = class_occurrence_repository.get(db, occurrence_id)
        title, message = notification_messages.booking_confirmed(occurrence)
        await notify_safely(
            self.notifier,
            db,
            member_id=member_id,
            title=title,
            message=message,
            notification_type=MemberNotificationType.BOOKING_CONFIRMED,
            related_id=occurrence_id,
            channels=(NotificationChannel.IN_APP, NotificationChannel.EMAIL),
            background_tasks=background_tasks,
        )
        return booking_repository.get(db, booking_id)

    def _reserve(self, db: Session, occurrence_id: int, member_id: int, now: datetime):
        """Una transacción: validar, tomar la plaza, crear/reactivar la reserva y consumir la entrada"""
        settings = get_settings()
        occurrence = class_occurrence_repository.get_for_update(db, occurrence_id=occurrence_id)
        if not occurrence:
            db.rollback()
            raise OccurrenceNotFoundError()
        if occurrence.is_cancelled:
            db.rollback()
            raise ClassCancelledError()
        if not is_occurrence_in_future(occurrence.class_date, occurrence.start_time, settings.GYM_TIMEZONE, now=now):
            db.rollback()
            raise ClassAlreadyStartedError()

        existing = booking_repository.get_by_occurrence_and_member(
            db, occurrence_id=occurrence_id, member_id=member_id
        )
        if existing and existing.status in ACTIVE_BOOKING_STATUSES:
            db.rollback()
            raise AlreadyBookedError()

        conflict = booking_repository.get_overlapping_confirmed(
            db,
            member_id=member_id,
            class_date=occurrence.class_date,
            start_time=occurrence.start_time,
            end_time=occurrence.end_time,
            exclude_occurrence_id=occurrence_id,
        )
        if conflict:
            db.rollback()
            raise TimeConflictError()

        held = capacity_service.held_offers(db, occurrence_id, now, exclude_member_id=member_id)
        if not class_occurrence_repository.try_reserve_seat(db, occurrence_id=occurrence_id, held_seats=held):
            db.rollback()
            latest = waitlist_repository.get_latest_entry(db, occurrence_id=occurrence_id, member_id=member_id)
            if latest and latest.status == WaitlistStatus.EXPIRED:
                raise OfferExpiredError()
            raise ClassFullError()

        if existing:
            # Reactivar la reserva cancelada (una fila por miembro y ocurrencia)
            booking = booking_repository.update(db, db_obj=existing, obj_in={
                "status": BookingStatus.CONFIRMED,
                "booked_at": now,
                "cancelled_at": None,
                "cancellation_reason": None,
            })
        else:
            booking = booking_repository.create(db, obj_in={
                "occurrence_id": occurrence_id,
                "member_id": member_id,
                "status": BookingStatus.CONFIRMED,
                "booked_at": now,
            })

        entry = waitlist_repository.get_active_entry(db, occurrence_id=occurrence_id, member_id=member_id)
        consumed = False
        if entry:
            consumed = waitlist_repository.transition(
                db,
                entry_id=entry.id,
                from_statuses=NON_TERMINAL_WAITLIST_STATUSES,
                to_status=WaitlistStatus.BOOKED,
                resolved_at=now,
            )

        booking_id = booking.id
        db.commit()
        return booking_id, consumed

    async def cancel_booking(
        self,
        db: Session,
        booking_id: int,
        member_id: Optional[int] = None,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Booking:
        """
        Cancelar una reserva. Cancelar una reserva confirmada libera la plaza y
        dispara una ronda de promoción de la lista de espera; cancelar una ya
        cancelada no hace nada.

        Raises:
            BookingNotFoundError: La reserva no existe o no es del miembro
        """
        now = ensure_utc(now) if now else utc_now()
        booking = booking_repository.get(db, booking_id)
        if not booking or (member_id is not None and booking.member_id != member_id):
            raise BookingNotFoundError()
        if booking.status == BookingStatus.CANCELLED:
            return booking

        occurrence_id = booking.occurrence_id
        was_confirmed = booking.status == BookingStatus.CONFIRMED
        try:
            class_occurrence_repository.get_for_update(db, occurrence_id=occurrence_id)
            cancelled = booking_repository.cancel_if_active(
                db, booking_id=booking_id, cancelled_at=now, reason=reason
            )
            if cancelled and was_confirmed:
                class_occurrence_repository.release_seat(db, occurrence_id=occurrence_id)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error al cancelar la reserva {booking_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

        if cancelled:
            logger.info(f"Reserva {booking_id} cancelada (ocurrencia {occurrence_id})")
        if cancelled and was_confirmed:
            summary = await self.promotion.process_waitlist(
                db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
            )
            if summary.failed:
                logger.warning(f"La promoción tras cancelar la reserva {booking_id} falló; se reintentará en el barrido")

        return booking_repository.get(db, booking_id)

    def get_member_bookings(
        self,
        db: Session,
        member_id: int,
        *,
        upcoming_only: bool = True,
        include_cancelled: bool = False,
        skip: int = 0,
        limit: int = 100
    ) -> List[Booking]:
        """Reservas del miembro; por defecto solo las de hoy en adelante (hora del gimnasio)"""
        from_date = None
        if upcoming_only:
            from_date = convert_utc_to_local(utc_now(), get_settings().GYM_TIMEZONE).date()
        return booking_repository.get_member_bookings(
            db,
            member_id=member_id,
            from_date=from_date,
            include_cancelled=include_cancelled,
            skip=skip,
            limit=limit,
        )


booking_service = BookingService(waitlist_promotion_service, notification_dispatcher)
