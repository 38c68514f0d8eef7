import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import BackgroundTasks
from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    DataUnavailableError,
    InvalidOccurrenceDateError,
    OccurrenceNotFoundError,
    ScheduleNotFoundError,
)
from app.core.timezone_utils import ensure_utc, utc_now
from app.models.notification import MemberNotificationType
from app.models.schedule import ClassOccurrence, ClassSchedule
from app.repositories.booking import booking_repository
from app.repositories.schedule import class_occurrence_repository, class_schedule_repository
from app.repositories.waitlist import waitlist_repository
from app.schemas.schedule import (
    ClassScheduleCreate,
    OccurrenceAvailability,
    OccurrenceCancellationResult,
)
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


class ClassScheduleService:
    def __init__(self, promotion: WaitlistPromotionService, notifier: NotificationDispatcher):
        self.promotion = promotion
        self.notifier = notifier

    def create_schedule(self, db: Session, schedule_in: ClassScheduleCreate) -> ClassSchedule:
        schedule = class_schedule_repository.create(db, obj_in=schedule_in)
        db.commit()
        db.refresh(schedule)
        logger.info(f"Horario {schedule.id} creado: {schedule.class_name} (día {schedule.day_of_week})")
        return schedule

    def list_schedules(
        self, db: Session, *, day_of_week: Optional[int] = None, skip: int = 0, limit: int = 100
    ) -> List[ClassSchedule]:
        return class_schedule_repository.get_active_schedules(
            db, day_of_week=day_of_week, skip=skip, limit=limit
        )

    def resolve_occurrence(self, db: Session, schedule_id: int, class_date: date) -> ClassOccurrence:
        """
        Obtener (o materializar) la ocurrencia de un horario en una fecha.

        La ocurrencia copia aforo y horas del horario en el momento de crearse.

        Raises:
            ScheduleNotFoundError: El horario no existe o está inactivo
            InvalidOccurrenceDateError: La fecha no cae en el día del horario
        """
        schedule = class_schedule_repository.get(db, schedule_id)
        if not schedule or not schedule.is_active:
            raise ScheduleNotFoundError()
        if class_date.weekday() != schedule.day_of_week:
            raise InvalidOccurrenceDateError()

        occurrence = class_occurrence_repository.get_by_schedule_and_date(
            db, schedule_id=schedule_id, class_date=class_date
        )
        if occurrence:
            return occurrence

        try:
            occurrence = class_occurrence_repository.create(db, obj_in={
                "schedule_id": schedule_id,
                "class_date": class_date,
                "day_of_week": schedule.day_of_week,
                "start_time": schedule.start_time,
                "end_time": schedule.end_time,
                "capacity": schedule.max_capacity,
                "confirmed_count": 0,
                "is_cancelled": False,
            })
            db.commit()
        except IntegrityError:
            # Otra petición la materializó a la vez
            db.rollback()
            occurrence = class_occurrence_repository.get_by_schedule_and_date(
                db, schedule_id=schedule_id, class_date=class_date
            )
            if not occurrence:
                raise DataUnavailableError()
            return occurrence

        logger.info(f"Ocurrencia {occurrence.id} creada para horario {schedule_id} el {class_date}")
        db.refresh(occurrence)
        return occurrence

    def get_occurrence(self, db: Session, occurrence_id: int) -> ClassOccurrence:
        occurrence = class_occurrence_repository.get(db, occurrence_id)
        if not occurrence:
            raise OccurrenceNotFoundError()
        return occurrence

    async def get_availability(
        self,
        db: Session,
        occurrence_id: int,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> OccurrenceAvailability:
        """Aforo, confirmadas, ofertas retenidas y plazas libres de una ocurrencia"""
        now = ensure_utc(now) if now else utc_now()
        occurrence = self.get_occurrence(db, occurrence_id)
        await self.promotion.expire_and_promote_if_needed(
            db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
        )
        confirmed = capacity_service.confirmed_count(db, occurrence_id)
        held = capacity_service.held_offers(db, occurrence_id, now)
        return OccurrenceAvailability(
            occurrence_id=occurrence_id,
            capacity=occurrence.capacity,
            confirmed_count=confirmed,
            held_offers=held,
            available_seats=0 if occurrence.is_cancelled else max(occurrence.capacity - confirmed - held, 0),
            is_full=confirmed >= occurrence.capacity,
            is_cancelled=occurrence.is_cancelled,
            waiting_count=waitlist_repository.count_waiting(db, occurrence_id=occurrence_id),
        )

    async def cancel_occurrence(
        self,
        db: Session,
        occurrence_id: int,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> OccurrenceCancellationResult:
        """
        Cancelar una ocurrencia: se marca como cancelada, se cierran como
        ``removed`` las entradas de la lista de espera y se avisa a todos los
        miembros con reserva activa. Cancelar dos veces no vuelve a notificar.
        """
        now = ensure_utc(now) if now else utc_now()
        try:
            occurrence = class_occurrence_repository.get_for_update(db, occurrence_id=occurrence_id)
            if not occurrence:
                db.rollback()
                raise OccurrenceNotFoundError()
            if occurrence.is_cancelled:
                db.rollback()
                return OccurrenceCancellationResult(
                    occurrence_id=occurrence_id, notified_members=0, removed_waitlist_entries=0
                )

            class_occurrence_repository.update(db, db_obj=occurrence, obj_in={
                "is_cancelled": True,
                "cancellation_reason": reason,
                "cancelled_at": now,
            })
            removed = waitlist_repository.remove_active_for_occurrence(db, occurrence_id=occurrence_id, now=now)
            member_ids = booking_repository.get_active_member_ids(db, occurrence_id=occurrence_id)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error al cancelar la ocurrencia {occurrence_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

        logger.info(
            f"Ocurrencia {occurrence_id} cancelada: {len(member_ids)} reservas activas, "
            f"{removed} entradas de espera cerradas"
        )
        await invalidate_waiting_count(redis_client, occurrence_id)

        occurrence = class_occurrence_repository.get(db, occurrence_id)
        title, message = notification_messages.class_cancelled(occurrence, reason)
        notified = 0
        for member_id in member_ids:
            result = await notify_safely(
                self.notifier,
                db,
                member_id=member_id,
                title=title,
                message=message,
                notification_type=MemberNotificationType.CLASS_CANCELLED,
                related_id=occurrence_id,
                channels=(NotificationChannel.IN_APP, NotificationChannel.EMAIL, NotificationChannel.PUSH),
                background_tasks=background_tasks,
            )
            if result and result.any_accepted:
                notified += 1

        return OccurrenceCancellationResult(
            occurrence_id=occurrence_id,
            notified_members=notified,
            removed_waitlist_entries=removed,
        )


class_schedule_service = ClassScheduleService(waitlist_promotion_service, notification_dispatcher)
