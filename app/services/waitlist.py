"""
Waitlist Queue: cola ordenada por ocurrencia.

Ciclo de vida de una entrada: ``waiting -> notified -> expired | booked | removed``
(``waiting`` también puede pasar directamente a ``removed`` o ``booked``).
Las posiciones se asignan como max(posición histórica) + 1 y nunca se reutilizan;
la posición visible (rank) se calcula al leer.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import BackgroundTasks
from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadyBookedError,
    AlreadyWaitlistedError,
    ClassAlreadyStartedError,
    ClassCancelledError,
    ClassNotFullError,
    ConcurrencyConflictError,
    DataUnavailableError,
    OccurrenceNotFoundError,
    WaitlistEntryNotFoundError,
)
from app.core.config import get_settings
from app.core.timezone_utils import ensure_utc, is_occurrence_in_future, utc_now
from app.models.notification import MemberNotificationType
from app.models.waitlist import WaitlistEntry, WaitlistStatus, NON_TERMINAL_WAITLIST_STATUSES
from app.repositories.booking import booking_repository
from app.repositories.schedule import class_occurrence_repository
from app.repositories.waitlist import waitlist_repository
from app.schemas.waitlist import WaitlistStatusResponse
from app.services import notification_messages
from app.services.capacity import capacity_service
from app.services.notification_dispatcher import (
    NotificationChannel,
    NotificationDispatcher,
    notification_dispatcher,
    notify_safely,
)
from app.services.waitlist_cache import (
    get_cached_waiting_count,
    get_waiting_count_version,
    invalidate_waiting_count,
    set_cached_waiting_count,
)
from app.services.waitlist_promotion import WaitlistPromotionService, waitlist_promotion_service

logger = logging.getLogger(__name__)


class WaitlistService:
    def __init__(self, promotion: WaitlistPromotionService, notifier: NotificationDispatcher):
        self.promotion = promotion
        self.notifier = notifier

    def _rank(self, db: Session, entry: WaitlistEntry) -> Optional[int]:
        if entry.status != WaitlistStatus.WAITING:
            return None
        return 1 + waitlist_repository.count_waiting_ahead(
            db, occurrence_id=entry.occurrence_id, queue_position=entry.queue_position
        )

    async def join_waitlist(
        self,
        db: Session,
        occurrence_id: int,
        member_id: int,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Tuple[WaitlistEntry, int]:
        """
        Añade al miembro al final de la lista de espera de una ocurrencia llena.

        Returns:
            Tupla (entrada creada, posición visible)

        Raises:
            AlreadyBookedError: El miembro ya tiene una reserva activa
            AlreadyWaitlistedError: El miembro ya está en la lista (waiting/notified)
            ClassNotFullError: Hay plazas disponibles para el miembro
            ClassCancelledError: La ocurrencia está cancelada
            ClassAlreadyStartedError: La clase ya ha comenzado
        """
        now = ensure_utc(now) if now else utc_now()

        # Las ofertas vencidas liberan plazas antes de decidir si la clase está llena
        await self.promotion.expire_and_promote_if_needed(
            db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
        )

        try:
            entry = self._insert_entry(db, occurrence_id, member_id, now)
        except IntegrityError:
            db.rollback()
            # Re-leer y traducir; un único reintento si fue una colisión de posición
            if waitlist_repository.get_active_entry(db, occurrence_id=occurrence_id, member_id=member_id):
                raise AlreadyWaitlistedError()
            logger.info(f"Colisión de posición en la lista de la ocurrencia {occurrence_id}, reintentando")
            try:
                entry = self._insert_entry(db, occurrence_id, member_id, now)
            except IntegrityError as e:
                db.rollback()
                if waitlist_repository.get_active_entry(db, occurrence_id=occurrence_id, member_id=member_id):
                    raise AlreadyWaitlistedError()
                raise ConcurrencyConflictError() from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error al unir al miembro {member_id} a la ocurrencia {occurrence_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

        entry_id = entry.id
        rank = self._rank(db, entry)
        logger.info(
            f"Miembro {member_id} unido a la lista de espera de la ocurrencia {occurrence_id} "
            f"(posición {entry.queue_position}, rank {rank})"
        )
        await invalidate_waiting_count(redis_client, occurrence_id)

        occurrence = class_occurrence_repository.get(db, occurrence_id)
        title, message = notification_messages.waitlist_joined(occurrence, rank)
        await notify_safely(
            self.notifier,
            db,
            member_id=member_id,
            title=title,
            message=message,
            notification_type=MemberNotificationType.WAITLIST_JOINED,
            related_id=occurrence_id,
            channels=(NotificationChannel.IN_APP, NotificationChannel.EMAIL),
            background_tasks=background_tasks,
        )
        return waitlist_repository.get(db, entry_id), rank

    def _insert_entry(self, db: Session, occurrence_id: int, member_id: int, now: datetime) -> WaitlistEntry:
        occurrence = class_occurrence_repository.get_for_update(db, occurrence_id=occurrence_id)
        if not occurrence:
            db.rollback()
            raise OccurrenceNotFoundError()
        if occurrence.is_cancelled:
            db.rollback()
            raise ClassCancelledError()
        if not is_occurrence_in_future(
            occurrence.class_date, occurrence.start_time, get_settings().GYM_TIMEZONE, now=now
        ):
            db.rollback()
            raise ClassAlreadyStartedError()
        if booking_repository.get_active_booking(db, occurrence_id=occurrence_id, member_id=member_id):
            db.rollback()
            raise AlreadyBookedError()
        if waitlist_repository.get_active_entry(db, occurrence_id=occurrence_id, member_id=member_id):
            db.rollback()
            raise AlreadyWaitlistedError()
        if capacity_service.available_seats(db, occurrence, now, member_id=member_id) > 0:
            db.rollback()
            raise ClassNotFullError()

        position = waitlist_repository.get_max_position(db, occurrence_id=occurrence_id) + 1
        entry = waitlist_repository.create(db, obj_in={
            "occurrence_id": occurrence_id,
            "member_id": member_id,
            "queue_position": position,
            "status": WaitlistStatus.WAITING,
            "joined_at": now,
        })
        db.commit()
        return entry

    async def leave_waitlist(
        self,
        db: Session,
        entry_id: int,
        member_id: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> WaitlistEntry:
        """
        Retira una entrada (``removed``). Es idempotente: una entrada ya terminal
        se devuelve sin cambios. Rechazar una oferta (entrada ``notified``)
        dispara una ronda de promoción.

        Raises:
            WaitlistEntryNotFoundError: La entrada no existe o no es del miembro
        """
        now = ensure_utc(now) if now else utc_now()
        entry = waitlist_repository.get(db, entry_id)
        if not entry or (member_id is not None and entry.member_id != member_id):
            raise WaitlistEntryNotFoundError()

        if entry.status not in NON_TERMINAL_WAITLIST_STATUSES:
            logger.debug(f"Entrada {entry_id} ya terminal ({entry.status.value}); nada que hacer")
            return entry

        was_notified = entry.status == WaitlistStatus.NOTIFIED
        occurrence_id = entry.occurrence_id
        try:
            changed = waitlist_repository.transition(
                db,
                entry_id=entry_id,
                from_statuses=NON_TERMINAL_WAITLIST_STATUSES,
                to_status=WaitlistStatus.REMOVED,
                resolved_at=now,
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error al retirar la entrada {entry_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

        if changed:
            logger.info(f"Entrada {entry_id} retirada de la lista de la ocurrencia {occurrence_id}")
            await invalidate_waiting_count(redis_client, occurrence_id)
            if was_notified:
                await self.promotion.process_waitlist(
                    db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
                )

        return waitlist_repository.get(db, entry_id)

    async def get_status(
        self,
        db: Session,
        occurrence_id: int,
        member_id: int,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Optional[WaitlistStatusResponse]:
        """
        Entrada no terminal del miembro con su posición visible, o None.

        Una oferta vencida nunca se muestra como vigente: antes de leer se
        barren las ofertas vencidas de la ocurrencia.
        """
        now = ensure_utc(now) if now else utc_now()
        if not class_occurrence_repository.exists(db, occurrence_id):
            raise OccurrenceNotFoundError()
        await self.promotion.expire_and_promote_if_needed(
            db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
        )
        entry = waitlist_repository.get_active_entry(db, occurrence_id=occurrence_id, member_id=member_id)
        if not entry:
            return None
        return WaitlistStatusResponse(
            entry_id=entry.id,
            occurrence_id=occurrence_id,
            status=entry.status,
            rank=self._rank(db, entry),
            offer_expires_at=ensure_utc(entry.offer_expires_at),
        )

    async def get_waiting_count(
        self, db: Session, occurrence_id: int, *, redis_client: Optional[Redis] = None
    ) -> int:
        """
        Número de entradas en estado ``waiting`` (las notificadas no cuentan).

        La versión de la caché se lee antes que la base de datos: si una
        mutación la invalida entre medias, el valor guardado queda obsoleto
        y la siguiente lectura lo ignora.
        """
        cached = await get_cached_waiting_count(redis_client, occurrence_id)
        if cached is not None:
            return cached
        version = await get_waiting_count_version(redis_client, occurrence_id)
        if not class_occurrence_repository.exists(db, occurrence_id):
            raise OccurrenceNotFoundError()
        count = waitlist_repository.count_waiting(db, occurrence_id=occurrence_id)
        await set_cached_waiting_count(redis_client, occurrence_id, count, version)
        return count

    def list_entries(
        self, db: Session, occurrence_id: int, *, skip: int = 0, limit: int = 100
    ) -> List[WaitlistEntry]:
        """Todas las entradas de la ocurrencia ordenadas por posición (vista de administración)"""
        if not class_occurrence_repository.exists(db, occurrence_id):
            raise OccurrenceNotFoundError()
        return waitlist_repository.get_by_occurrence(db, occurrence_id=occurrence_id, skip=skip, limit=limit)


waitlist_service = WaitlistService(waitlist_promotion_service, notification_dispatcher)
