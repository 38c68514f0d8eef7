"""
Promotion Process: ofrece las plazas libres de una ocurrencia a la lista de espera.

Cada ronda, bajo el bloqueo de fila de la ocurrencia:
1. marca como ``expired`` las ofertas cuyo plazo venció (intervalo cerrado:
   ``offer_expires_at <= now`` ya está vencida);
2. calcula las plazas libres descontando las ofertas vigentes;
3. pasa a ``notified`` la entrada ``waiting`` de menor posición por cada plaza
   libre, con un plazo de ``WAITLIST_OFFER_HOURS``;
4. confirma la transacción y, después, notifica a cada miembro promovido.

Si la transición de estado falla, la ronda se informa como fallida y la plaza
queda libre hasta el siguiente disparo (cancelación, abandono o barrido).
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import BackgroundTasks
from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import OccurrenceNotFoundError
from app.core.timezone_utils import ensure_utc, is_occurrence_in_future, utc_now
from app.models.notification import MemberNotificationType
from app.repositories.schedule import class_occurrence_repository
from app.repositories.waitlist import waitlist_repository
from app.schemas.waitlist import PromotionSummary
from app.services import notification_messages
from app.services.capacity import capacity_service
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    notification_dispatcher,
    notify_safely,
)
from app.services.waitlist_cache import invalidate_waiting_count

logger = logging.getLogger(__name__)


class WaitlistPromotionService:
    def __init__(self, notifier: NotificationDispatcher):
        self.notifier = notifier

    async def process_waitlist(
        self,
        db: Session,
        occurrence_id: int,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> PromotionSummary:
        """
        Ejecuta una ronda de promoción para la ocurrencia.

        Returns:
            PromotionSummary con los miembros notificados, las ofertas vencidas y
            los canales que tuvieron éxito o quedaron encolados. Es informativo: la fuente de verdad
            son los estados de las entradas.
        """
        now = ensure_utc(now) if now else utc_now()
        settings = get_settings()
        offer_hours = settings.WAITLIST_OFFER_HOURS
        summary = PromotionSummary(occurrence_id=occurrence_id)
        promoted: List[int] = []

        try:
            occurrence = class_occurrence_repository.get_for_update(db, occurrence_id=occurrence_id)
            if not occurrence:
                db.rollback()
                raise OccurrenceNotFoundError()

            summary.expired_count = waitlist_repository.expire_elapsed_offers(
                db, now=now, occurrence_id=occurrence_id
            )

            if occurrence.is_cancelled:
                logger.info(f"Ocurrencia {occurrence_id} cancelada: no se promueve a nadie")
            elif not is_occurrence_in_future(
                occurrence.class_date, occurrence.start_time, settings.GYM_TIMEZONE, now=now
            ):
                logger.info(f"Ocurrencia {occurrence_id} ya comenzada: no se ofrecen plazas")
            else:
                free_seats = capacity_service.available_seats(db, occurrence, now)
                offer_expires_at = now + timedelta(hours=offer_hours)
                while free_seats > 0:
                    head = waitlist_repository.get_head_waiting(db, occurrence_id=occurrence_id)
                    if head is None:
                        break
                    if head.id in promoted:
                        break
                    if waitlist_repository.mark_notified_if_waiting(
                        db, entry_id=head.id, notified_at=now, offer_expires_at=offer_expires_at
                    ):
                        promoted.append(head.id)
                        free_seats -= 1
                    else:
                        # Otra ronda la tomó; volver a leer la cabeza de la cola
                        db.expire(head)
                if promoted:
                    summary.offer_expires_at = offer_expires_at

            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Fallo en la promoción de la ocurrencia {occurrence_id}: {e}", exc_info=True)
            summary.failed = True
            return summary

        if summary.expired_count:
            logger.info(f"{summary.expired_count} ofertas vencidas en la ocurrencia {occurrence_id}")

        if not promoted:
            return summary

        await invalidate_waiting_count(redis_client, occurrence_id)
        summary.notified_count = len(promoted)
        logger.info(f"Promovidas {len(promoted)} entradas en la ocurrencia {occurrence_id}")

        occurrence = class_occurrence_repository.get(db, occurrence_id)
        title, message = notification_messages.spot_available(occurrence, summary.offer_expires_at)
        for entry_id in promoted:
            entry = waitlist_repository.get(db, entry_id)
            result = await notify_safely(
                self.notifier,
                db,
                member_id=entry.member_id,
                title=title,
                message=message,
                notification_type=MemberNotificationType.WAITLIST_SPOT_AVAILABLE,
                related_id=occurrence_id,
                background_tasks=background_tasks,
            )
            if result is None:
                continue
            for channel in result.succeeded_channels:
                summary.channels_succeeded[channel] = summary.channels_succeeded.get(channel, 0) + 1
            for channel in result.queued:
                summary.channels_queued[channel] = summary.channels_queued.get(channel, 0) + 1

        return summary

    async def expire_and_promote_if_needed(
        self,
        db: Session,
        occurrence_id: int,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Optional[PromotionSummary]:
        """Barrido perezoso: solo ejecuta una ronda si hay ofertas vencidas en la ocurrencia"""
        now = ensure_utc(now) if now else utc_now()
        if not waitlist_repository.has_elapsed_offers(db, occurrence_id=occurrence_id, now=now):
            return None
        return await self.process_waitlist(
            db, occurrence_id, now=now, redis_client=redis_client, background_tasks=background_tasks
        )

    async def sweep_expired_offers(
        self,
        db: Session,
        *,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None
    ) -> List[PromotionSummary]:
        """Barrido periódico de todas las ocurrencias con ofertas vencidas"""
        now = ensure_utc(now) if now else utc_now()
        occurrence_ids = waitlist_repository.get_occurrence_ids_with_elapsed_offers(db, now=now)
        # La consulta abre una transacción; liberarla antes de bloquear ocurrencias
        db.rollback()
        summaries = []
        for occurrence_id in occurrence_ids:
            summaries.append(
                await self.process_waitlist(db, occurrence_id, now=now, redis_client=redis_client)
            )
        if summaries:
            logger.info(f"Barrido de ofertas vencidas: {len(summaries)} ocurrencias procesadas")
        return summaries


waitlist_promotion_service = WaitlistPromotionService(notification_dispatcher)
