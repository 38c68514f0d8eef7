"""
Puerto de notificaciones del motor de reservas.

Los servicios de reservas y lista de espera solo conocen ``NotificationDispatcher``:
piden el envío y siguen adelante sea cual sea el resultado. El adaptador por
defecto guarda la notificación in-app y envía push/email con OneSignal.

Dentro de una petición HTTP el push y el email se encolan en los
``BackgroundTasks`` de FastAPI y salen después de enviar la respuesta; solo
la fila in-app se escribe antes de responder.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.repositories.notification import member_notification_repository
from app.services.async_notification_service import AsyncOneSignalService, async_notification_service

logger = logging.getLogger(__name__)


class NotificationChannel(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


DEFAULT_CHANNELS = (NotificationChannel.IN_APP, NotificationChannel.EMAIL, NotificationChannel.PUSH)


@dataclass
class DispatchResult:
    """Resultado por canal de un envío; es solo informativo"""
    member_id: int
    delivered: Dict[str, bool] = field(default_factory=dict)
    # Canales encolados en segundo plano; su resultado solo queda en el log
    queued: List[str] = field(default_factory=list)

    @property
    def succeeded_channels(self):
        return [channel for channel, ok in self.delivered.items() if ok]

    @property
    def any_delivered(self) -> bool:
        return any(self.delivered.values())

    @property
    def any_accepted(self) -> bool:
        return self.any_delivered or bool(self.queued)


class NotificationDispatcher(ABC):
    @abstractmethod
    async def dispatch(
        self,
        db: Session,
        *,
        member_id: int,
        title: str,
        message: str,
        notification_type: str,
        related_id: Optional[int] = None,
        channels: Sequence[NotificationChannel] = DEFAULT_CHANNELS,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> DispatchResult:
        """
        Entrega best-effort; nunca lanza excepciones hacia el llamador.

        Con ``background_tasks`` los canales externos se encolan y la llamada
        vuelve sin esperar a la red.
        """


class MemberNotificationDispatcher(NotificationDispatcher):
    """
    Adaptador por defecto:
    - in_app: fila ``MemberNotification`` en su propia transacción corta
    - push / email: REST API de OneSignal (external_user_id = ID del miembro)

    Debe invocarse después del commit de la operación principal para que un
    fallo aquí nunca la deshaga.
    """

    def __init__(self, onesignal: AsyncOneSignalService):
        self.onesignal = onesignal

    async def dispatch(
        self,
        db: Session,
        *,
        member_id: int,
        title: str,
        message: str,
        notification_type: str,
        related_id: Optional[int] = None,
        channels: Sequence[NotificationChannel] = DEFAULT_CHANNELS,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> DispatchResult:
        result = DispatchResult(member_id=member_id)

        if NotificationChannel.IN_APP in channels:
            result.delivered[NotificationChannel.IN_APP.value] = self._store_in_app(
                db, member_id=member_id, title=title, message=message,
                notification_type=notification_type, related_id=related_id
            )

        remote = [c for c in channels if c != NotificationChannel.IN_APP]
        if remote:
            if background_tasks is not None:
                # Enviar en segundo plano para no bloquear la respuesta
                background_tasks.add_task(
                    self.send_remote,
                    member_id=member_id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    related_id=related_id,
                    channels=remote,
                )
                result.queued = [c.value for c in remote]
            else:
                result.delivered.update(await self.send_remote(
                    member_id=member_id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    related_id=related_id,
                    channels=remote,
                ))

        failed = [c for c, ok in result.delivered.items() if not ok]
        if failed:
            logger.warning(
                f"Notificación '{notification_type}' al miembro {member_id} no entregada por: {', '.join(failed)}"
            )
        elif result.queued:
            logger.info(
                f"Notificación '{notification_type}' al miembro {member_id}: "
                f"{', '.join(result.queued)} en segundo plano"
            )
        else:
            logger.info(f"Notificación '{notification_type}' entregada al miembro {member_id}")
        return result

    async def send_remote(
        self,
        *,
        member_id: int,
        title: str,
        message: str,
        notification_type: str,
        related_id: Optional[int],
        channels: Sequence[NotificationChannel]
    ) -> Dict[str, bool]:
        """Push y email con OneSignal; el cliente nunca lanza, devuelve {"success": bool}"""
        delivered = {}
        for channel in channels:
            if channel == NotificationChannel.PUSH:
                response = await self.onesignal.send_to_users(
                    [str(member_id)], title, message,
                    data={"type": notification_type, "related_id": related_id}
                )
                delivered[channel.value] = bool(response.get("success"))
            elif channel == NotificationChannel.EMAIL:
                response = await self.onesignal.send_email_to_users([str(member_id)], title, message)
                delivered[channel.value] = bool(response.get("success"))

        failed = [c for c, ok in delivered.items() if not ok]
        if failed:
            logger.warning(f"OneSignal no entregó '{notification_type}' al miembro {member_id} por: {', '.join(failed)}")
        return delivered

    def _store_in_app(
        self,
        db: Session,
        *,
        member_id: int,
        title: str,
        message: str,
        notification_type: str,
        related_id: Optional[int]
    ) -> bool:
        try:
            member_notification_repository.create(db, obj_in={
                "member_id": member_id,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "related_id": related_id,
                "is_read": False,
            })
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error guardando notificación in-app para miembro {member_id}: {e}", exc_info=True)
            return False


notification_dispatcher = MemberNotificationDispatcher(async_notification_service)


async def notify_safely(notifier: NotificationDispatcher, db: Session, **kwargs) -> Optional[DispatchResult]:
    """
    Envía una notificación sin propagar errores: la operación que la origina
    ya está confirmada y no debe fallar por un problema de entrega.
    """
    try:
        return await notifier.dispatch(db, **kwargs)
    except Exception as e:
        logger.error(
            f"Error enviando notificación '{kwargs.get('notification_type')}' "
            f"al miembro {kwargs.get('member_id')}: {e}",
            exc_info=True
        )
        return None
