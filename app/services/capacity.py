"""
Capacity Checker: cuántas plazas confirmadas tiene una ocurrencia y si está llena.

Solo las reservas ``confirmed`` cuentan para el aforo. Las funciones son de
solo lectura; cualquier fallo al leer el estado se traduce en
``DataUnavailableError`` y el llamador debe tratarlo como "no se puede reservar".
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import DataUnavailableError, OccurrenceNotFoundError
from app.models.schedule import ClassOccurrence
from app.repositories.booking import booking_repository
from app.repositories.schedule import class_occurrence_repository
from app.repositories.waitlist import waitlist_repository

logger = logging.getLogger(__name__)


class CapacityService:
    def _load(self, db: Session, occurrence_id: int) -> ClassOccurrence:
        try:
            occurrence = class_occurrence_repository.get(db, occurrence_id)
        except SQLAlchemyError as e:
            logger.error(f"No se pudo leer la ocurrencia {occurrence_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e
        if not occurrence:
            raise OccurrenceNotFoundError()
        return occurrence

    def confirmed_count(self, db: Session, occurrence_id: int) -> int:
        """Número de reservas confirmadas de la ocurrencia"""
        self._load(db, occurrence_id)
        try:
            return booking_repository.count_confirmed(db, occurrence_id=occurrence_id)
        except SQLAlchemyError as e:
            logger.error(f"No se pudo contar reservas de la ocurrencia {occurrence_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

    def is_full(self, db: Session, occurrence_id: int) -> bool:
        """True si las reservas confirmadas alcanzan el aforo"""
        occurrence = self._load(db, occurrence_id)
        return self.confirmed_count(db, occurrence_id) >= occurrence.capacity

    def held_offers(
        self, db: Session, occurrence_id: int, now: datetime, exclude_member_id: Optional[int] = None
    ) -> int:
        """Plazas retenidas por ofertas de lista de espera aún vigentes"""
        try:
            return waitlist_repository.count_live_offers(
                db, occurrence_id=occurrence_id, now=now, exclude_member_id=exclude_member_id
            )
        except SQLAlchemyError as e:
            logger.error(f"No se pudieron leer ofertas de la ocurrencia {occurrence_id}: {e}", exc_info=True)
            raise DataUnavailableError() from e

    def available_seats(
        self, db: Session, occurrence: ClassOccurrence, now: datetime, member_id: Optional[int] = None
    ) -> int:
        """
        Plazas que puede tomar ``member_id`` ahora mismo.

        Las ofertas vigentes de otros miembros retienen su plaza; la oferta
        propia del miembro no se descuenta.
        """
        confirmed = self.confirmed_count(db, occurrence.id)
        held = self.held_offers(db, occurrence.id, now, exclude_member_id=member_id)
        return max(occurrence.capacity - confirmed - held, 0)


capacity_service = CapacityService()
