from typing import List, Optional
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.waitlist import WaitlistEntry, WaitlistStatus, NON_TERMINAL_WAITLIST_STATUSES
from app.repositories.base import BaseRepository
from app.schemas.waitlist import WaitlistEntry as WaitlistEntrySchema


class WaitlistRepository(BaseRepository[WaitlistEntry, WaitlistEntrySchema, WaitlistEntrySchema]):
    def get_active_entry(
        self, db: Session, *, occurrence_id: int, member_id: int
    ) -> Optional[WaitlistEntry]:
        """Entrada no terminal (waiting/notified) del miembro para la ocurrencia"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.member_id == member_id,
            WaitlistEntry.status.in_(NON_TERMINAL_WAITLIST_STATUSES)
        ).first()

    def get_latest_entry(
        self, db: Session, *, occurrence_id: int, member_id: int
    ) -> Optional[WaitlistEntry]:
        """Última entrada del miembro para la ocurrencia, en cualquier estado"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.member_id == member_id
        ).order_by(WaitlistEntry.queue_position.desc()).first()

    def get_max_position(self, db: Session, *, occurrence_id: int) -> int:
        """Mayor posición asignada alguna vez en la ocurrencia (0 si no hay entradas)"""
        value = db.query(func.max(WaitlistEntry.queue_position)).filter(
            WaitlistEntry.occurrence_id == occurrence_id
        ).scalar()
        return value or 0

    def count_waiting(self, db: Session, *, occurrence_id: int) -> int:
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.status == WaitlistStatus.WAITING
        ).count()

    def count_waiting_ahead(self, db: Session, *, occurrence_id: int, queue_position: int) -> int:
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.status == WaitlistStatus.WAITING,
            WaitlistEntry.queue_position < queue_position
        ).count()

    def count_live_offers(
        self, db: Session, *, occurrence_id: int, now: datetime, exclude_member_id: Optional[int] = None
    ) -> int:
        """Ofertas notificadas cuyo plazo sigue abierto (offer_expires_at > now)"""
        query = db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.offer_expires_at > now
        )
        if exclude_member_id is not None:
            query = query.filter(WaitlistEntry.member_id != exclude_member_id)
        return query.count()

    def get_head_waiting(self, db: Session, *, occurrence_id: int) -> Optional[WaitlistEntry]:
        """Entrada en espera con la menor posición"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.status == WaitlistStatus.WAITING
        ).order_by(WaitlistEntry.queue_position).with_for_update(skip_locked=True).first()

    def mark_notified_if_waiting(
        self, db: Session, *, entry_id: int, notified_at: datetime, offer_expires_at: datetime
    ) -> bool:
        """Transición condicional waiting -> notified; False si otro proceso la tomó antes"""
        updated = db.query(WaitlistEntry).filter(
            WaitlistEntry.id == entry_id,
            WaitlistEntry.status == WaitlistStatus.WAITING
        ).update(
            {
                WaitlistEntry.status: WaitlistStatus.NOTIFIED,
                WaitlistEntry.notified_at: notified_at,
                WaitlistEntry.offer_expires_at: offer_expires_at,
            },
            synchronize_session=False
        )
        return updated == 1

    def transition(
        self,
        db: Session,
        *,
        entry_id: int,
        from_statuses,
        to_status: WaitlistStatus,
        resolved_at: datetime
    ) -> bool:
        """Transición condicional desde cualquiera de ``from_statuses``"""
        updated = db.query(WaitlistEntry).filter(
            WaitlistEntry.id == entry_id,
            WaitlistEntry.status.in_(tuple(from_statuses))
        ).update(
            {WaitlistEntry.status: to_status, WaitlistEntry.resolved_at: resolved_at},
            synchronize_session=False
        )
        return updated == 1

    def expire_elapsed_offers(
        self, db: Session, *, now: datetime, occurrence_id: Optional[int] = None
    ) -> int:
        """Marcar como expired las ofertas con offer_expires_at <= now"""
        query = db.query(WaitlistEntry).filter(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.offer_expires_at <= now
        )
        if occurrence_id is not None:
            query = query.filter(WaitlistEntry.occurrence_id == occurrence_id)
        return query.update(
            {WaitlistEntry.status: WaitlistStatus.EXPIRED, WaitlistEntry.resolved_at: now},
            synchronize_session=False
        )

    def has_elapsed_offers(self, db: Session, *, occurrence_id: int, now: datetime) -> bool:
        query = db.query(WaitlistEntry.id).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.offer_expires_at <= now
        )
        return db.query(query.exists()).scalar()

    def get_occurrence_ids_with_elapsed_offers(self, db: Session, *, now: datetime) -> List[int]:
        rows = db.query(WaitlistEntry.occurrence_id).filter(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.offer_expires_at <= now
        ).distinct().all()
        return [row[0] for row in rows]

    def remove_active_for_occurrence(self, db: Session, *, occurrence_id: int, now: datetime) -> int:
        """Cerrar como removed todas las entradas no terminales de la ocurrencia"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id,
            WaitlistEntry.status.in_(NON_TERMINAL_WAITLIST_STATUSES)
        ).update(
            {WaitlistEntry.status: WaitlistStatus.REMOVED, WaitlistEntry.resolved_at: now},
            synchronize_session=False
        )

    def get_by_occurrence(
        self, db: Session, *, occurrence_id: int, skip: int = 0, limit: int = 100
    ) -> List[WaitlistEntry]:
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.occurrence_id == occurrence_id
        ).order_by(WaitlistEntry.queue_position).offset(skip).limit(limit).all()


waitlist_repository = WaitlistRepository(WaitlistEntry)
