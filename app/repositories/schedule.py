from typing import List, Optional
from datetime import date

from sqlalchemy.orm import Session

from app.models.schedule import ClassSchedule, ClassOccurrence
from app.repositories.base import BaseRepository
from app.schemas.schedule import ClassScheduleCreate


class ClassScheduleRepository(BaseRepository[ClassSchedule, ClassScheduleCreate, ClassScheduleCreate]):
    def get_active_schedules(
        self, db: Session, *, day_of_week: Optional[int] = None, skip: int = 0, limit: int = 100
    ) -> List[ClassSchedule]:
        """Obtener los horarios activos, opcionalmente de un día de la semana"""
        query = db.query(ClassSchedule).filter(ClassSchedule.is_active.is_(True))
        if day_of_week is not None:
            query = query.filter(ClassSchedule.day_of_week == day_of_week)
        return query.order_by(
            ClassSchedule.day_of_week, ClassSchedule.start_time
        ).offset(skip).limit(limit).all()


class ClassOccurrenceRepository(BaseRepository[ClassOccurrence, ClassScheduleCreate, ClassScheduleCreate]):
    def get_by_schedule_and_date(
        self, db: Session, *, schedule_id: int, class_date: date
    ) -> Optional[ClassOccurrence]:
        return db.query(ClassOccurrence).filter(
            ClassOccurrence.schedule_id == schedule_id,
            ClassOccurrence.class_date == class_date
        ).first()

    def get_for_update(self, db: Session, *, occurrence_id: int) -> Optional[ClassOccurrence]:
        """
        Obtener la ocurrencia bloqueando su fila (SELECT ... FOR UPDATE).

        Serializa reservas, altas en lista de espera y promociones de una misma
        ocurrencia hasta el fin de la transacción.
        """
        return db.query(ClassOccurrence).filter(
            ClassOccurrence.id == occurrence_id
        ).with_for_update().populate_existing().first()

    def try_reserve_seat(self, db: Session, *, occurrence_id: int, held_seats: int = 0) -> bool:
        """
        Incrementar el contador de confirmadas solo si queda una plaza libre
        después de respetar las ``held_seats`` ofrecidas a otros miembros.

        Returns:
            True si se reservó la plaza, False si la clase está llena
        """
        updated = db.query(ClassOccurrence).filter(
            ClassOccurrence.id == occurrence_id,
            ClassOccurrence.is_cancelled.is_(False),
            ClassOccurrence.confirmed_count + held_seats < ClassOccurrence.capacity
        ).update(
            {ClassOccurrence.confirmed_count: ClassOccurrence.confirmed_count + 1},
            synchronize_session=False
        )
        return updated == 1

    def release_seat(self, db: Session, *, occurrence_id: int) -> bool:
        """Decrementar el contador de confirmadas sin bajar de cero"""
        updated = db.query(ClassOccurrence).filter(
            ClassOccurrence.id == occurrence_id,
            ClassOccurrence.confirmed_count > 0
        ).update(
            {ClassOccurrence.confirmed_count: ClassOccurrence.confirmed_count - 1},
            synchronize_session=False
        )
        return updated == 1


class_schedule_repository = ClassScheduleRepository(ClassSchedule)
class_occurrence_repository = ClassOccurrenceRepository(ClassOccurrence)
