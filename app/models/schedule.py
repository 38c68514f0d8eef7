from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Time, DateTime, Text, CheckConstraint, Date
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
import sqlalchemy as sa

from app.db.base_class import Base


class DayOfWeek(int, enum.Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class ClassSchedule(Base):
    """Franja semanal recurrente de una clase (p. ej. Yoga, lunes 18:00-19:00)"""
    __tablename__ = "class_schedule"

    id = Column(Integer, primary_key=True, index=True)
    class_name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    instructor_name = Column(String(120), nullable=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relaciones
    occurrences = relationship("ClassOccurrence", back_populates="schedule")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6',
                        name='check_schedule_valid_day_of_week'),
        CheckConstraint('max_capacity > 0', name='check_schedule_positive_capacity'),
        CheckConstraint('end_time > start_time', name='check_schedule_time_range'),
    )


class ClassOccurrence(Base):
    """
    Instancia concreta de una clase: (horario, fecha).

    Guarda un contador de reservas confirmadas que solo se modifica con
    escrituras condicionales; las restricciones CHECK impiden superar el aforo.
    """
    __tablename__ = "class_occurrence"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedule.id"), nullable=False, index=True)
    class_date = Column(Date, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    capacity = Column(Integer, nullable=False)
    confirmed_count = Column(Integer, nullable=False, default=0, server_default="0")
    is_cancelled = Column(Boolean, nullable=False, default=False, server_default=sa.false())
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Relaciones
    schedule = relationship("ClassSchedule", back_populates="occurrences")
    bookings = relationship("Booking", back_populates="occurrence")
    waitlist_entries = relationship("WaitlistEntry", back_populates="occurrence")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        sa.UniqueConstraint('schedule_id', 'class_date', name='uq_class_occurrence_schedule_date'),
        CheckConstraint('capacity > 0', name='check_occurrence_positive_capacity'),
        CheckConstraint('confirmed_count >= 0', name='check_occurrence_confirmed_non_negative'),
        CheckConstraint('confirmed_count <= capacity', name='check_occurrence_confirmed_within_capacity'),
    )
