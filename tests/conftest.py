import importlib
import os

# Configuración de entorno ANTES de importar la aplicación
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_REDIS"] = "False"
os.environ["ENABLE_SCHEDULER"] = "False"
os.environ["RATE_LIMIT_ENABLED"] = "False"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["GYM_TIMEZONE"] = "UTC"
os.environ["ONESIGNAL_APP_ID"] = ""
os.environ["ONESIGNAL_REST_API_KEY"] = ""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.redis_client import get_redis_client
from app.db.session import get_db
from app.models.schedule import ClassOccurrence, ClassSchedule
from app.services.booking import BookingService
from app.services.class_schedule import ClassScheduleService
from app.services.notification_dispatcher import (
    DEFAULT_CHANNELS,
    DispatchResult,
    NotificationChannel,
    NotificationDispatcher,
)
from app.services.waitlist import WaitlistService
from app.services.waitlist_promotion import WaitlistPromotionService
from main import app

# Instante fijo para los tests de servicios; las clases se crean días después
NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)

ADMIN_HEADERS = {"X-API-Key": "test-admin-key"}


def member_headers(member_id: int) -> dict:
    return {"X-Member-ID": str(member_id)}


class RecordingNotifier(NotificationDispatcher):
    """Dispatcher de pruebas: guarda cada envío y puede simular fallos."""

    def __init__(self, fail: bool = False, failing_channels: Sequence[NotificationChannel] = ()):
        self.calls = []
        self.fail = fail
        self.failing_channels = set(failing_channels)

    async def dispatch(
        self,
        db,
        *,
        member_id: int,
        title: str,
        message: str,
        notification_type: str,
        related_id: Optional[int] = None,
        channels: Sequence[NotificationChannel] = DEFAULT_CHANNELS,
        background_tasks=None
    ) -> DispatchResult:
        if self.fail:
            raise RuntimeError("proveedor de notificaciones caído")
        self.calls.append({
            "member_id": member_id,
            "title": title,
            "message": message,
            "notification_type": notification_type,
            "related_id": related_id,
            "channels": tuple(channels),
            "background": background_tasks is not None,
        })
        return DispatchResult(
            member_id=member_id,
            delivered={c.value: c not in self.failing_channels for c in channels},
        )

    def calls_of_type(self, notification_type: str):
        return [c for c in self.calls if c["notification_type"] == notification_type]


class InMemoryRedis:
    """Doble de redis.asyncio con los comandos que usa la caché de la lista de espera."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def mget(self, *keys):
        return [self.store.get(key) for key in keys]

    async def set(self, key, value, ex=None):
        self.store[key] = str(value)
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        return key in self.store

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


@pytest.fixture(scope="function")
def db_engine():
    # Una base en memoria por test: los servicios hacen commit
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """
    Crea una sesión de base de datos fresca para cada test y la cierra al finalizar.
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def promotion_service(notifier):
    return WaitlistPromotionService(notifier)


@pytest.fixture
def waitlist_svc(promotion_service, notifier):
    return WaitlistService(promotion_service, notifier)


@pytest.fixture
def booking_svc(promotion_service, notifier):
    return BookingService(promotion_service, notifier)


@pytest.fixture
def schedule_svc(promotion_service, notifier):
    return ClassScheduleService(promotion_service, notifier)


@pytest.fixture
def make_occurrence(db):
    """
    Fábrica de ocurrencias: crea un horario semanal y su ocurrencia en una
    fecha futura respecto a ``NOW`` (o la fecha indicada).
    """
    def _make(
        capacity: int = 2,
        class_date: Optional[date] = None,
        start: time = time(18, 0),
        end: time = time(19, 0),
        class_name: str = "Yoga",
    ) -> ClassOccurrence:
        class_date = class_date or (NOW.date() + timedelta(days=3))
        schedule = ClassSchedule(
            class_name=class_name,
            day_of_week=class_date.weekday(),
            start_time=start,
            end_time=end,
            max_capacity=capacity,
            is_active=True,
        )
        db.add(schedule)
        db.flush()
        occurrence = ClassOccurrence(
            schedule_id=schedule.id,
            class_date=class_date,
            day_of_week=class_date.weekday(),
            start_time=start,
            end_time=end,
            capacity=capacity,
            confirmed_count=0,
            is_cancelled=False,
        )
        db.add(occurrence)
        db.commit()
        db.refresh(occurrence)
        return occurrence

    return _make


@pytest.fixture
def fill_occurrence(booking_svc):
    """Reserva todas las plazas con miembros 1..capacity"""
    async def _fill(db, occurrence, now=NOW):
        for member_id in range(1, occurrence.capacity + 1):
            await booking_svc.book_class(db, occurrence.id, member_id, now=now)
    return _fill


@pytest.fixture(scope="function")
def client(db, monkeypatch):
    """
    Cliente de prueba con la sesión de test y sin Redis. Los servicios usan
    un dispatcher que solo registra los envíos.
    """
    recorder = RecordingNotifier()
    for module_path, attr in (
        ("app.services.booking", "booking_service"),
        ("app.services.waitlist", "waitlist_service"),
        ("app.services.class_schedule", "class_schedule_service"),
        ("app.services.waitlist_promotion", "waitlist_promotion_service"),
    ):
        module = importlib.import_module(module_path)
        monkeypatch.setattr(getattr(module, attr), "notifier", recorder)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    async def override_get_redis_client():
        yield None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = override_get_redis_client
    with TestClient(app) as c:
        c.notifier = recorder
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_entry(db):
    """Inserta una entrada de lista de espera en el estado indicado"""
    from app.models.waitlist import WaitlistEntry, WaitlistStatus

    def _make(
        occurrence,
        member_id: int,
        position: int,
        status: WaitlistStatus = WaitlistStatus.WAITING,
        offer_expires_at: Optional[datetime] = None,
        joined_at: datetime = NOW,
    ) -> WaitlistEntry:
        entry = WaitlistEntry(
            occurrence_id=occurrence.id,
            member_id=member_id,
            queue_position=position,
            status=status,
            joined_at=joined_at,
            notified_at=joined_at if status == WaitlistStatus.NOTIFIED else None,
            offer_expires_at=offer_expires_at,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    return _make


@pytest.fixture
def capacity_free_seats(db):
    """Plazas libres de una ocurrencia en ``NOW`` para un miembro sin oferta"""
    from app.services.capacity import capacity_service

    def _free(occurrence) -> int:
        db.expire_all()
        return capacity_service.available_seats(db, occurrence, NOW)

    return _free
