"""
Utilidades para el manejo de zonas horarias.

Las franjas de clase (fecha + hora) se definen en hora local del gimnasio; los
timestamps internos (reservas, ofertas de lista de espera) se guardan en UTC.
"""
from datetime import date, datetime, time, timezone
from typing import Optional
import pytz


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Devuelve ``dt`` como datetime aware en UTC.

    Algunos motores (SQLite) devuelven las columnas DateTime(timezone=True) sin
    zona; si es naive, asumimos que es UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def convert_naive_to_gym_timezone(naive_dt: datetime, gym_timezone: str) -> datetime:
    """
    Interpreta un datetime naive como hora local del gimnasio.

    Args:
        naive_dt: Datetime naive que representa la hora local del gimnasio
        gym_timezone: Zona horaria del gimnasio (ej: 'America/Mexico_City')

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    if naive_dt.tzinfo is not None:
        raise ValueError("El datetime debe ser naive (sin timezone)")

    tz = pytz.timezone(gym_timezone)
    return tz.localize(naive_dt)


def occurrence_start_utc(class_date: date, start_time: time, gym_timezone: str) -> datetime:
    """Inicio de una ocurrencia (fecha + hora local del gimnasio) convertido a UTC"""
    local_start = convert_naive_to_gym_timezone(datetime.combine(class_date, start_time), gym_timezone)
    return local_start.astimezone(timezone.utc)


def is_occurrence_in_future(
    class_date: date, start_time: time, gym_timezone: str, now: Optional[datetime] = None
) -> bool:
    """Verifica si la ocurrencia aún no ha empezado según la zona horaria del gimnasio"""
    current = ensure_utc(now) if now is not None else utc_now()
    return occurrence_start_utc(class_date, start_time, gym_timezone) > current


def convert_utc_to_local(utc_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime UTC a hora local del gimnasio.

    Args:
        utc_dt: Datetime en UTC (si es naive se asume UTC)
        gym_timezone: Zona horaria del gimnasio

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    tz = pytz.timezone(gym_timezone)
    return ensure_utc(utc_dt).astimezone(tz)


def format_local_datetime(utc_dt: datetime, gym_timezone: str) -> str:
    """Fecha y hora legibles en la zona del gimnasio, p. ej. '20/10/2026 18:00'"""
    return convert_utc_to_local(utc_dt, gym_timezone).strftime("%d/%m/%Y %H:%M")
