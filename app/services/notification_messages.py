"""Textos de las notificaciones que envía el motor de reservas."""

from datetime import datetime
from typing import Optional, Tuple

from app.core.config import get_settings
from app.core.timezone_utils import format_local_datetime
from app.models.schedule import ClassOccurrence


def describe_occurrence(occurrence: ClassOccurrence) -> str:
    class_name = occurrence.schedule.class_name if occurrence.schedule else "la clase"
    return (
        f"{class_name} del {occurrence.class_date.strftime('%d/%m/%Y')} "
        f"a las {occurrence.start_time.strftime('%H:%M')}"
    )


def waitlist_joined(occurrence: ClassOccurrence, rank: int) -> Tuple[str, str]:
    return (
        "Te has unido a la lista de espera",
        f"Estás en la posición #{rank} de la lista de espera para {describe_occurrence(occurrence)}. "
        "Te avisaremos si se libera una plaza."
    )


def spot_available(occurrence: ClassOccurrence, offer_expires_at: datetime) -> Tuple[str, str]:
    deadline = format_local_datetime(offer_expires_at, get_settings().GYM_TIMEZONE)
    return (
        "¡Plaza disponible!",
        f"Se ha liberado una plaza en {describe_occurrence(occurrence)}. "
        f"Tienes hasta el {deadline} para reservarla."
    )


def booking_confirmed(occurrence: ClassOccurrence) -> Tuple[str, str]:
    return (
        "Reserva confirmada",
        f"Tu reserva para {describe_occurrence(occurrence)} está confirmada."
    )


def class_cancelled(occurrence: ClassOccurrence, reason: Optional[str] = None) -> Tuple[str, str]:
    message = f"La clase {describe_occurrence(occurrence)} ha sido cancelada."
    if reason:
        message += f" Motivo: {reason}"
    return "Clase cancelada", message
