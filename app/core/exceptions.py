"""
Errores de dominio del motor de reservas.

Cada error lleva un código estable (para clientes), un mensaje legible y el
status HTTP al que se traduce en la API. Los servicios los lanzan; el handler
registrado en ``main.py`` los convierte en respuestas JSON.
"""
from typing import Optional


class BookingDomainError(Exception):
    """Base de los errores de dominio"""
    code = "booking_error"
    status_code = 400
    default_message = "No se pudo completar la operación"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- Validación (corregibles por el cliente, sin reintento) ---

class AlreadyBookedError(BookingDomainError):
    """Raised when the member already holds a confirmed or pending booking."""
    code = "already_booked"
    status_code = 409
    default_message = "Ya tienes una reserva para esta clase"


class AlreadyWaitlistedError(BookingDomainError):
    """Raised when the member already has a waiting or notified entry."""
    code = "already_waitlisted"
    status_code = 409
    default_message = "Ya estás en la lista de espera de esta clase"


class ClassFullError(BookingDomainError):
    code = "class_full"
    status_code = 409
    default_message = "La clase está llena"


class OfferExpiredError(BookingDomainError):
    """Raised when a waitlist offer is used at or after its deadline."""
    code = "offer_expired"
    status_code = 409
    default_message = "El plazo para aceptar la plaza ofrecida ha vencido"


class ClassNotFullError(BookingDomainError):
    code = "class_not_full"
    status_code = 400
    default_message = "La clase tiene plazas disponibles; resérvala directamente"


class ClassCancelledError(BookingDomainError):
    code = "class_cancelled"
    status_code = 400
    default_message = "La clase ha sido cancelada"


class ClassAlreadyStartedError(BookingDomainError):
    code = "class_already_started"
    status_code = 400
    default_message = "No se puede reservar una clase que ya ha comenzado"


class TimeConflictError(BookingDomainError):
    code = "time_conflict"
    status_code = 409
    default_message = "Ya tienes otra clase reservada en ese horario"


class InvalidOccurrenceDateError(BookingDomainError):
    code = "invalid_occurrence_date"
    status_code = 400
    default_message = "La fecha no corresponde al día de la semana del horario"


# --- No encontrados ---

class NotFoundError(BookingDomainError):
    code = "not_found"
    status_code = 404
    default_message = "Recurso no encontrado"


class ScheduleNotFoundError(NotFoundError):
    code = "schedule_not_found"
    default_message = "Horario de clase no encontrado"


class OccurrenceNotFoundError(NotFoundError):
    code = "occurrence_not_found"
    default_message = "Clase no encontrada"


class BookingNotFoundError(NotFoundError):
    code = "booking_not_found"
    default_message = "Reserva no encontrada"


class WaitlistEntryNotFoundError(NotFoundError):
    code = "waitlist_entry_not_found"
    default_message = "Entrada de lista de espera no encontrada"


class NotificationNotFoundError(NotFoundError):
    code = "notification_not_found"
    default_message = "Notificación no encontrada"


# --- Infraestructura / concurrencia ---

class DataUnavailableError(BookingDomainError):
    """Raised when occurrence or booking state cannot be read; callers must treat it as cannot book."""
    code = "data_unavailable"
    status_code = 503
    default_message = "No se pudo consultar la disponibilidad. Inténtalo de nuevo en unos segundos"
    retryable = True


class ConcurrencyConflictError(BookingDomainError):
    code = "concurrency_conflict"
    status_code = 409
    default_message = "Otra operación modificó esta clase al mismo tiempo. Inténtalo de nuevo"
    retryable = True
