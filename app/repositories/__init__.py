# Inicializador del paquete repositories
from app.repositories.base import BaseRepository
from app.repositories.schedule import class_schedule_repository, class_occurrence_repository
from app.repositories.booking import booking_repository
from app.repositories.waitlist import waitlist_repository
from app.repositories.notification import member_notification_repository
