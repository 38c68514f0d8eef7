# Importar todos los modelos para que Alembic y create_all los detecten
from app.db.base_class import Base  # noqa
from app.models.schedule import ClassSchedule, ClassOccurrence  # noqa
from app.models.booking import Booking  # noqa
from app.models.waitlist import WaitlistEntry  # noqa
from app.models.notification import MemberNotification  # noqa
