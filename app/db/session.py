from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from contextlib import contextmanager
import logging

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings_instance = get_settings()

db_url = str(settings_instance.SQLALCHEMY_DATABASE_URI or settings_instance.DATABASE_URL)

# Ocultar credenciales en el log
display_url = db_url
if '@' in display_url:
    scheme = display_url.split('://')[0]
    display_url = f"{scheme}://***@{display_url.split('@', 1)[1]}"

logger.info(f"URL utilizada para crear el engine: {display_url}")


def build_engine(url: str):
    """Crea el engine; SQLite (desarrollo y tests) no admite las opciones de pool de PostgreSQL."""
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=180,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000",
        },
        execution_options={
            # Los bloqueos de fila y las escrituras condicionales garantizan la capacidad
            "isolation_level": "READ COMMITTED",
        }
    )


engine = build_engine(db_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependencia para obtener la sesión de DB
def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Error de SQLAlchemy en la sesión: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_for_jobs():
    """
    Context manager para background jobs (APScheduler).

    Para endpoints FastAPI usar get_db() con Depends().
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Error SQLAlchemy en background job: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
