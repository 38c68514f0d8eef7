import os
from typing import Any, List, Optional, Union
from functools import lru_cache
import logging

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Configurar el logger
logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Permitir campos extra en .env
    )

    # Configuración básica
    API_V1_STR: str = "/api/v1"

    # Información del proyecto
    PROJECT_NAME: str = "GymBooking"
    PROJECT_DESCRIPTION: str = "API de reservas de clases y lista de espera para gimnasios"
    VERSION: str = "0.1.0"

    # Debug mode
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "True").lower() in ("true", "1", "t")

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./gym_booking.db")
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @field_validator("DATABASE_URL", mode="before")
    def ensure_proper_url_format(cls, v: Optional[str], info) -> str:
        """Asegura que DATABASE_URL use el prefijo postgresql:// que espera SQLAlchemy."""
        # No loguear el valor completo por seguridad
        logger.info("DATABASE_URL detectado en configuración")
        if v and v.startswith('postgres://'):
            logger.info("Corrigiendo formato de postgres:// a postgresql://")
            return 'postgresql://' + v[len('postgres://'):]
        return v

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before", check_fields=False)
    def assemble_db_connection(cls, v: Optional[str], info) -> Any:
        """Configura la URI de SQLAlchemy basada en DATABASE_URL.
        Siempre prioriza DATABASE_URL si está presente.
        """
        db_url = info.data.get("DATABASE_URL")
        if db_url:
            logger.info("Configurando SQLALCHEMY_DATABASE_URI basado en DATABASE_URL")
            return db_url
        return v

    # Zona horaria del gimnasio (las clases se definen en hora local)
    GYM_TIMEZONE: str = os.getenv("GYM_TIMEZONE", "UTC")

    # Clave para endpoints de administración (horarios, cancelación de clases)
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

    # Configuración de Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    ENABLE_REDIS: bool = os.getenv("ENABLE_REDIS", "True").lower() in ("true", "1", "t")

    # Configuración del pool de conexiones Redis
    REDIS_POOL_MAX_CONNECTIONS: int = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "50"))
    REDIS_POOL_SOCKET_TIMEOUT: int = int(os.getenv("REDIS_POOL_SOCKET_TIMEOUT", "5"))
    REDIS_POOL_HEALTH_CHECK_INTERVAL: int = int(os.getenv("REDIS_POOL_HEALTH_CHECK_INTERVAL", "30"))
    REDIS_POOL_RETRY_ON_TIMEOUT: bool = os.getenv("REDIS_POOL_RETRY_ON_TIMEOUT", "True").lower() in ("true", "1", "t")
    REDIS_POOL_SOCKET_KEEPALIVE: bool = os.getenv("REDIS_POOL_SOCKET_KEEPALIVE", "True").lower() in ("true", "1", "t")

    @field_validator("REDIS_URL", mode="before")
    def assemble_redis_connection(cls, v: Optional[str], info) -> Any:
        if isinstance(v, str):
            # Eliminar comentarios (todo lo que sigue a #) y espacios
            if '#' in v:
                v = v.split('#')[0]
                logger.info("REDIS_URL: eliminados comentarios en configuración")
            return v.strip()
        return "redis://localhost:6379/0"

    # Cache
    CACHE_TTL_WAITLIST_COUNT: int = 30  # segundos

    # OneSignal (push + email)
    ONESIGNAL_APP_ID: str = os.getenv("ONESIGNAL_APP_ID", "")
    ONESIGNAL_REST_API_KEY: str = os.getenv("ONESIGNAL_REST_API_KEY", "")
    ONESIGNAL_TIMEOUT_SECONDS: float = 10.0

    # Lista de espera
    WAITLIST_OFFER_HOURS: int = 24
    WAITLIST_SWEEP_INTERVAL_SECONDS: int = 60

    # Rate limiting (slowapi)
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "True").lower() in ("true", "1", "t")
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "120/minute")
    TRUST_PROXY_HEADERS: bool = os.getenv("TRUST_PROXY_HEADERS", "False").lower() in ("true", "1", "t")

    # Scheduler
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "True").lower() in ("true", "1", "t")

# Usar una función con caché para obtener la configuración
@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    logger.info("Configuración cargada correctamente")
    return settings
