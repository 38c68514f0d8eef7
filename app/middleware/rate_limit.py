"""
Rate limiting con slowapi.

Usa Redis como almacenamiento cuando está habilitado (con fallback en memoria
si deja de responder) y memoria local en caso contrario.
"""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def get_client_identifier(request: Request) -> str:
    """Identificador del cliente para rate limiting.

    - Por defecto usa la IP del socket (ASGI client).
    - Si TRUST_PROXY_HEADERS=True, usa el primer IP de X-Forwarded-For cuando existe.
    """
    if settings.TRUST_PROXY_HEADERS:
        fwd = request.headers.get("x-forwarded-for")
        if fwd:
            return fwd.split(",")[0].strip()
    return get_remote_address(request)


if settings.ENABLE_REDIS and settings.REDIS_URL:
    limiter = Limiter(
        key_func=get_client_identifier,
        storage_uri=settings.REDIS_URL,
        in_memory_fallback_enabled=True,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    logger.info("Rate limiting configurado con backend Redis")
else:
    limiter = Limiter(
        key_func=get_client_identifier,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    logger.warning("Rate limiting usando memoria local (solo desarrollo)")


def custom_rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handler personalizado para rate limit exceeded"""
    logger.warning(
        f"Rate limit exceeded para {get_client_identifier(request)} "
        f"en {request.url.path} - Límite: {exc.detail}"
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Demasiadas solicitudes. Intenta nuevamente más tarde.",
            "code": "rate_limited",
            "limit": exc.detail,
        }
    )
