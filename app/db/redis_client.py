"""
Cliente Redis con connection pooling (redis.asyncio).

Redis solo acelera lecturas (contadores de lista de espera); la fuente de verdad
es siempre la base de datos. Si Redis no está disponible, las dependencias
entregan ``None`` y los servicios consultan la base de datos directamente.

Para usar en endpoints:
```python
@router.get("/occurrences/{occurrence_id}/waitlist/count")
async def count(redis_client: Optional[Redis] = Depends(get_redis_client)):
    ...
```
"""

from typing import AsyncGenerator, Optional
import logging
from contextlib import asynccontextmanager

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Declaración global del pool de conexiones
REDIS_POOL: Optional[ConnectionPool] = None

async def initialize_redis_pool():
    """
    Inicializa el pool de conexiones a Redis.
    Debe llamarse una sola vez al iniciar la aplicación.
    """
    global REDIS_POOL
    if REDIS_POOL is not None:
        return
    settings = get_settings()
    if not settings.ENABLE_REDIS:
        logger.info("Redis deshabilitado por configuración (ENABLE_REDIS=False)")
        return

    redis_url = (settings.REDIS_URL or "").strip()
    if not redis_url:
        logger.warning("REDIS_URL está vacía o no configurada. Se omite el pool.")
        return

    try:
        logger.info("Inicializando connection pool para Redis...")
        REDIS_POOL = ConnectionPool.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_POOL_MAX_CONNECTIONS,
            socket_keepalive=settings.REDIS_POOL_SOCKET_KEEPALIVE,
            socket_timeout=settings.REDIS_POOL_SOCKET_TIMEOUT,
            health_check_interval=settings.REDIS_POOL_HEALTH_CHECK_INTERVAL,
            retry_on_timeout=settings.REDIS_POOL_RETRY_ON_TIMEOUT
        )
        logger.info(f"Connection pool de Redis inicializado (max_connections={settings.REDIS_POOL_MAX_CONNECTIONS}).")
    except (RedisError, ValueError) as e:
        logger.error(f"Error al inicializar connection pool de Redis: {e}", exc_info=True)
        REDIS_POOL = None

async def get_redis_client() -> AsyncGenerator[Optional[Redis], None]:
    """
    Dependencia FastAPI que entrega un cliente Redis por request usando el pool
    compartido, o ``None`` si Redis no está disponible.

    El cliente se cierra al terminar el request para devolver la conexión al pool.
    """
    if REDIS_POOL is None:
        yield None
        return

    client = Redis(connection_pool=REDIS_POOL)
    try:
        yield client
    finally:
        try:
            await client.aclose()
        except RedisError as e:
            logger.warning(f"Error cerrando cliente Redis: {e}")

@asynccontextmanager
async def get_redis_for_jobs():
    """
    Context manager para obtener cliente Redis en background jobs (APScheduler).

    Uso:
        async with get_redis_for_jobs() as redis_client:
            if redis_client:
                await redis_client.delete("key")
    """
    if REDIS_POOL is None:
        yield None
        return

    client = Redis(connection_pool=REDIS_POOL)
    try:
        yield client
    finally:
        try:
            await client.aclose()
        except RedisError as e:
            logger.warning(f"Error cerrando cliente Redis en background job: {e}")


async def close_redis_client():
    """
    Cierra el pool de conexiones Redis al finalizar la aplicación.
    """
    global REDIS_POOL

    if REDIS_POOL:
        logger.info("Cerrando connection pool de Redis...")
        await REDIS_POOL.disconnect()
        REDIS_POOL = None
        logger.info("Connection pool de Redis cerrado.")
