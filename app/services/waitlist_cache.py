"""
Caché en Redis del número de miembros en espera por ocurrencia.

Redis es opcional: sin cliente, o ante cualquier error de Redis, se lee de la
base de datos.

Cada ocurrencia tiene un contador de versión que toda mutación de la lista
incrementa (``INCR``). El valor en caché se guarda como ``"<versión>:<count>"``
y solo se sirve si su versión coincide con la actual; así una lectura lenta
que guarda un recuento anterior a una mutación nunca queda como válida.
"""

import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# La versión debe sobrevivir de sobra al TTL del recuento
VERSION_TTL_SECONDS = 24 * 3600


def waiting_count_key(occurrence_id: int) -> str:
    return f"waitlist:count:occurrence:{occurrence_id}"


def waiting_count_version_key(occurrence_id: int) -> str:
    return f"waitlist:count_version:occurrence:{occurrence_id}"


def _as_str(value) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


async def get_waiting_count_version(redis_client: Optional[Redis], occurrence_id: int) -> Optional[int]:
    """Versión actual del recuento (0 si nunca hubo mutaciones); None sin Redis"""
    if redis_client is None:
        return None
    try:
        value = await redis_client.get(waiting_count_version_key(occurrence_id))
    except RedisError as e:
        logger.warning(f"Error leyendo versión del contador de espera: {e}")
        return None
    return int(_as_str(value)) if value is not None else 0


async def get_cached_waiting_count(redis_client: Optional[Redis], occurrence_id: int) -> Optional[int]:
    if redis_client is None:
        return None
    try:
        cached, version = await redis_client.mget(
            waiting_count_key(occurrence_id), waiting_count_version_key(occurrence_id)
        )
    except RedisError as e:
        logger.warning(f"Error leyendo contador de espera en caché: {e}")
        return None
    if cached is None:
        return None

    cached_version, _, count = _as_str(cached).partition(":")
    current_version = _as_str(version) if version is not None else "0"
    if cached_version != current_version or not count:
        logger.debug(f"Contador de espera en caché obsoleto para ocurrencia {occurrence_id}")
        return None
    return int(count)


async def set_cached_waiting_count(
    redis_client: Optional[Redis], occurrence_id: int, count: int, version: Optional[int]
) -> None:
    """Guarda el recuento leído bajo ``version`` (la leída antes de consultar la base de datos)"""
    if redis_client is None or version is None:
        return
    try:
        await redis_client.set(
            waiting_count_key(occurrence_id),
            f"{version}:{count}",
            ex=get_settings().CACHE_TTL_WAITLIST_COUNT,
        )
    except RedisError as e:
        logger.warning(f"Error guardando contador de espera en caché: {e}")


async def invalidate_waiting_count(redis_client: Optional[Redis], occurrence_id: int) -> None:
    if redis_client is None:
        return
    version_key = waiting_count_version_key(occurrence_id)
    try:
        await redis_client.incr(version_key)
        await redis_client.expire(version_key, VERSION_TTL_SECONDS)
        await redis_client.delete(waiting_count_key(occurrence_id))
        logger.debug(f"Caché de lista de espera invalidada para ocurrencia {occurrence_id}")
    except RedisError as e:
        logger.warning(f"Error invalidando contador de espera en caché: {e}")
