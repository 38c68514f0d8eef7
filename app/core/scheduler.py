from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import OperationalError, DBAPIError
from datetime import timezone
from functools import wraps
import asyncio
import logging

from app.core.config import get_settings
from app.db.session import get_db_for_jobs
from app.db.redis_client import get_redis_for_jobs
from app.services.waitlist_promotion import waitlist_promotion_service

logger = logging.getLogger(__name__)

# Variable global para mantener referencia al scheduler
_scheduler = None


def retry_on_db_error(max_retries=3, delay=2):
    """
    Decorator para reintentar jobs async en caso de errores de BD.

    Útil para scheduled tasks que pueden fallar por conexiones cerradas
    o timeouts transitorios.

    Args:
        max_retries: Número máximo de reintentos (default: 3)
        delay: Tiempo base de espera entre reintentos en segundos (default: 2)
               Se aplica backoff lineal: delay * (attempt + 1)
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except (OperationalError, DBAPIError) as e:
                    if attempt < max_retries - 1:
                        wait_time = delay * (attempt + 1)
                        logger.warning(
                            f"DB error in {func.__name__}, retry {attempt + 1}/{max_retries} "
                            f"after {wait_time}s: {str(e)}"
                        )
                        await asyncio.sleep(wait_time)
                    else:
                        logger.error(
                            f"Max retries ({max_retries}) reached for {func.__name__}: {str(e)}",
                            exc_info=True
                        )
                        raise
        return wrapper
    return decorator


@retry_on_db_error(max_retries=3, delay=2)
async def sweep_expired_waitlist_offers():
    """
    Marca como expired las ofertas de lista de espera vencidas y ofrece las
    plazas liberadas al siguiente miembro de cada cola.
    """
    logger.debug("Running scheduled task: sweep_expired_waitlist_offers")
    async with get_redis_for_jobs() as redis_client:
        with get_db_for_jobs() as db:
            summaries = await waitlist_promotion_service.sweep_expired_offers(db, redis_client=redis_client)

    failed = [s.occurrence_id for s in summaries if s.failed]
    if failed:
        logger.warning(f"Promoción fallida durante el barrido en ocurrencias: {failed}")
    return summaries


def init_scheduler():
    """
    Inicializa el programador de tareas
    """
    global _scheduler
    settings = get_settings()

    logger.info("Initializing scheduler with UTC timezone")
    _scheduler = AsyncIOScheduler(timezone=timezone.utc)

    # Barrido de ofertas vencidas de la lista de espera
    _scheduler.add_job(
        sweep_expired_waitlist_offers,
        trigger=IntervalTrigger(seconds=settings.WAITLIST_SWEEP_INTERVAL_SECONDS),
        id='waitlist_offer_sweep',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    _scheduler.start()
    logger.info(
        f"Scheduler started - waitlist sweep every {settings.WAITLIST_SWEEP_INTERVAL_SECONDS}s"
    )
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler detenido")
    _scheduler = None


def get_scheduler():
    global _scheduler
    return _scheduler
