import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.core.logging_config import setup_logging

# Configurar logging ANTES de importar/crear otros elementos
setup_logging()

from app.api.v1.api import api_router
from app.core.config import get_settings
from app.core.exceptions import BookingDomainError
from app.core.scheduler import init_scheduler, shutdown_scheduler
from app.db.redis_client import initialize_redis_pool, close_redis_client
from app.middleware.rate_limit import limiter, custom_rate_limit_exceeded_handler
from app.middleware.timing import TimingMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

logger = logging.getLogger(__name__)

settings_instance = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan: Startup iniciado...")

    await initialize_redis_pool()

    if settings_instance.ENABLE_SCHEDULER:
        app.state.scheduler = init_scheduler()
        logger.info("Lifespan: Scheduler inicializado.")
    else:
        logger.info("Lifespan: Scheduler deshabilitado (ENABLE_SCHEDULER=False)")

    yield # Aplicación en ejecución

    logger.info("Lifespan: Shutdown iniciado...")
    shutdown_scheduler()
    await close_redis_client()

app = FastAPI(
    title=settings_instance.PROJECT_NAME,
    description=settings_instance.PROJECT_DESCRIPTION,
    version=settings_instance.VERSION,
    openapi_url=f"{settings_instance.API_V1_STR}/openapi.json",
    docs_url=f"{settings_instance.API_V1_STR}/docs",
    redoc_url=f"{settings_instance.API_V1_STR}/redoc",
    lifespan=lifespan,
)

# Configurar rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded_handler)


@app.exception_handler(BookingDomainError)
async def booking_domain_error_handler(request: Request, exc: BookingDomainError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable}
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Error de base de datos en {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=503,
        content={
            "detail": "Servicio no disponible temporalmente. Inténtalo de nuevo en unos segundos",
            "code": "data_unavailable",
            "retryable": True,
        }
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Middleware: Recibida petición: {request.method} {request.url}")
    if settings_instance.DEBUG_MODE:
        # Nunca loguear X-API-Key
        member = request.headers.get("x-member-id")
        logger.debug(f"Middleware: X-Member-ID={member or '<ninguno>'}")

    response = await call_next(request)

    logger.info(f"Middleware: Enviando respuesta: {response.status_code}")
    return response

# Añadir middleware para medir el tiempo de respuesta
app.add_middleware(TimingMiddleware)

# Rate limiting por cliente
app.add_middleware(SlowAPIMiddleware)

# Configurar CORS para toda la aplicación
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings_instance.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Process-Time"],
    max_age=86400,  # 24 horas en segundos
)

# Incluir routers
app.include_router(api_router, prefix=settings_instance.API_V1_STR)

# Ruta raíz
@app.get("/")
def root():
    return {
        "message": "Bienvenido a la API de reservas",
        "docs": f"{settings_instance.API_V1_STR}/docs",
    }

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings_instance.DEBUG_MODE)
