"""FastAPI application initialization."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from fastapi import FastAPI

from governance import __version__
from governance.api.audit import router as audit_router
from governance.api.baselines import router as baselines_router
from governance.api.change_requests import router as change_requests_router
from governance.api.errors import register_error_handlers
from governance.api.experiments import router as experiments_router
from governance.api.middleware import CorrelationIdMiddleware
from governance.api.registry import router as registry_router
from governance.config import get_settings
from governance.database import close_database, health_check, init_database, run_migrations
from governance.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    if settings.store_backend == "postgres":
        await init_database()
        await run_migrations()
        logger.info("database_initialized")

    logger.info(
        "application_started",
        store_backend=settings.store_backend,
        log_level=settings.log_level,
    )

    yield

    if settings.store_backend == "postgres":
        await close_database()
    logger.info("application_shutdown")


app = FastAPI(
    title="AI Configuration Governance",
    description="Change control, evaluation gates, baselines and regression alerts for AI configuration",
    version=__version__,
    lifespan=lifespan,
)

register_error_handlers(app)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(change_requests_router)
app.include_router(baselines_router)
app.include_router(registry_router)
app.include_router(experiments_router)
app.include_router(audit_router)


@app.get("/health")
async def health() -> dict:
    settings = get_settings()
    database = await health_check() if settings.store_backend == "postgres" else None
    return {"status": "ok", "store_backend": settings.store_backend, "database": database}
