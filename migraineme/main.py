from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from migraineme import __version__
from migraineme.api.routes import account, health, history, insights, preferences, session, sync, weather
from migraineme.config import get_settings
from migraineme.core.error_handlers import (
    generic_exception_handler,
    migraineme_exception_handler,
    validation_exception_handler,
)
from migraineme.core.exceptions import MigraineMeException
from migraineme.core.logging import get_logger, setup_logging
from migraineme.core.middleware import RequestLoggingMiddleware
from migraineme.database import SessionLocal, init_db
from migraineme.services.insights import InsightsState
from migraineme.services.session import SessionStore
from migraineme.services.supabase import SupabaseClient
from migraineme.workers import WorkerContext, build_scheduler, enroll_default_jobs

settings = get_settings()

# Initialize structured logging
setup_logging(debug=settings.debug, level=settings.log_level, environment=settings.environment)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("application_startup", app_name=settings.app_name)
    init_db()
    logger.info("database_initialized")

    client = SupabaseClient()
    store = SessionStore(SessionLocal)
    app.state.supabase = client
    app.state.session_store = store
    app.state.insights = InsightsState(settings.tz)

    context = WorkerContext(session_store=store, session_factory=SessionLocal, client=client, tz=settings.tz)
    scheduler = build_scheduler(context, settings)
    app.state.scheduler = scheduler

    if settings.workers_enabled:
        enroll_default_jobs(scheduler, settings)
        await scheduler.start()
        logger.info("background_jobs_started", jobs=len(scheduler.workers))

    yield

    # Shutdown
    if settings.workers_enabled:
        await scheduler.stop()
        logger.info("background_jobs_stopped")

    logger.info("application_shutdown")


app = FastAPI(
    title=settings.app_name,
    description="Migraine tracking sync workers and insights",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Register exception handlers
app.add_exception_handler(MigraineMeException, migraineme_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(session.router, prefix="/api/session", tags=["session"])
app.include_router(insights.router, prefix="/api/insights", tags=["insights"])
app.include_router(weather.router, prefix="/api/weather", tags=["weather"])
app.include_router(history.router, prefix="/api/history", tags=["history"])
app.include_router(sync.router, prefix="/api/sync", tags=["sync"])
app.include_router(account.router, prefix="/api/account", tags=["account"])
app.include_router(preferences.router, prefix="/api/preferences", tags=["preferences"])


@app.get("/")
async def root():
    return {"message": "MigraineMe API", "version": __version__}
