"""
Brevet API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Credential secrets (validated before anything else starts)
- Redis (revocation cache) and database connections
- Auth gate and auth service, built once and stored on app.state
- Background consistency job scheduler
- CORS middleware, API routing and health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from brevet import __version__
from brevet.api import api_router
from brevet.core.auth import AuthGate
from brevet.core.config import ConfigurationError, settings
from brevet.core.database import async_session_maker, close_db, init_db
from brevet.core.logging import configure_logging
from brevet.core.redis import close_redis, init_redis
from brevet.core.revocation import RevocationStore
from brevet.core.scheduler import JobScheduler
from brevet.core.security import build_codecs
from brevet.modules.auth.service import AuthService
from brevet.modules.purchases.jobs import register_purchase_jobs
from brevet.modules.quizzes.jobs import register_quiz_jobs
from brevet.modules.sessions.jobs import register_session_jobs

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup order:
    1. Credential secrets - fatal if invalid
    2. Redis - fatal if unreachable
    3. Database - fatal in production only
    4. Auth gate/service and the job scheduler

    Shutdown stops the scheduler first, letting in-flight firings finish,
    then closes Redis and the database.
    """
    configure_logging(settings.log_level)
    logger.info(f"Starting Brevet API in {settings.python_env} mode...")

    try:
        codecs = build_codecs(settings)
    except ConfigurationError as e:
        logger.critical(f"[FAIL] Invalid credential configuration: {e}")
        raise

    try:
        redis_client = await init_redis(settings)
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.critical(f"[FAIL] Redis connection failed: {e}")
        raise

    try:
        await init_db()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            await close_redis(redis_client)
            raise

    revocations = RevocationStore(redis_client, settings.token_blacklist_ttl_seconds)
    app.state.redis = redis_client
    app.state.auth_gate = AuthGate(codecs.access, revocations)
    app.state.auth_service = AuthService(codecs, revocations)

    scheduler = JobScheduler()
    register_session_jobs(scheduler, async_session_maker, settings)
    register_purchase_jobs(scheduler, async_session_maker, settings)
    register_quiz_jobs(scheduler, async_session_maker, settings)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("[OK] Background scheduler started")

    yield  # Application runs here

    logger.info("Shutting down Brevet API...")

    # Stop the scheduler first (wait for running jobs)
    await scheduler.stop()
    logger.info("[OK] Background scheduler stopped")

    await close_redis(redis_client)
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="Brevet API",
    description="Course management backend: courses, purchases, quizzes",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to Brevet API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check(request: Request) -> dict[str, str]:
    """Readiness check endpoint: the scheduler must be running."""
    scheduler: JobScheduler | None = getattr(request.app.state, "scheduler", None)
    if scheduler is None or not scheduler.running:
        return {"status": "starting"}
    return {"status": "ready"}
