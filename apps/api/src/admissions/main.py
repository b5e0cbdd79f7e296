"""
Admissions API entry point.

Builds the FastAPI app: logging, startup of Redis, the database and the job
scheduler, CORS, the versioned API router and the health checks. The
``/debug`` routes only exist in development.
"""

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from admissions import __version__
from admissions.api import api_router
from admissions.core import redis as redis_module
from admissions.core.config import settings
from admissions.core.database import async_session_maker, close_db, init_db
from admissions.core.jobs import register_core_jobs
from admissions.core.rate_limit import get_rate_limit_store
from admissions.core.redis import close_redis, init_redis
from admissions.core.scheduler import (
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("admissions")

RATE_LIMIT_HEADERS = ["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"]


async def _start_scheduler() -> None:
    register_core_jobs()
    await start_scheduler()


async def _startup_step(name: str, step: Callable[[], Awaitable[object]]) -> None:
    """Run one startup step. Failures are fatal in production only."""
    try:
        await step()
        logger.info(f"[OK] {name}")
    except Exception as e:
        logger.error(f"[FAIL] {name}: {e}")
        if settings.is_production:
            raise


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info(f"Starting Admissions API {__version__} in {settings.python_env} mode...")

    # Redis is optional; the rate limiter uses its in-process store without it
    await _startup_step("Redis", init_redis)
    await _startup_step("Database", init_db)
    await _startup_step("Background scheduler", _start_scheduler)

    yield

    logger.info("Shutting down Admissions API...")
    await stop_scheduler()
    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="Admissions API",
    description="MIHAS / KATC student admissions API",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=RATE_LIMIT_HEADERS,
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            }
        },
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {
        "message": "Welcome to the Admissions API",
        "version": __version__,
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness check. Does not touch any backing service."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness check.

    The database must answer; Redis is reported but not required since the
    rate limiter can run without it.
    """
    checks = {
        "database": "ok",
        "redis": "connected" if redis_module.redis_client else "unavailable",
        "rate_limit_store": type(get_rate_limit_store()).__name__,
    }
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Readiness check: database unavailable: {e}")
        checks["database"] = "unavailable"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}


if settings.is_development:

    @app.get("/debug/redis", tags=["Debug"])
    async def debug_redis():
        client = redis_module.redis_client
        if client is None:
            return {"redis": "not initialized"}
        try:
            await client.ping()
            return {"redis": "connected"}
        except Exception as e:
            return {"redis": "error", "message": str(e)}

    # Jobs run on their schedule; these routes trigger or pause them by hand.

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs():
        return {"jobs": list_registered_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str):
        """Run a registered job now (e.g. ``rate_limit_prune``)."""
        try:
            return await trigger_job_manually(job_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail={"error": "JOB_NOT_FOUND", "message": str(e)}) from e

    @app.post("/debug/jobs/{job_id}/pause", tags=["Debug"])
    async def pause_job_endpoint(job_id: str):
        return {"job_id": job_id, "paused": pause_job(job_id)}

    @app.post("/debug/jobs/{job_id}/resume", tags=["Debug"])
    async def resume_job_endpoint(job_id: str):
        return {"job_id": job_id, "resumed": resume_job(job_id)}
