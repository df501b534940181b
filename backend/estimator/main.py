"""
Facade Estimator API
FastAPI backend: detection resolution, elevation quantities and takeoff pricing
over async PostgreSQL, with Celery workers for background recalculation.
"""
import time
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from estimator.config import get_settings
from estimator.services.logging_config import setup_logging
from estimator.services.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from estimator.services.perf_monitor import tracker as perf_tracker

settings = get_settings()
setup_logging(level=settings.log_level, json_output=settings.json_logs)
logger = logging.getLogger("estimator-api")

APP_VERSION = "1.0.0"
_PROCESS_START = time.monotonic()

if not settings.database_url:
    logger.warning("MISSING env var: DATABASE_URL, running in dev mode")
if not settings.extraction_api_url:
    logger.info("Optional env var not set: EXTRACTION_API_URL (re-detection disabled)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from estimator.db import init_db
        await init_db()
    except Exception as e:
        logger.warning(f"Table init warning (OK if using Alembic): {e}")
    yield


app = FastAPI(
    title="Facade Estimator API",
    version=APP_VERSION,
    description="Facade takeoff quantities and estimate pricing from detected elevation drawings",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Outermost, so the timing covers every other middleware
app.add_middleware(RequestTimingMiddleware)

from estimator.api.detection_routes import router as detection_router
from estimator.api.takeoff_routes import router as takeoff_router

app.include_router(detection_router)
app.include_router(takeoff_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(settings.database_url),
        "redetect_configured": bool(settings.extraction_api_url),
    }


@app.get("/metrics")
async def metrics():
    """Pipeline counters from the in-process PerformanceTracker."""
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        **perf_tracker.get_metrics(),
    }
