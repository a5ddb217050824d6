"""
TrailMate API

FastAPI application exposing partner matching, provider sync and quota
status.
"""

from contextlib import asynccontextmanager
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from trailmate import __version__
from trailmate.config import settings
from trailmate.db.session import init_db
from trailmate.api.v1.router import api_router
from trailmate.features.quota import RateLimited, UpstreamError


# === Logging Setup ===
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)


# === Lifespan ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting TrailMate API...")
    await init_db()
    logger.info("Database initialized")

    if not (settings.strava_client_id and settings.strava_client_secret):
        logger.warning("STRAVA_CLIENT_ID/STRAVA_SECRET not set: fallback credential is unconfigured")

    yield

    logger.info("Shutting down...")


# === App Creation ===
app = FastAPI(
    title="TrailMate API",
    description="Workout partner matching from connected fitness activity",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# === Error Handlers ===
@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited):
    return JSONResponse(
        status_code=429,
        content={"detail": str(exc), "retry_after_seconds": exc.retry_after_seconds},
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error(f"Upstream error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": "Fitness provider request failed"})


# === Routes ===
app.include_router(api_router, prefix="/api/v1")


# === Health Check ===
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
