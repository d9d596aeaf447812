"""RADAR-EXERCISE - multiplayer plotting exercise server.

Main FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.config import settings
from app.routers import sessions_router, ws_router
from comms.event_bus import EventBus
from exercise.engine import EngineConfig, ExerciseEngine

VERSION = "0.1.0"


def _create_engine() -> ExerciseEngine:
    """Create the exercise engine from settings (not started)."""
    engine = ExerciseEngine(EventBus(), EngineConfig.from_settings(settings))
    logger.info(
        f"Exercise engine created (tick={settings.tick_interval_ms} ms, "
        f"range {settings.range_min_yds:.0f}-{settings.range_max_yds:.0f} yds, "
        f"release_owner_on_disconnect={settings.release_owner_on_disconnect})"
    )
    return engine


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("=" * 60)
    logger.info(f"  {settings.app_name} v{VERSION} - INITIALIZING")
    logger.info("=" * 60)

    engine = _create_engine()
    app.state.engine = engine
    engine.start()

    logger.info(f"  {settings.app_name} ONLINE")

    yield

    logger.info("Stopping integration scheduler...")
    engine.stop()
    logger.info(f"{settings.app_name} shutting down...")


# Create FastAPI app
app = FastAPI(
    title="RADAR-EXERCISE",
    description="Multiplayer plotting exercise server",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Include routers
app.include_router(ws_router)
app.include_router(sessions_router)


@app.get("/health")
async def health(request: Request):
    """Liveness plus session/track counts."""
    body = {
        "status": "operational",
        "version": VERSION,
        "system": settings.app_name,
    }
    engine = getattr(request.app.state, "engine", None)
    if engine is not None:
        body.update(engine.status())
    return body


def serve() -> None:
    """Console entry point: run the app under uvicorn."""
    import uvicorn

    log_level = "debug" if settings.debug else settings.log_level.lower()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=log_level)
