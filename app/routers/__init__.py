"""API routers for the exercise server."""

from app.routers.sessions import router as sessions_router
from app.routers.ws import router as ws_router

__all__ = ["sessions_router", "ws_router"]
