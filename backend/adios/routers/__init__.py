"""API routers for the Just Adios backend."""

from .meetings import router as meetings_router
from .oauth import router as oauth_router
from .settings import router as settings_router

__all__ = ["meetings_router", "oauth_router", "settings_router"]
