"""Route modules for the dev-hud API."""

from .sessions import router as sessions_router
from .logs import router as logs_router

__all__ = [
    'sessions_router',
    'logs_router',
]
