"""API routes for the prediction arena."""

from .health import router as health_router
from .prices import router as prices_router
from .rounds import router as rounds_router
from .predictions import router as predictions_router
from .users import router as users_router
from .telegram import router as telegram_router

__all__ = [
    "health_router",
    "prices_router",
    "rounds_router",
    "predictions_router",
    "users_router",
    "telegram_router",
]
