"""FastAPI routers package."""

from .booking import router as booking_router
from .deals import router as deals_router
from .health import router as health_router
from .metrics import router as metrics_router
from .settings import router as settings_router
from .sync import router as sync_router
from .webhooks import router as webhooks_router

__all__ = [
    "booking_router",
    "deals_router",
    "health_router",
    "metrics_router",
    "settings_router",
    "sync_router",
    "webhooks_router",
]
