"""API routers."""
from .notifications import router as notifications_router
from .devices import router as devices_router
from .analytics import router as analytics_router

__all__ = ["notifications_router", "devices_router", "analytics_router"]
