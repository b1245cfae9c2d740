"""
API Module
FastAPI routers for the AdherenceHub application
"""

from api.schedules import router as schedules_router
from api.adherence import router as adherence_router
from api.refills import router as refills_router
from api.notifications import router as notifications_router

from api.deps import (
    get_db,
    notification_limit,
    services,
)


__all__ = [
    # Routers
    "schedules_router",
    "adherence_router",
    "refills_router",
    "notifications_router",
    # Dependencies
    "get_db",
    "notification_limit",
    "services",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(schedules_router, prefix=prefix)
    app.include_router(adherence_router, prefix=prefix)
    app.include_router(refills_router, prefix=prefix)
    app.include_router(notifications_router, prefix=prefix)
