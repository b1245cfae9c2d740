"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from fastapi import Query

from database import get_db  # noqa: F401 re-exported for routers
from config import reminder_config


def notification_limit(
    limit: int = Query(
        reminder_config.NOTIFICATION_PAGE_SIZE,
        ge=1,
        le=reminder_config.NOTIFICATION_MAX_PAGE_SIZE
    )
) -> int:
    """
    Page size for notification lists
    """
    return limit


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_schedule_service():
        from services.schedule_service import schedule_service
        return schedule_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service

    @staticmethod
    def get_refill_service():
        from services.refill_service import refill_service
        return refill_service

    @staticmethod
    def get_notification_service():
        from services.notification_service import notification_service
        return notification_service

    @staticmethod
    def get_reminder_engine():
        from actions.reminder_engine import reminder_engine
        return reminder_engine


# Service dependency instances
services = ServiceDependency()
