"""
Services Module
Business logic layer for the AdherenceHub application
"""

from services.schedule_service import ScheduleService, schedule_service
from services.adherence_service import AdherenceService, adherence_service
from services.refill_service import RefillService, refill_service
from services.notification_service import NotificationService, notification_service


__all__ = [
    # Service classes
    "ScheduleService",
    "AdherenceService",
    "RefillService",
    "NotificationService",
    # Singleton instances
    "schedule_service",
    "adherence_service",
    "refill_service",
    "notification_service",
]
