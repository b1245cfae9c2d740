"""
Actions Module
Engines that act on schedules and refills
"""

from .reminder_engine import (
    DispatchedReminder,
    DispatchReport,
    ReminderType,
    ReminderEngine,
    reminder_engine
)


__all__ = [
    # Reminder Engine
    "DispatchedReminder",
    "DispatchReport",
    "ReminderType",
    "ReminderEngine",
    "reminder_engine",
]
