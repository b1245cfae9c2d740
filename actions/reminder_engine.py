"""
Reminder Engine
Turns due doses and refills into in-app notifications
"""

import logging
from typing import List, Dict, Any, Optional, Callable, Set, Tuple
from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from sqlalchemy.orm import Session

from config import reminder_config
from models import DoseState
from services.adherence_service import AdherenceService, adherence_service as default_adherence_service
from services.notification_service import (
    NotificationService,
    notification_service as default_notification_service,
)
from services.refill_service import RefillService, refill_service as default_refill_service


logger = logging.getLogger(__name__)


class ReminderType(str, Enum):
    """Types of reminders"""
    MEDICATION_DUE = "medication_due"
    REFILL_DUE = "refill_due"


@dataclass
class DispatchedReminder:
    """One notification produced by a sweep"""
    reminder_type: ReminderType
    patient_id: str
    notification_id: int
    dispatched_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reminder_type": self.reminder_type.value,
            "patient_id": self.patient_id,
            "notification_id": self.notification_id,
            "dispatched_at": self.dispatched_at.isoformat(),
            "metadata": self.metadata
        }


@dataclass
class DispatchReport:
    """Result of one sweep for one patient"""
    patient_id: str
    reminder_type: ReminderType
    dispatched: List[DispatchedReminder] = field(default_factory=list)
    already_sent: int = 0

    @property
    def count(self) -> int:
        return len(self.dispatched)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "reminder_type": self.reminder_type.value,
            "count": self.count,
            "already_sent": self.already_sent,
            "dispatched": [d.to_dict() for d in self.dispatched]
        }


class ReminderEngine:
    """
    Sweeps a patient's doses and refills and fires reminders.

    Dose reminders are remembered by dose key until the dose date has
    passed, so running the sweep repeatedly does not notify twice for the
    same dose.
    Refill reminders rely on the persisted sent flag instead.
    """

    def __init__(
        self,
        adherence: Optional[AdherenceService] = None,
        refills: Optional[RefillService] = None,
        notifications: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.adherence = adherence or default_adherence_service
        self.refills = refills or default_refill_service
        self.notifications = notifications or default_notification_service
        self.clock = clock
        self._dispatched_doses: Set[Tuple[int, str, date]] = set()

    async def dispatch_dose_reminders(
        self,
        patient_id: str,
        within_minutes: int = reminder_config.DOSE_REMINDER_LEAD_MINUTES,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> DispatchReport:
        """
        Notify the patient about pending doses starting within the lead time

        Args:
            patient_id: Patient to sweep
            within_minutes: Lead time
            now: Override for the current time
            db: Database session

        Returns:
            DispatchReport with the notifications created
        """
        now = now or self.clock()
        report = DispatchReport(patient_id=patient_id, reminder_type=ReminderType.MEDICATION_DUE)
        self._prune(now.date())

        upcoming = await self.adherence.upcoming_doses(
            patient_id, within_hours=within_minutes / 60, now=now, db=db
        )
        for dose in upcoming:
            if dose.state != DoseState.PENDING:
                continue
            key = (dose.schedule_id, dose.scheduled_time, dose.dose_date)
            if key in self._dispatched_doses:
                report.already_sent += 1
                continue

            notification = await self.notifications.send_medication_reminder(
                patient_id,
                dose.medication_name,
                dose.dosage,
                dose.scheduled_time,
                extra={"schedule_id": dose.schedule_id, "dose_date": dose.dose_date.isoformat()},
                db=db
            )
            self._dispatched_doses.add(key)
            report.dispatched.append(DispatchedReminder(
                reminder_type=ReminderType.MEDICATION_DUE,
                patient_id=patient_id,
                notification_id=notification.id,
                dispatched_at=now,
                metadata={
                    "schedule_id": dose.schedule_id,
                    "scheduled_time": dose.scheduled_time,
                    "dose_date": dose.dose_date.isoformat()
                }
            ))

        if report.count:
            logger.info(f"Dispatched {report.count} dose reminders for patient {patient_id}")
        return report

    async def dispatch_refill_reminders(
        self,
        patient_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> DispatchReport:
        """Notify about every due refill and flag it sent"""
        now = now or self.clock()
        report = DispatchReport(patient_id=patient_id, reminder_type=ReminderType.REFILL_DUE)

        for reminder in await self.refills.due(patient_id, now=now, db=db):
            notification = await self.notifications.send_refill_reminder(
                patient_id,
                reminder.medication_name,
                reminder.next_refill_date.isoformat(),
                reminder_id=reminder.id,
                db=db
            )
            await self.refills.mark_sent(reminder.id, db=db)
            report.dispatched.append(DispatchedReminder(
                reminder_type=ReminderType.REFILL_DUE,
                patient_id=patient_id,
                notification_id=notification.id,
                dispatched_at=now,
                metadata={
                    "reminder_id": reminder.id,
                    "next_refill_date": reminder.next_refill_date.isoformat()
                }
            ))

        if report.count:
            logger.info(f"Dispatched {report.count} refill reminders for patient {patient_id}")
        return report

    def _prune(self, today: date) -> None:
        # Past dose dates can no longer come back from upcoming_doses
        stale = {key for key in self._dispatched_doses if key[2] < today}
        if stale:
            self._dispatched_doses -= stale
            logger.debug(f"Pruned {len(stale)} dispatched dose keys before {today.isoformat()}")

    def forget(self) -> None:
        """Drop the memory of dispatched doses"""
        self._dispatched_doses.clear()


# Singleton instance
reminder_engine = ReminderEngine()
