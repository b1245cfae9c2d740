"""
Refill Service
Refill Reminder Tracker: refill cycles, independent of daily dose tracking

Cycle: SCHEDULED -> DUE -> REMINDED -> (advance) -> SCHEDULED.
DUE is never stored; it is derived from the current date and the lead time.
"""

import logging
from typing import Callable, List, Optional, Union
from datetime import datetime, date, timedelta
from enum import Enum
from sqlalchemy import and_
from sqlalchemy.orm import Session

from config import reminder_config
from database import get_db_context, persistence_guard
from exceptions import NotFoundError, ValidationError, require_identity
from models import RefillReminder
from tools.dose_clock import parse_date


logger = logging.getLogger(__name__)


class RefillState(str, Enum):
    """Derived position of a reminder in its refill cycle"""
    SCHEDULED = "scheduled"
    DUE = "due"
    REMINDED = "reminded"
    INACTIVE = "inactive"


def refill_threshold(reminder: RefillReminder) -> date:
    """Day from which the patient should be reminded"""
    return reminder.next_refill_date - timedelta(days=reminder.days_before_refill or 0)


class RefillService:
    """
    Service for refill reminder lifecycle
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock

    async def create_reminder(
        self,
        patient_id: str,
        medication_name: str,
        next_refill_date: Union[str, date],
        schedule_id: Optional[int] = None,
        prescription_id: Optional[str] = None,
        current_quantity: Optional[int] = None,
        days_before_refill: int = 3,
        last_refill_date: Union[str, date, None] = None,
        db: Optional[Session] = None
    ) -> RefillReminder:
        """
        Create a refill reminder

        Args:
            patient_id: Patient identity
            medication_name: Medication to refill
            next_refill_date: When the supply runs out
            schedule_id: Owning medication schedule
            prescription_id: Optional prescription reference
            current_quantity: Units on hand
            days_before_refill: Lead time for the reminder
            last_refill_date: Most recent refill, if known
            db: Database session

        Returns:
            Created RefillReminder (unsent, active)
        """
        patient_id = require_identity(patient_id, "patient_id")
        if not medication_name or not medication_name.strip():
            raise ValidationError("medication_name is required", field="medication_name")
        if days_before_refill is None or days_before_refill < 0:
            raise ValidationError("days_before_refill must not be negative", field="days_before_refill")
        if current_quantity is not None and current_quantity < 0:
            raise ValidationError("current_quantity must not be negative", field="current_quantity")

        next_date = parse_date(next_refill_date, "next_refill_date")
        last_date = parse_date(last_refill_date, "last_refill_date") if last_refill_date is not None else None
        if last_date is not None and next_date <= last_date:
            raise ValidationError(
                "next_refill_date must be after last_refill_date",
                field="next_refill_date"
            )

        def _create(session: Session) -> RefillReminder:
            with persistence_guard(session, "create_refill_reminder"):
                now = self.clock()
                reminder = RefillReminder(
                    patient_id=patient_id,
                    medication_name=medication_name.strip(),
                    schedule_id=schedule_id,
                    prescription_id=prescription_id,
                    current_quantity=current_quantity,
                    days_before_refill=days_before_refill,
                    last_refill_date=last_date,
                    next_refill_date=next_date,
                    reminder_sent=False,
                    active=True,
                    created_at=now,
                    updated_at=now
                )
                session.add(reminder)
                session.commit()
                session.refresh(reminder)

            logger.info(
                f"Created refill reminder {reminder.id} for {reminder.medication_name} "
                f"(patient {patient_id}, due {next_date.isoformat()})"
            )
            return reminder

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_reminder(
        self,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> Optional[RefillReminder]:
        """Get refill reminder by ID"""
        def _get(session: Session) -> Optional[RefillReminder]:
            with persistence_guard(session, "get_refill_reminder"):
                return session.get(RefillReminder, reminder_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_reminders(
        self,
        patient_id: str,
        db: Optional[Session] = None
    ) -> List[RefillReminder]:
        """Active reminders for a patient, soonest refill first"""
        patient_id = require_identity(patient_id, "patient_id")

        def _get(session: Session) -> List[RefillReminder]:
            with persistence_guard(session, "list_refill_reminders"):
                return session.query(RefillReminder).filter(
                    and_(
                        RefillReminder.patient_id == patient_id,
                        RefillReminder.active == True  # noqa: E712
                    )
                ).order_by(RefillReminder.next_refill_date, RefillReminder.id).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def upcoming(
        self,
        patient_id: str,
        within_days: int = reminder_config.REFILL_WINDOW_DAYS,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[RefillReminder]:
        """
        Active reminders whose refill date falls in [today, today + within_days].

        Both ends are inclusive calendar days, so within_days=0 means today only.
        """
        today = (now or self.clock()).date()
        horizon = today + timedelta(days=within_days)
        reminders = await self.list_reminders(patient_id, db=db)
        return [r for r in reminders if today <= r.next_refill_date <= horizon]

    async def due(
        self,
        patient_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[RefillReminder]:
        """Active, unsent reminders whose lead-time threshold has been reached"""
        now = now or self.clock()
        reminders = await self.list_reminders(patient_id, db=db)
        return [r for r in reminders if self.state_of(r, now) == RefillState.DUE]

    def state_of(self, reminder: RefillReminder, now: Optional[datetime] = None) -> RefillState:
        """Derive the reminder's position in the refill cycle"""
        if not reminder.active:
            return RefillState.INACTIVE
        if reminder.reminder_sent:
            return RefillState.REMINDED
        today = (now or self.clock()).date()
        if today >= refill_threshold(reminder):
            return RefillState.DUE
        return RefillState.SCHEDULED

    async def mark_sent(
        self,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> RefillReminder:
        """Flag the reminder as sent. Repeated calls keep the first timestamp."""
        def _mark(session: Session) -> RefillReminder:
            with persistence_guard(session, "mark_refill_sent"):
                reminder = session.get(RefillReminder, reminder_id)
                if not reminder:
                    raise NotFoundError("RefillReminder", reminder_id)
                if not reminder.reminder_sent:
                    now = self.clock()
                    reminder.reminder_sent = True
                    reminder.reminder_sent_at = now
                    reminder.updated_at = now
                    session.commit()
                    session.refresh(reminder)
                    logger.info(f"Refill reminder {reminder_id} marked sent")
                return reminder

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)

    async def advance(
        self,
        reminder_id: int,
        new_next_refill_date: Union[str, date],
        new_quantity: Optional[int] = None,
        db: Optional[Session] = None
    ) -> RefillReminder:
        """
        Record a refill and start the next cycle

        Sets last_refill_date to today, moves next_refill_date and always
        clears the sent flag.

        Raises:
            ValidationError: new date not after today, negative quantity
            NotFoundError: unknown reminder
        """
        next_date = parse_date(new_next_refill_date, "next_refill_date")
        if new_quantity is not None and new_quantity < 0:
            raise ValidationError("current_quantity must not be negative", field="current_quantity")

        def _advance(session: Session) -> RefillReminder:
            with persistence_guard(session, "advance_refill"):
                reminder = session.get(RefillReminder, reminder_id)
                if not reminder:
                    raise NotFoundError("RefillReminder", reminder_id)

                now = self.clock()
                if next_date <= now.date():
                    raise ValidationError(
                        "next_refill_date must be after the refill date",
                        field="next_refill_date"
                    )

                reminder.last_refill_date = now.date()
                reminder.next_refill_date = next_date
                reminder.reminder_sent = False
                reminder.reminder_sent_at = None
                if new_quantity is not None:
                    reminder.current_quantity = new_quantity
                reminder.updated_at = now
                session.commit()
                session.refresh(reminder)

            logger.info(
                f"Refill reminder {reminder_id} advanced to {next_date.isoformat()}"
            )
            return reminder

        if db:
            return _advance(db)

        with get_db_context() as session:
            return _advance(session)

    async def deactivate(
        self,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> RefillReminder:
        """Soft-delete a refill reminder"""
        def _deactivate(session: Session) -> RefillReminder:
            with persistence_guard(session, "deactivate_refill"):
                reminder = session.get(RefillReminder, reminder_id)
                if not reminder:
                    raise NotFoundError("RefillReminder", reminder_id)
                if reminder.active:
                    reminder.active = False
                    reminder.updated_at = self.clock()
                    session.commit()
                    session.refresh(reminder)
                    logger.info(f"Deactivated refill reminder {reminder_id}")
                return reminder

        if db:
            return _deactivate(db)

        with get_db_context() as session:
            return _deactivate(session)


# Singleton instance
refill_service = RefillService()
