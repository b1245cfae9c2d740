"""
Adherence Service
Adherence Ledger: dose records, upcoming doses and adherence statistics
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import reminder_config
from database import get_db_context, persistence_guard
from exceptions import NotFoundError, ValidationError, require_identity
from models import DoseRecord, DoseState, MedicationSchedule
from services.schedule_service import ScheduleService, schedule_service as default_schedule_service
from tools.dose_clock import (
    active_date_span,
    expected_doses,
    format_time_of_day,
    is_as_needed,
    parse_date,
    parse_time_of_day,
)


logger = logging.getLogger(__name__)


def adherence_rate(taken: int, total: int) -> float:
    """Taken / total as a percentage with two decimals; 0 when nothing was expected"""
    if total <= 0:
        return 0.0
    return round(min(taken, total) / total * 100, 2)


@dataclass
class UpcomingDose:
    """A dose due soon; pending ones are synthesized, never stored"""
    schedule_id: int
    patient_id: str
    medication_name: str
    dosage: str
    scheduled_time: str
    dose_date: date
    scheduled_at: datetime
    state: DoseState = DoseState.PENDING
    notes: Optional[str] = None
    minutes_until: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "patient_id": self.patient_id,
            "medication_name": self.medication_name,
            "dosage": self.dosage,
            "scheduled_time": self.scheduled_time,
            "dose_date": self.dose_date.isoformat(),
            "scheduled_at": self.scheduled_at.isoformat(),
            "state": self.state.value,
            "notes": self.notes,
            "minutes_until": self.minutes_until,
        }


@dataclass
class ScheduleAdherence:
    """Adherence figures for a single schedule"""
    schedule_id: int
    medication_name: str
    expected_doses: int
    taken_doses: int
    skipped_doses: int

    @property
    def adherence_rate(self) -> float:
        return adherence_rate(self.taken_doses, self.expected_doses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "medication_name": self.medication_name,
            "expected_doses": self.expected_doses,
            "taken_doses": self.taken_doses,
            "skipped_doses": self.skipped_doses,
            "adherence_rate": self.adherence_rate,
        }


@dataclass
class AdherenceWindow:
    """Aggregate over a lookback window. Computed on demand, never stored."""
    patient_id: str
    days_analyzed: int
    total_doses: int = 0
    taken_doses: int = 0
    skipped_doses: int = 0
    schedules: List[ScheduleAdherence] = field(default_factory=list)

    @property
    def pending_doses(self) -> int:
        return max(0, self.total_doses - self.taken_doses - self.skipped_doses)

    @property
    def adherence_rate(self) -> float:
        return adherence_rate(self.taken_doses, self.total_doses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "days_analyzed": self.days_analyzed,
            "total_doses": self.total_doses,
            "taken_doses": self.taken_doses,
            "skipped_doses": self.skipped_doses,
            "pending_doses": self.pending_doses,
            "adherence_rate": self.adherence_rate,
            "schedules": [s.to_dict() for s in self.schedules],
        }


class AdherenceService:
    """
    Service for dose tracking and adherence analysis.

    Dose writes are last-write-wins upserts keyed by
    (schedule_id, scheduled_time, dose_date).
    """

    def __init__(
        self,
        schedules: Optional[ScheduleService] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.schedules = schedules or default_schedule_service
        self.clock = clock

    async def mark_taken(
        self,
        schedule_id: int,
        scheduled_time: str,
        patient_id: str,
        notes: Optional[str] = None,
        dose_date: Union[str, date, None] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> DoseRecord:
        """
        Record a dose as taken

        Args:
            schedule_id: Schedule the dose belongs to
            scheduled_time: Time of day of the dose ("HH:MM")
            patient_id: Patient reporting the dose
            notes: Optional note
            dose_date: Calendar day of the dose (default: today)
            now: Override for the current time
            db: Database session

        Returns:
            The upserted DoseRecord
        """
        return await self._record_dose(
            DoseState.TAKEN, schedule_id, scheduled_time, patient_id,
            notes, dose_date, now, db
        )

    async def mark_skipped(
        self,
        schedule_id: int,
        scheduled_time: str,
        patient_id: str,
        reason: Optional[str] = None,
        dose_date: Union[str, date, None] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> DoseRecord:
        """Record a dose as intentionally skipped"""
        return await self._record_dose(
            DoseState.SKIPPED, schedule_id, scheduled_time, patient_id,
            reason, dose_date, now, db
        )

    async def _record_dose(
        self,
        state: DoseState,
        schedule_id: int,
        scheduled_time: str,
        patient_id: str,
        notes: Optional[str],
        dose_date: Union[str, date, None],
        now: Optional[datetime],
        db: Optional[Session]
    ) -> DoseRecord:
        patient_id = require_identity(patient_id, "patient_id")
        time_str = format_time_of_day(scheduled_time)
        now = now or self.clock()
        day = parse_date(dose_date, "dose_date") if dose_date is not None else now.date()
        if day > now.date():
            raise ValidationError("dose_date must not be in the future", field="dose_date")
        operation = f"mark_{state.value}"

        def _record(session: Session) -> DoseRecord:
            with persistence_guard(session, operation):
                schedule = session.get(MedicationSchedule, schedule_id)
                if not schedule:
                    raise NotFoundError("MedicationSchedule", schedule_id)
                if schedule.patient_id != patient_id:
                    raise ValidationError(
                        f"Schedule {schedule_id} does not belong to patient {patient_id}",
                        field="patient_id"
                    )
                if not is_as_needed(schedule.frequency) and time_str not in (schedule.times or []):
                    raise ValidationError(
                        f"{time_str} is not a scheduled time of schedule {schedule_id}",
                        field="scheduled_time"
                    )
                if (schedule.start_date and day < schedule.start_date) or \
                        (schedule.end_date and day > schedule.end_date):
                    raise ValidationError(
                        f"{day.isoformat()} is outside the active dates of schedule {schedule_id}",
                        field="dose_date"
                    )

                record = self._upsert(session, state, schedule_id, time_str, day, patient_id, notes, now)

            logger.info(
                f"Dose {schedule_id}@{time_str} on {day.isoformat()} marked {state.value} "
                f"for patient {patient_id} (v{record.version})"
            )
            return record

        if db:
            return _record(db)

        with get_db_context() as session:
            return _record(session)

    def _find_record(self, session: Session, schedule_id: int, time_str: str, day: date) -> Optional[DoseRecord]:
        return session.query(DoseRecord).filter(
            and_(
                DoseRecord.schedule_id == schedule_id,
                DoseRecord.scheduled_time == time_str,
                DoseRecord.dose_date == day
            )
        ).first()

    @staticmethod
    def _apply_state(record: DoseRecord, state: DoseState, notes: Optional[str], now: datetime) -> None:
        record.state = state
        if state == DoseState.TAKEN:
            record.taken_at = now
            record.skipped_at = None
        else:
            record.skipped_at = now
            record.taken_at = None
        if notes is not None:
            record.notes = notes
        record.updated_at = now

    def _upsert(
        self,
        session: Session,
        state: DoseState,
        schedule_id: int,
        time_str: str,
        day: date,
        patient_id: str,
        notes: Optional[str],
        now: datetime
    ) -> DoseRecord:
        record = self._find_record(session, schedule_id, time_str, day)

        if record is None:
            record = DoseRecord(
                schedule_id=schedule_id,
                patient_id=patient_id,
                scheduled_time=time_str,
                dose_date=day,
                version=1,
                created_at=now
            )
            self._apply_state(record, state, notes, now)
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                # Another device inserted the same dose first; overwrite it
                session.rollback()
                record = self._find_record(session, schedule_id, time_str, day)
                if record is None:
                    raise
                logger.info(f"Concurrent insert for dose {schedule_id}@{time_str}, retrying as update")
                record.version = (record.version or 0) + 1
                self._apply_state(record, state, notes, now)
                session.commit()
        else:
            record.version = (record.version or 0) + 1
            self._apply_state(record, state, notes, now)
            session.commit()

        session.refresh(record)
        return record

    async def get_dose(
        self,
        schedule_id: int,
        scheduled_time: str,
        dose_date: Union[str, date],
        db: Optional[Session] = None
    ) -> Optional[DoseRecord]:
        """Recorded dose for one instance, or None while it is pending"""
        time_str = format_time_of_day(scheduled_time)
        day = parse_date(dose_date, "dose_date")

        def _get(session: Session) -> Optional[DoseRecord]:
            with persistence_guard(session, "get_dose"):
                return self._find_record(session, schedule_id, time_str, day)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def upcoming_doses(
        self,
        patient_id: str,
        within_hours: float = reminder_config.UPCOMING_DOSE_HOURS,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[UpcomingDose]:
        """
        Doses due in [now, now + within_hours) that have not been taken.

        Skipped doses are still listed; pending ones are synthesized.
        Results are ordered by scheduled time.
        """
        patient_id = require_identity(patient_id, "patient_id")
        now = now or self.clock()
        window_end = now + timedelta(hours=within_hours)

        plans = await self.schedules.active_plans(patient_id, db=db)
        plan_by_id = {plan.id: plan for plan in plans}
        expected = [
            dose
            for plan in plans
            for dose in expected_doses(plan, now, window_end, now=now)
        ]
        if not expected:
            return []

        def _get(session: Session) -> List[UpcomingDose]:
            with persistence_guard(session, "upcoming_doses"):
                records = session.query(DoseRecord).filter(
                    and_(
                        DoseRecord.schedule_id.in_(list(plan_by_id)),
                        DoseRecord.dose_date >= now.date(),
                        DoseRecord.dose_date <= window_end.date()
                    )
                ).all()
            by_key = {(r.schedule_id, r.scheduled_time, r.dose_date): r for r in records}

            upcoming = []
            for dose in expected:
                record = by_key.get(dose.key)
                if record and record.state == DoseState.TAKEN:
                    continue
                plan = plan_by_id[dose.schedule_id]
                upcoming.append(UpcomingDose(
                    schedule_id=dose.schedule_id,
                    patient_id=patient_id,
                    medication_name=plan.medication_name,
                    dosage=plan.dosage,
                    scheduled_time=dose.time_of_day,
                    dose_date=dose.dose_date,
                    scheduled_at=dose.scheduled_at,
                    state=record.state if record else DoseState.PENDING,
                    notes=record.notes if record else None,
                    minutes_until=int((dose.scheduled_at - now).total_seconds() // 60)
                ))

            upcoming.sort(key=lambda d: (d.scheduled_at, d.scheduled_time))
            return upcoming

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def adherence_stats(
        self,
        patient_id: str,
        lookback_days: int = reminder_config.ADHERENCE_LOOKBACK_DAYS,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> AdherenceWindow:
        """
        Adherence over [now - lookback_days, now) for the active schedules

        Expected doses are the instances already due in the window. A dose
        recorded before it falls due (taken early today) counts as expected
        too, so taken never exceeds expected.

        Returns:
            AdherenceWindow with a per-schedule breakdown
        """
        patient_id = require_identity(patient_id, "patient_id")
        if lookback_days < 0:
            raise ValidationError("lookback_days must not be negative", field="lookback_days")

        now = now or self.clock()
        window_start = now - timedelta(days=lookback_days)
        plans = await self.schedules.active_plans(patient_id, db=db)

        def _calculate(session: Session) -> AdherenceWindow:
            window = AdherenceWindow(patient_id=patient_id, days_analyzed=lookback_days)

            for plan in plans:
                if plan.is_as_needed or not plan.times:
                    continue
                span = active_date_span(plan, window_start, now)
                if span is None:
                    continue
                first, last = span
                due = {
                    (dose.time_of_day, dose.dose_date)
                    for dose in expected_doses(plan, window_start, now)
                }

                with persistence_guard(session, "adherence_stats"):
                    records = session.query(DoseRecord.scheduled_time, DoseRecord.dose_date, DoseRecord.state).filter(
                        and_(
                            DoseRecord.schedule_id == plan.id,
                            DoseRecord.patient_id == patient_id,
                            DoseRecord.scheduled_time.in_(list(plan.times)),
                            DoseRecord.dose_date >= first,
                            DoseRecord.dose_date <= last
                        )
                    ).all()

                counts: Dict[DoseState, int] = {}
                early = 0
                for time_str, dose_date, state in records:
                    if (time_str, dose_date) not in due:
                        scheduled_at = datetime.combine(dose_date, parse_time_of_day(time_str))
                        if scheduled_at.replace(tzinfo=now.tzinfo) < now:
                            continue
                        early += 1
                    counts[state] = counts.get(state, 0) + 1

                breakdown = ScheduleAdherence(
                    schedule_id=plan.id,
                    medication_name=plan.medication_name,
                    expected_doses=len(due) + early,
                    taken_doses=counts.get(DoseState.TAKEN, 0),
                    skipped_doses=counts.get(DoseState.SKIPPED, 0)
                )
                window.schedules.append(breakdown)
                window.total_doses += breakdown.expected_doses
                window.taken_doses += breakdown.taken_doses
                window.skipped_doses += breakdown.skipped_doses

            window.schedules.sort(key=lambda s: s.adherence_rate)
            return window

        if db:
            return _calculate(db)

        with get_db_context() as session:
            return _calculate(session)

    async def dose_history(
        self,
        patient_id: str,
        days: int = reminder_config.DOSE_HISTORY_DAYS,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[DoseRecord]:
        """Recorded doses over the last few days, newest first"""
        patient_id = require_identity(patient_id, "patient_id")
        now = now or self.clock()
        since = (now - timedelta(days=days)).date()

        def _get(session: Session) -> List[DoseRecord]:
            with persistence_guard(session, "dose_history"):
                return session.query(DoseRecord).filter(
                    and_(
                        DoseRecord.patient_id == patient_id,
                        DoseRecord.dose_date >= since
                    )
                ).order_by(
                    DoseRecord.dose_date.desc(),
                    DoseRecord.scheduled_time.desc()
                ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
adherence_service = AdherenceService()
