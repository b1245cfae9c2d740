"""
Schedule Service
Schedule Registry: lifecycle of medication schedules
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from dataclasses import dataclass
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session

from config import reminder_config
from database import get_db_context, persistence_guard
from exceptions import NotFoundError, ValidationError, require_identity
from models import Frequency, MedicationSchedule
from tools.cache import TTLCache
from tools.dose_clock import SchedulePlan, doses_per_day, normalize_times, parse_date


logger = logging.getLogger(__name__)


# ==================== QUERY SCOPES ====================

@dataclass(frozen=True)
class PatientScope:
    """Schedules belonging to one patient"""
    patient_id: str

    def clause(self):
        return MedicationSchedule.patient_id == self.patient_id


@dataclass(frozen=True)
class DoctorScope:
    """Schedules prescribed by one doctor"""
    doctor_id: str

    def clause(self):
        return MedicationSchedule.doctor_id == self.doctor_id


ScheduleScope = Union[PatientScope, DoctorScope]


# Medication identity never changes in place; a rename is a new schedule
IDENTITY_FIELDS = frozenset({"medication_name", "dosage", "frequency", "patient_id"})
EDITABLE_FIELDS = frozenset({"instructions", "times", "end_date"})


def _parse_frequency(value: Union[str, Frequency]) -> Frequency:
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown frequency: {value!r}", field="frequency")


def _validate_times(frequency: Frequency, times: Optional[Iterable[str]]) -> List[str]:
    normalized = normalize_times(times)
    if frequency != Frequency.AS_NEEDED and not normalized:
        raise ValidationError(
            f"At least one time is required for {frequency.value} schedules",
            field="times"
        )
    return normalized


class ScheduleService:
    """
    Service for medication schedule management
    """

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.cache = cache if cache is not None else TTLCache(
            default_ttl=reminder_config.SCHEDULE_CACHE_TTL_SECONDS,
            max_size=reminder_config.SCHEDULE_CACHE_MAX_ENTRIES
        )
        self.clock = clock

    async def create_schedule(
        self,
        patient_id: str,
        medication_name: str,
        dosage: str,
        frequency: Union[str, Frequency],
        times: Optional[List[str]] = None,
        start_date: Union[str, date, None] = None,
        end_date: Union[str, date, None] = None,
        duration_days: Optional[int] = None,
        instructions: Optional[str] = None,
        doctor_id: Optional[str] = None,
        doctor_name: Optional[str] = None,
        patient_name: Optional[str] = None,
        prescription_id: Optional[str] = None,
        db: Optional[Session] = None
    ) -> MedicationSchedule:
        """
        Create a medication schedule

        Args:
            patient_id: Patient identity
            medication_name: Medication name
            dosage: Dosage string, e.g. "500mg"
            frequency: One of the Frequency categories
            times: Clock times ("HH:MM"); may be empty only for AS_NEEDED
            start_date: First active day (default: today)
            end_date: Last active day (optional)
            duration_days: Derives end_date when end_date is not given
            instructions: Free-text instructions
            doctor_id: Prescribing doctor, if any
            db: Database session

        Returns:
            Created MedicationSchedule, active
        """
        patient_id = require_identity(patient_id, "patient_id")
        if not medication_name or not medication_name.strip():
            raise ValidationError("medication_name is required", field="medication_name")
        if not dosage or not dosage.strip():
            raise ValidationError("dosage is required", field="dosage")

        freq = _parse_frequency(frequency)
        normalized_times = _validate_times(freq, times)

        start = parse_date(start_date, "start_date") if start_date is not None else self.clock().date()
        end = parse_date(end_date, "end_date") if end_date is not None else None
        if duration_days is not None:
            if duration_days < 1:
                raise ValidationError("duration_days must be positive", field="duration_days")
            if end is None:
                end = start + timedelta(days=duration_days - 1)
        if end is not None and end < start:
            raise ValidationError("end_date must not be before start_date", field="end_date")

        expected_per_day = doses_per_day(freq)
        if expected_per_day and len(normalized_times) != expected_per_day:
            logger.warning(
                f"{freq.value} schedule for {medication_name} has "
                f"{len(normalized_times)} times, expected {expected_per_day}"
            )

        def _create(session: Session) -> MedicationSchedule:
            with persistence_guard(session, "create_schedule"):
                now = self.clock()
                schedule = MedicationSchedule(
                    patient_id=patient_id,
                    patient_name=patient_name,
                    medication_name=medication_name.strip(),
                    dosage=dosage.strip(),
                    frequency=freq,
                    times=normalized_times,
                    start_date=start,
                    end_date=end,
                    duration_days=duration_days,
                    instructions=instructions,
                    doctor_id=doctor_id,
                    doctor_name=doctor_name,
                    prescription_id=prescription_id,
                    active=True,
                    created_at=now,
                    updated_at=now
                )
                session.add(schedule)
                session.commit()
                session.refresh(schedule)

            self.cache.invalidate(patient_id)
            logger.info(
                f"Created schedule {schedule.id} ({schedule.medication_name}, "
                f"{freq.value}) for patient {patient_id}"
            )
            return schedule

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_schedule(
        self,
        schedule_id: int,
        db: Optional[Session] = None
    ) -> Optional[MedicationSchedule]:
        """Get schedule by ID"""
        def _get(session: Session) -> Optional[MedicationSchedule]:
            with persistence_guard(session, "get_schedule"):
                return session.get(MedicationSchedule, schedule_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_active(
        self,
        patient_id: str,
        db: Optional[Session] = None
    ) -> List[MedicationSchedule]:
        """Active schedules for a patient, oldest first"""
        patient_id = require_identity(patient_id, "patient_id")
        return await self.list_schedules(PatientScope(patient_id), active_only=True, db=db)

    async def list_schedules(
        self,
        scope: ScheduleScope,
        active_only: bool = True,
        db: Optional[Session] = None
    ) -> List[MedicationSchedule]:
        """Schedules for a patient or a prescribing doctor"""
        if not isinstance(scope, (PatientScope, DoctorScope)):
            raise ValidationError(f"Unsupported schedule scope: {scope!r}", field="scope")

        def _get(session: Session) -> List[MedicationSchedule]:
            with persistence_guard(session, "list_schedules"):
                query = session.query(MedicationSchedule).filter(scope.clause())
                if active_only:
                    query = query.filter(MedicationSchedule.active == True)  # noqa: E712
                return query.order_by(
                    MedicationSchedule.created_at,
                    MedicationSchedule.id
                ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def active_plans(
        self,
        patient_id: str,
        db: Optional[Session] = None
    ) -> List[SchedulePlan]:
        """
        Immutable recurrence snapshots of the patient's active schedules.

        Served from the injected cache; every registry write invalidates it.
        """
        patient_id = require_identity(patient_id, "patient_id")
        cached = self.cache.get(patient_id)
        if cached is not None:
            return list(cached)

        schedules = await self.list_active(patient_id, db=db)
        plans = tuple(s.to_plan() for s in schedules)
        self.cache.set(patient_id, plans)
        return list(plans)

    async def update_schedule(
        self,
        schedule_id: int,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> MedicationSchedule:
        """
        Apply the permitted edits (instructions, times, end_date).

        Raises:
            ValidationError: identity or unknown fields, invalid values
            NotFoundError: unknown schedule
        """
        identity_edits = IDENTITY_FIELDS.intersection(updates)
        if identity_edits:
            raise ValidationError(
                f"Medication identity is immutable ({', '.join(sorted(identity_edits))}); "
                "create a new schedule instead",
                field=sorted(identity_edits)[0]
            )
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        def _update(session: Session) -> MedicationSchedule:
            with persistence_guard(session, "update_schedule"):
                schedule = session.get(MedicationSchedule, schedule_id)
                if not schedule:
                    raise NotFoundError("MedicationSchedule", schedule_id)

                # Validate everything before touching the row
                new_times = schedule.times
                if "times" in updates:
                    new_times = _validate_times(schedule.frequency, updates["times"])
                new_end = schedule.end_date
                if "end_date" in updates:
                    new_end = parse_date(updates["end_date"], "end_date") if updates["end_date"] is not None else None
                    if new_end is not None and new_end < schedule.start_date:
                        raise ValidationError("end_date must not be before start_date", field="end_date")

                schedule.times = new_times
                schedule.end_date = new_end
                if "instructions" in updates:
                    schedule.instructions = updates["instructions"]

                schedule.updated_at = self.clock()
                session.commit()
                session.refresh(schedule)

            self.cache.invalidate(schedule.patient_id)
            logger.info(f"Updated schedule {schedule_id}: {', '.join(sorted(updates))}")
            return schedule

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def deactivate_schedule(
        self,
        schedule_id: int,
        db: Optional[Session] = None
    ) -> MedicationSchedule:
        """Soft-delete a schedule. Deactivating twice is not an error."""
        def _deactivate(session: Session) -> MedicationSchedule:
            with persistence_guard(session, "deactivate_schedule"):
                schedule = session.get(MedicationSchedule, schedule_id)
                if not schedule:
                    raise NotFoundError("MedicationSchedule", schedule_id)
                if schedule.active:
                    schedule.active = False
                    schedule.updated_at = self.clock()
                    session.commit()
                    session.refresh(schedule)
                    logger.info(f"Deactivated schedule {schedule_id}")

            self.cache.invalidate(schedule.patient_id)
            return schedule

        if db:
            return _deactivate(db)

        with get_db_context() as session:
            return _deactivate(session)


# Singleton instance
schedule_service = ScheduleService()
