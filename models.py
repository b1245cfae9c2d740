"""
Database Models
SQLAlchemy ORM models for AdherenceHub
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Date, Enum, Index, UniqueConstraint, JSON
from datetime import datetime
from enum import Enum as PyEnum

from database import Base
from config import TableNames
from tools.dose_clock import SchedulePlan


# ==================== ENUMS ====================

class Frequency(str, PyEnum):
    """How often a medication is scheduled"""
    ONCE_DAILY = "ONCE_DAILY"
    TWICE_DAILY = "TWICE_DAILY"
    THRICE_DAILY = "THRICE_DAILY"
    FOUR_TIMES_DAILY = "FOUR_TIMES_DAILY"
    AS_NEEDED = "AS_NEEDED"


class DoseState(str, PyEnum):
    """State of one dose instance. PENDING is never persisted."""
    PENDING = "pending"
    TAKEN = "taken"
    SKIPPED = "skipped"


class UserRole(str, PyEnum):
    """Platform roles, used as broadcast targets"""
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    PHARMACY = "PHARMACY"
    COURIER = "COURIER"
    CHW = "CHW"
    ADMIN = "ADMIN"


class NotificationType(str, PyEnum):
    """Closed set of notification kinds"""
    APPOINTMENT_REMINDER = "APPOINTMENT_REMINDER"
    MEDICATION_REMINDER = "MEDICATION_REMINDER"
    NEW_MESSAGE = "NEW_MESSAGE"
    ORDER_UPDATE = "ORDER_UPDATE"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    APPOINTMENT_CONFIRMED = "APPOINTMENT_CONFIRMED"
    APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"
    PRESCRIPTION_READY = "PRESCRIPTION_READY"
    SOS_ALERT = "SOS_ALERT"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"
    ARTICLE_PUBLISHED = "ARTICLE_PUBLISHED"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"


class NotificationPriority(str, PyEnum):
    """Notification priority levels"""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


# ==================== MODELS ====================

class MedicationSchedule(Base):
    """Recurring medication regimen for one patient"""
    __tablename__ = TableNames.MEDICATION_SCHEDULES

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(128), nullable=False, index=True)
    patient_name = Column(String(255))

    # Medication identity (immutable once created)
    medication_name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    frequency = Column(Enum(Frequency), nullable=False)

    # Recurrence
    times = Column(JSON, default=list)  # ["08:00", "20:00"]
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    duration_days = Column(Integer)

    # Prescribing context
    instructions = Column(Text)
    doctor_id = Column(String(128), index=True)
    doctor_name = Column(String(255))
    prescription_id = Column(String(128))

    # Status
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("ix_schedules_patient_active", "patient_id", "active"),
    )

    def to_plan(self) -> SchedulePlan:
        """Detached, immutable view consumed by the dose clock"""
        return SchedulePlan(
            id=self.id,
            patient_id=self.patient_id,
            medication_name=self.medication_name,
            dosage=self.dosage,
            frequency=self.frequency.value if isinstance(self.frequency, Frequency) else str(self.frequency),
            times=tuple(self.times or ()),
            start_date=self.start_date,
            end_date=self.end_date,
        )


class DoseRecord(Base):
    """
    Materialized dose instance.

    Only written when a dose is acted upon; a missing row means pending.
    Keyed by calendar date so the same time-of-day on different days never collides.
    """
    __tablename__ = TableNames.DOSE_RECORDS

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, nullable=False, index=True)
    patient_id = Column(String(128), nullable=False)

    scheduled_time = Column(String(5), nullable=False)  # "HH:MM"
    dose_date = Column(Date, nullable=False)

    state = Column(Enum(DoseState), nullable=False)
    taken_at = Column(DateTime)
    skipped_at = Column(DateTime)
    notes = Column(Text)

    # Bumped on every write
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("schedule_id", "scheduled_time", "dose_date", name="uq_dose_instance"),
        Index("ix_dose_records_patient_date", "patient_id", "dose_date"),
    )


class RefillReminder(Base):
    """Refill cycle tracking, independent of daily dose tracking"""
    __tablename__ = TableNames.REFILL_REMINDERS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(128), nullable=False, index=True)
    medication_name = Column(String(255), nullable=False)
    schedule_id = Column(Integer, index=True)
    prescription_id = Column(String(128))

    current_quantity = Column(Integer)
    days_before_refill = Column(Integer, nullable=False, default=3)
    last_refill_date = Column(Date)
    next_refill_date = Column(Date, nullable=False)

    reminder_sent = Column(Boolean, default=False, nullable=False)
    reminder_sent_at = Column(DateTime)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("ix_refills_patient_next", "patient_id", "next_refill_date"),
    )


class AppNotification(Base):
    """In-app notification record. Deletion is a flag flip."""
    __tablename__ = TableNames.NOTIFICATIONS

    id = Column(Integer, primary_key=True, index=True)

    # Target: a single user, or a role for broadcast
    user_id = Column(String(128), index=True)
    recipient_role = Column(Enum(UserRole))

    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(Enum(NotificationPriority), default=NotificationPriority.NORMAL, nullable=False)

    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime)

    data = Column(JSON, default=dict)
    action_url = Column(String(500))

    deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "read", "deleted"),
    )
