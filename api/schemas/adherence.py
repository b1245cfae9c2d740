"""
Adherence Schemas
Pydantic models for dose tracking API requests and responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict

from models import DoseState


# ==================== REQUEST SCHEMAS ====================

class DoseTaken(BaseModel):
    """Schema for marking a dose taken"""
    schedule_id: int
    scheduled_time: str = Field(..., description="Time in HH:MM format")
    patient_id: str = Field(..., min_length=1)
    dose_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)


class DoseSkipped(BaseModel):
    """Schema for marking a dose skipped"""
    schedule_id: int
    scheduled_time: str = Field(..., description="Time in HH:MM format")
    patient_id: str = Field(..., min_length=1)
    dose_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=500)


# ==================== RESPONSE SCHEMAS ====================

class DoseRecordResponse(BaseModel):
    """Schema for a recorded dose"""
    id: int
    schedule_id: int
    patient_id: str
    scheduled_time: str
    dose_date: date
    state: DoseState
    taken_at: Optional[datetime] = None
    skipped_at: Optional[datetime] = None
    notes: Optional[str] = None
    version: int

    model_config = ConfigDict(from_attributes=True)


class UpcomingDoseResponse(BaseModel):
    """Dose due soon"""
    schedule_id: int
    patient_id: str
    medication_name: str
    dosage: str
    scheduled_time: str
    dose_date: date
    scheduled_at: datetime
    state: DoseState
    notes: Optional[str] = None
    minutes_until: int

    model_config = ConfigDict(from_attributes=True)


class ScheduleAdherenceResponse(BaseModel):
    """Per-schedule adherence figures"""
    schedule_id: int
    medication_name: str
    expected_doses: int
    taken_doses: int
    skipped_doses: int
    adherence_rate: float


class AdherenceStatsResponse(BaseModel):
    """Adherence over a lookback window"""
    patient_id: str
    days_analyzed: int
    total_doses: int
    taken_doses: int
    skipped_doses: int
    pending_doses: int
    adherence_rate: float = Field(..., ge=0, le=100)
    schedules: List[ScheduleAdherenceResponse] = []
