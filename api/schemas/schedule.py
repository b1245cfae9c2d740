"""
Schedule Schemas
Pydantic models for medication schedule API requests and responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict

from models import Frequency


# ==================== REQUEST SCHEMAS ====================

class ScheduleCreate(BaseModel):
    """Schema for creating a medication schedule"""
    patient_id: str = Field(..., min_length=1, max_length=128)
    medication_name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=100)
    frequency: Frequency
    times: List[str] = Field(default_factory=list, description="Clock times in HH:MM format")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    duration_days: Optional[int] = Field(None, ge=1)
    instructions: Optional[str] = None
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None
    patient_name: Optional[str] = None
    prescription_id: Optional[str] = None


class ScheduleUpdate(BaseModel):
    """Schema for updating a schedule; only these fields may change"""
    instructions: Optional[str] = None
    times: Optional[List[str]] = None
    end_date: Optional[date] = None


# ==================== RESPONSE SCHEMAS ====================

class ScheduleResponse(BaseModel):
    """Schema for schedule response"""
    id: int
    patient_id: str
    patient_name: Optional[str] = None
    medication_name: str
    dosage: str
    frequency: Frequency
    times: List[str]
    start_date: date
    end_date: Optional[date] = None
    duration_days: Optional[int] = None
    instructions: Optional[str] = None
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None
    prescription_id: Optional[str] = None
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
