"""
Refill Schemas
Pydantic models for refill reminder API requests and responses
"""

from typing import Optional
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict


# ==================== REQUEST SCHEMAS ====================

class RefillCreate(BaseModel):
    """Schema for creating a refill reminder"""
    patient_id: str = Field(..., min_length=1, max_length=128)
    medication_name: str = Field(..., min_length=1, max_length=255)
    next_refill_date: date
    schedule_id: Optional[int] = None
    prescription_id: Optional[str] = None
    current_quantity: Optional[int] = Field(None, ge=0)
    days_before_refill: int = Field(default=3, ge=0)
    last_refill_date: Optional[date] = None


class RefillAdvance(BaseModel):
    """Schema for recording a refill"""
    next_refill_date: date
    current_quantity: Optional[int] = Field(None, ge=0)


# ==================== RESPONSE SCHEMAS ====================

class RefillResponse(BaseModel):
    """Schema for refill reminder response"""
    id: int
    patient_id: str
    medication_name: str
    schedule_id: Optional[int] = None
    prescription_id: Optional[str] = None
    current_quantity: Optional[int] = None
    days_before_refill: int
    last_refill_date: Optional[date] = None
    next_refill_date: date
    reminder_sent: bool
    reminder_sent_at: Optional[datetime] = None
    active: bool
    state: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
