"""
Adherence API Router
Endpoints for dose tracking and adherence statistics
"""

from typing import List
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.adherence import (
    DoseTaken,
    DoseSkipped,
    DoseRecordResponse,
    UpcomingDoseResponse,
    AdherenceStatsResponse,
)
from config import reminder_config


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.post("/dose/taken", response_model=DoseRecordResponse)
async def mark_dose_taken(
    dose_data: DoseTaken,
    db: Session = Depends(get_db)
):
    """
    Mark a dose taken. Repeating the call overwrites the same record.
    """
    adherence_service = services.get_adherence_service()

    return await adherence_service.mark_taken(
        schedule_id=dose_data.schedule_id,
        scheduled_time=dose_data.scheduled_time,
        patient_id=dose_data.patient_id,
        notes=dose_data.notes,
        dose_date=dose_data.dose_date,
        db=db
    )


@router.post("/dose/skipped", response_model=DoseRecordResponse)
async def mark_dose_skipped(
    dose_data: DoseSkipped,
    db: Session = Depends(get_db)
):
    """
    Mark a dose intentionally skipped
    """
    adherence_service = services.get_adherence_service()

    return await adherence_service.mark_skipped(
        schedule_id=dose_data.schedule_id,
        scheduled_time=dose_data.scheduled_time,
        patient_id=dose_data.patient_id,
        reason=dose_data.reason,
        dose_date=dose_data.dose_date,
        db=db
    )


@router.get("/dose/{schedule_id}", response_model=DoseRecordResponse)
async def get_dose(
    schedule_id: int,
    scheduled_time: str = Query(..., description="Time in HH:MM format"),
    dose_date: date = Query(...),
    db: Session = Depends(get_db)
):
    """
    Get the recorded state of one dose
    """
    adherence_service = services.get_adherence_service()

    record = await adherence_service.get_dose(schedule_id, scheduled_time, dose_date, db=db)

    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No dose recorded for schedule {schedule_id} at {scheduled_time} on {dose_date}"
        )

    return record


@router.get("/patient/{patient_id}/upcoming", response_model=List[UpcomingDoseResponse])
async def get_upcoming_doses(
    patient_id: str,
    within_hours: float = Query(reminder_config.UPCOMING_DOSE_HOURS, gt=0, le=24 * 7),
    db: Session = Depends(get_db)
):
    """
    Get doses due soon that have not been taken
    """
    adherence_service = services.get_adherence_service()

    return await adherence_service.upcoming_doses(patient_id, within_hours=within_hours, db=db)


@router.get("/patient/{patient_id}/stats", response_model=AdherenceStatsResponse)
async def get_adherence_stats(
    patient_id: str,
    lookback_days: int = Query(reminder_config.ADHERENCE_LOOKBACK_DAYS, ge=0, le=365),
    db: Session = Depends(get_db)
):
    """
    Get adherence statistics for a patient
    """
    adherence_service = services.get_adherence_service()

    window = await adherence_service.adherence_stats(patient_id, lookback_days=lookback_days, db=db)

    return window.to_dict()


@router.get("/patient/{patient_id}/history", response_model=List[DoseRecordResponse])
async def get_dose_history(
    patient_id: str,
    days: int = Query(reminder_config.DOSE_HISTORY_DAYS, ge=1, le=365),
    db: Session = Depends(get_db)
):
    """
    Get recorded doses over the last few days
    """
    adherence_service = services.get_adherence_service()

    return await adherence_service.dose_history(patient_id, days=days, db=db)
