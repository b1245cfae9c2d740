"""
Schedules API Router
Endpoints for medication schedule management
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.schedule import ScheduleCreate, ScheduleUpdate, ScheduleResponse
from services.schedule_service import DoctorScope, PatientScope


router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.post("/", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    schedule_data: ScheduleCreate,
    db: Session = Depends(get_db)
):
    """
    Create a new medication schedule
    """
    schedule_service = services.get_schedule_service()

    return await schedule_service.create_schedule(
        **schedule_data.model_dump(),
        db=db
    )


@router.get("/patient/{patient_id}", response_model=List[ScheduleResponse])
async def get_patient_schedules(
    patient_id: str,
    active_only: bool = Query(True),
    db: Session = Depends(get_db)
):
    """
    Get schedules for a patient, oldest first
    """
    schedule_service = services.get_schedule_service()

    return await schedule_service.list_schedules(
        PatientScope(patient_id),
        active_only=active_only,
        db=db
    )


@router.get("/doctor/{doctor_id}", response_model=List[ScheduleResponse])
async def get_doctor_schedules(
    doctor_id: str,
    active_only: bool = Query(True),
    db: Session = Depends(get_db)
):
    """
    Get schedules prescribed by a doctor
    """
    schedule_service = services.get_schedule_service()

    return await schedule_service.list_schedules(
        DoctorScope(doctor_id),
        active_only=active_only,
        db=db
    )


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a specific schedule
    """
    schedule_service = services.get_schedule_service()

    schedule = await schedule_service.get_schedule(schedule_id, db=db)

    if not schedule:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Schedule {schedule_id} not found"
        )

    return schedule


@router.put("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    schedule_data: ScheduleUpdate,
    db: Session = Depends(get_db)
):
    """
    Update instructions, times or end date of a schedule
    """
    schedule_service = services.get_schedule_service()

    updates = schedule_data.model_dump(exclude_unset=True)

    return await schedule_service.update_schedule(schedule_id, updates, db=db)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_schedule(
    schedule_id: int,
    db: Session = Depends(get_db)
):
    """
    Deactivate a schedule
    """
    schedule_service = services.get_schedule_service()

    await schedule_service.deactivate_schedule(schedule_id, db=db)

    return None
