"""
Refills API Router
Endpoints for refill reminder management
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.refill import RefillCreate, RefillAdvance, RefillResponse
from config import reminder_config
from models import RefillReminder


router = APIRouter(prefix="/refills", tags=["refills"])


def _to_response(reminder: RefillReminder) -> RefillResponse:
    refill_service = services.get_refill_service()
    response = RefillResponse.model_validate(reminder)
    response.state = refill_service.state_of(reminder).value
    return response


@router.post("/", response_model=RefillResponse, status_code=status.HTTP_201_CREATED)
async def create_refill_reminder(
    refill_data: RefillCreate,
    db: Session = Depends(get_db)
):
    """
    Create a refill reminder
    """
    refill_service = services.get_refill_service()

    reminder = await refill_service.create_reminder(**refill_data.model_dump(), db=db)

    return _to_response(reminder)


@router.get("/patient/{patient_id}", response_model=List[RefillResponse])
async def get_patient_refills(
    patient_id: str,
    db: Session = Depends(get_db)
):
    """
    Get active refill reminders, soonest first
    """
    refill_service = services.get_refill_service()

    reminders = await refill_service.list_reminders(patient_id, db=db)

    return [_to_response(r) for r in reminders]


@router.get("/patient/{patient_id}/upcoming", response_model=List[RefillResponse])
async def get_upcoming_refills(
    patient_id: str,
    within_days: int = Query(reminder_config.REFILL_WINDOW_DAYS, ge=0, le=365),
    db: Session = Depends(get_db)
):
    """
    Get refills due between today and today + within_days
    """
    refill_service = services.get_refill_service()

    reminders = await refill_service.upcoming(patient_id, within_days=within_days, db=db)

    return [_to_response(r) for r in reminders]


@router.get("/patient/{patient_id}/due", response_model=List[RefillResponse])
async def get_due_refills(
    patient_id: str,
    db: Session = Depends(get_db)
):
    """
    Get refills whose reminder should go out now
    """
    refill_service = services.get_refill_service()

    reminders = await refill_service.due(patient_id, db=db)

    return [_to_response(r) for r in reminders]


@router.get("/{reminder_id}", response_model=RefillResponse)
async def get_refill_reminder(
    reminder_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a specific refill reminder
    """
    refill_service = services.get_refill_service()

    reminder = await refill_service.get_reminder(reminder_id, db=db)

    if not reminder:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Refill reminder {reminder_id} not found"
        )

    return _to_response(reminder)


@router.post("/{reminder_id}/sent", response_model=RefillResponse)
async def mark_refill_sent(
    reminder_id: int,
    db: Session = Depends(get_db)
):
    """
    Flag a refill reminder as sent
    """
    refill_service = services.get_refill_service()

    reminder = await refill_service.mark_sent(reminder_id, db=db)

    return _to_response(reminder)


@router.post("/{reminder_id}/advance", response_model=RefillResponse)
async def advance_refill(
    reminder_id: int,
    refill_data: RefillAdvance,
    db: Session = Depends(get_db)
):
    """
    Record a refill and schedule the next one
    """
    refill_service = services.get_refill_service()

    reminder = await refill_service.advance(
        reminder_id,
        refill_data.next_refill_date,
        new_quantity=refill_data.current_quantity,
        db=db
    )

    return _to_response(reminder)


@router.delete("/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_refill(
    reminder_id: int,
    db: Session = Depends(get_db)
):
    """
    Deactivate a refill reminder
    """
    refill_service = services.get_refill_service()

    await refill_service.deactivate(reminder_id, db=db)

    return None
