"""
Notifications API Router
Endpoints for the in-app notification center
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, notification_limit, services
from api.schemas.notification import (
    NotificationCreate,
    RoleNotificationCreate,
    NotificationResponse,
    UnreadCountResponse,
    BatchResultResponse,
    DispatchReportResponse,
)
from models import UserRole


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification_data: NotificationCreate,
    db: Session = Depends(get_db)
):
    """
    Create a notification for a user or a role
    """
    notification_service = services.get_notification_service()

    return await notification_service.create_notification(
        **notification_data.model_dump(),
        db=db
    )


@router.post("/role/{role}", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def send_role_notification(
    role: UserRole,
    notification_data: RoleNotificationCreate,
    db: Session = Depends(get_db)
):
    """
    Record a broadcast addressed to every holder of a role
    """
    notification_service = services.get_notification_service()

    return await notification_service.send_role_notification(
        role,
        **notification_data.model_dump(),
        db=db
    )


@router.get("/user/{user_id}", response_model=List[NotificationResponse])
async def get_user_notifications(
    user_id: str,
    limit: int = Depends(notification_limit),
    db: Session = Depends(get_db)
):
    """
    Get a user's notifications, most recent first
    """
    notification_service = services.get_notification_service()

    return await notification_service.list_notifications(user_id, limit=limit, db=db)


@router.get("/user/{user_id}/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    user_id: str,
    db: Session = Depends(get_db)
):
    """
    Get the unread badge count
    """
    notification_service = services.get_notification_service()

    count = await notification_service.unread_count(user_id, db=db)

    return UnreadCountResponse(user_id=user_id, unread_count=count)


@router.post("/user/{user_id}/read-all", response_model=BatchResultResponse)
async def mark_all_read(
    user_id: str,
    db: Session = Depends(get_db)
):
    """
    Mark every unread notification read
    """
    notification_service = services.get_notification_service()

    result = await notification_service.mark_all_read(user_id, db=db)

    return result.to_dict()


@router.post("/dispatch/{patient_id}/doses", response_model=DispatchReportResponse)
async def dispatch_dose_reminders(
    patient_id: str,
    db: Session = Depends(get_db)
):
    """
    Notify a patient about doses starting soon
    """
    reminder_engine = services.get_reminder_engine()

    report = await reminder_engine.dispatch_dose_reminders(patient_id, db=db)

    return report.to_dict()


@router.post("/dispatch/{patient_id}/refills", response_model=DispatchReportResponse)
async def dispatch_refill_reminders(
    patient_id: str,
    db: Session = Depends(get_db)
):
    """
    Notify a patient about refills that are due
    """
    reminder_engine = services.get_reminder_engine()

    report = await reminder_engine.dispatch_refill_reminders(patient_id, db=db)

    return report.to_dict()


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a notification by id, deleted or not
    """
    notification_service = services.get_notification_service()

    notification = await notification_service.get_notification(notification_id, db=db)

    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification {notification_id} not found"
        )

    return notification


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db)
):
    """
    Mark a notification read
    """
    notification_service = services.get_notification_service()

    return await notification_service.mark_read(notification_id, db=db)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db)
):
    """
    Soft-delete a notification
    """
    notification_service = services.get_notification_service()

    await notification_service.delete_notification(notification_id, db=db)

    return None
