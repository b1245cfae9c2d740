"""
Notification Schemas
Pydantic models for notification API requests and responses
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from models import NotificationPriority, NotificationType, UserRole


# ==================== REQUEST SCHEMAS ====================

class NotificationCreate(BaseModel):
    """Schema for creating a notification"""
    user_id: Optional[str] = Field(None, min_length=1, max_length=128)
    recipient_role: Optional[UserRole] = None
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None


class RoleNotificationCreate(BaseModel):
    """Schema for a broadcast to a role"""
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Dict[str, Any] = Field(default_factory=dict)


# ==================== RESPONSE SCHEMAS ====================

class NotificationResponse(BaseModel):
    """Schema for notification response"""
    id: int
    user_id: Optional[str] = None
    recipient_role: Optional[UserRole] = None
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    read: bool
    read_at: Optional[datetime] = None
    data: Optional[Dict[str, Any]] = None
    action_url: Optional[str] = None
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    """Unread badge count"""
    user_id: str
    unread_count: int


class BatchResultResponse(BaseModel):
    """Outcome of mark-all-read"""
    succeeded: int
    failed: int
    failed_ids: List[int] = []


class DispatchReportResponse(BaseModel):
    """Outcome of a reminder sweep"""
    patient_id: str
    reminder_type: str
    count: int
    already_sent: int
    dispatched: List[Dict[str, Any]] = []
