"""
Notification Service
Notification Center: in-app notification records, read state and live feeds
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, field
from datetime import datetime
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import reminder_config
from database import get_db_context, persistence_guard
from exceptions import NotFoundError, ValidationError, require_identity
from models import AppNotification, NotificationPriority, NotificationType, UserRole
from tools.change_feed import ChangeFeed, Subscription


logger = logging.getLogger(__name__)


# Notification templates
NOTIFICATION_TEMPLATES: Dict[NotificationType, Dict[str, Any]] = {
    NotificationType.MEDICATION_REMINDER: {
        "title": "Time for Medication",
        "message": "Take {medication_name} ({dosage}) at {time}",
        "priority": NotificationPriority.HIGH,
        "action_url": "/health?tab=medications",
    },
    NotificationType.PRESCRIPTION_READY: {
        "title": "Refill Reminder",
        "message": "Your {medication_name} needs a refill by {next_refill_date}",
        "priority": NotificationPriority.HIGH,
        "action_url": "/health?tab=medications",
    },
    NotificationType.APPOINTMENT_REMINDER: {
        "title": "Appointment Reminder",
        "message": "You have an appointment with {doctor_name} on {date} at {time}",
        "priority": NotificationPriority.HIGH,
        "action_url": "/consultations?appointment={appointment_id}",
    },
    NotificationType.PAYMENT_SUCCESS: {
        "title": "Payment Successful",
        "message": "Your payment of {currency} {amount} was successful",
        "priority": NotificationPriority.NORMAL,
        "action_url": "/profile?tab=transactions",
    },
    NotificationType.PAYMENT_FAILED: {
        "title": "Payment Failed",
        "message": "Payment of {currency} {amount} failed. Please try again.",
        "priority": NotificationPriority.NORMAL,
        "action_url": "/profile?tab=payments",
    },
    NotificationType.ORDER_UPDATE: {
        "title": "Order Update",
        "message": "Your order #{order_number} is now {status}",
        "priority": NotificationPriority.NORMAL,
        "action_url": "/orders?order={order_id}",
    },
    NotificationType.SOS_ALERT: {
        "title": "SOS Alert",
        "message": "{patient_name} triggered an SOS alert{location_note}",
        "priority": NotificationPriority.URGENT,
        "action_url": "/sos?alert={alert_id}",
    },
}


def _format_amount(amount: float) -> str:
    return f"{amount:,.2f}".rstrip("0").rstrip(".")


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown {field_name}: {value!r}", field=field_name)


@dataclass(frozen=True)
class NotificationView:
    """Detached copy of a notification handed to subscribers"""
    id: int
    user_id: Optional[str]
    recipient_role: Optional[str]
    type: str
    title: str
    message: str
    priority: str
    read: bool
    read_at: Optional[datetime]
    data: Dict[str, Any]
    action_url: Optional[str]
    created_at: Optional[datetime]
    deleted: bool = False

    @classmethod
    def from_model(cls, notification: AppNotification) -> "NotificationView":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            recipient_role=notification.recipient_role.value if notification.recipient_role else None,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            priority=notification.priority.value,
            read=bool(notification.read),
            read_at=notification.read_at,
            data=dict(notification.data or {}),
            action_url=notification.action_url,
            created_at=notification.created_at,
            deleted=bool(notification.deleted),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "recipient_role": self.recipient_role,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "data": self.data,
            "action_url": self.action_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "deleted": self.deleted,
        }


@dataclass(frozen=True)
class NotificationSnapshot:
    """Full state of a user's feed at one instant. Never a diff."""
    user_id: str
    items: Tuple[NotificationView, ...]
    unread_count: int
    generated_at: datetime


@dataclass
class BatchResult:
    """Outcome of a multi-record operation"""
    succeeded: int = 0
    failed: int = 0
    failed_ids: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
        }


class NotificationService:
    """
    Notification Center.

    Every write touching a user's notifications pushes a fresh snapshot to
    each of that user's live subscriptions.
    """

    def __init__(
        self,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.feed = feed or ChangeFeed()
        self.clock = clock
        self.templates = NOTIFICATION_TEMPLATES

    # ==================== QUERIES ====================

    def _visible(self, user_id: str):
        return and_(
            AppNotification.user_id == user_id,
            AppNotification.deleted == False  # noqa: E712
        )

    def _list(self, session: Session, user_id: str, limit: int) -> List[AppNotification]:
        return session.query(AppNotification).filter(
            self._visible(user_id)
        ).order_by(
            AppNotification.created_at.desc(),
            AppNotification.id.desc()
        ).limit(limit).all()

    def _unread(self, session: Session, user_id: str) -> int:
        return session.query(AppNotification).filter(
            and_(
                self._visible(user_id),
                AppNotification.read == False  # noqa: E712
            )
        ).count()

    def _snapshot(self, session: Session, user_id: str, limit: int) -> NotificationSnapshot:
        return NotificationSnapshot(
            user_id=user_id,
            items=tuple(NotificationView.from_model(n) for n in self._list(session, user_id, limit)),
            unread_count=self._unread(session, user_id),
            generated_at=self.clock(),
        )

    def _publish(self, session: Session, user_id: Optional[str]) -> None:
        if not user_id:
            return
        self.feed.publish(
            user_id,
            lambda sub: self._snapshot(
                session, user_id, sub.options.get("limit", reminder_config.NOTIFICATION_PAGE_SIZE)
            )
        )

    # ==================== COMMANDS ====================

    async def create_notification(
        self,
        type: Union[str, NotificationType],
        title: str,
        message: str,
        user_id: Optional[str] = None,
        recipient_role: Union[str, UserRole, None] = None,
        priority: Union[str, NotificationPriority] = NotificationPriority.NORMAL,
        data: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
        db: Optional[Session] = None
    ) -> AppNotification:
        """
        Create a notification. Callers are responsible for not double-firing.

        Args:
            type: NotificationType
            title: Short title
            message: Body text
            user_id: Target user
            recipient_role: Target role for broadcast (stored as-is, no fan-out)
            priority: LOW, NORMAL, HIGH or URGENT
            data: Arbitrary structured payload
            action_url: Deep link
            db: Database session

        Returns:
            Created AppNotification (unread)
        """
        notification_type = _parse_enum(NotificationType, type, "type")
        notification_priority = _parse_enum(NotificationPriority, priority, "priority")
        role = _parse_enum(UserRole, recipient_role, "recipient_role") if recipient_role else None
        if user_id is not None:
            user_id = require_identity(user_id, "user_id")
        if not user_id and not role:
            raise ValidationError("A notification needs a user_id or a recipient_role", field="user_id")
        if not title or not title.strip():
            raise ValidationError("title is required", field="title")
        if message is None:
            raise ValidationError("message is required", field="message")

        def _create(session: Session) -> AppNotification:
            with persistence_guard(session, "create_notification"):
                notification = AppNotification(
                    user_id=user_id,
                    recipient_role=role,
                    type=notification_type,
                    title=title.strip(),
                    message=message,
                    priority=notification_priority,
                    read=False,
                    data=data or {},
                    action_url=action_url,
                    deleted=False,
                    created_at=self.clock()
                )
                session.add(notification)
                session.commit()
                session.refresh(notification)

            target = user_id or f"role:{role.value}"
            logger.info(f"Created {notification_type.value} notification {notification.id} for {target}")
            self._publish(session, user_id)
            return notification

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def mark_read(
        self,
        notification_id: int,
        db: Optional[Session] = None
    ) -> AppNotification:
        """Mark one notification read. Raises NotFoundError for unknown ids."""
        def _mark(session: Session) -> AppNotification:
            with persistence_guard(session, "mark_read"):
                notification = session.get(AppNotification, notification_id)
                if not notification:
                    raise NotFoundError("AppNotification", notification_id)
                if notification.read:
                    return notification
                notification.read = True
                notification.read_at = self.clock()
                session.commit()
                session.refresh(notification)

            self._publish(session, notification.user_id)
            return notification

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)

    async def mark_all_read(
        self,
        user_id: str,
        db: Optional[Session] = None
    ) -> BatchResult:
        """
        Mark every unread notification of a user read.

        Each record is committed on its own; a failure is logged, counted and
        does not stop the batch.
        """
        user_id = require_identity(user_id, "user_id")

        def _mark_all(session: Session) -> BatchResult:
            with persistence_guard(session, "mark_all_read"):
                pending_ids = [
                    row.id for row in session.query(AppNotification.id).filter(
                        and_(
                            self._visible(user_id),
                            AppNotification.read == False  # noqa: E712
                        )
                    ).order_by(AppNotification.id).all()
                ]

            result = BatchResult()
            for notification_id in pending_ids:
                try:
                    notification = session.get(AppNotification, notification_id)
                    notification.read = True
                    notification.read_at = self.clock()
                    session.commit()
                    result.succeeded += 1
                except SQLAlchemyError as e:
                    session.rollback()
                    result.failed += 1
                    result.failed_ids.append(notification_id)
                    logger.error(f"Failed to mark notification {notification_id} read: {e}")

            logger.info(
                f"mark_all_read for {user_id}: {result.succeeded} succeeded, {result.failed} failed"
            )
            if pending_ids:
                self._publish(session, user_id)
            return result

        if db:
            return _mark_all(db)

        with get_db_context() as session:
            return _mark_all(session)

    async def delete_notification(
        self,
        notification_id: int,
        db: Optional[Session] = None
    ) -> AppNotification:
        """Soft-delete: the record stays, flagged deleted"""
        def _delete(session: Session) -> AppNotification:
            with persistence_guard(session, "delete_notification"):
                notification = session.get(AppNotification, notification_id)
                if not notification:
                    raise NotFoundError("AppNotification", notification_id)
                if notification.deleted:
                    return notification
                notification.deleted = True
                notification.deleted_at = self.clock()
                session.commit()
                session.refresh(notification)

            logger.info(f"Deleted notification {notification_id}")
            self._publish(session, notification.user_id)
            return notification

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)

    # ==================== READS ====================

    async def get_notification(
        self,
        notification_id: int,
        db: Optional[Session] = None
    ) -> Optional[AppNotification]:
        """Direct fetch by id, including soft-deleted records"""
        def _get(session: Session) -> Optional[AppNotification]:
            with persistence_guard(session, "get_notification"):
                return session.get(AppNotification, notification_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_notifications(
        self,
        user_id: str,
        limit: int = reminder_config.NOTIFICATION_PAGE_SIZE,
        db: Optional[Session] = None
    ) -> List[AppNotification]:
        """Most recent first, capped at limit, soft-deleted excluded"""
        user_id = require_identity(user_id, "user_id")
        if limit < 1:
            return []

        def _get(session: Session) -> List[AppNotification]:
            with persistence_guard(session, "list_notifications"):
                return self._list(session, user_id, limit)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def unread_count(
        self,
        user_id: str,
        db: Optional[Session] = None
    ) -> int:
        """Unread, non-deleted notifications of a user"""
        user_id = require_identity(user_id, "user_id")

        def _get(session: Session) -> int:
            with persistence_guard(session, "unread_count"):
                return self._unread(session, user_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    # ==================== LIVE FEED ====================

    def subscribe(
        self,
        user_id: str,
        callback: Callable[[NotificationSnapshot], None],
        limit: int = reminder_config.NOTIFICATION_PAGE_SIZE,
        db: Optional[Session] = None
    ) -> Subscription:
        """
        Register a live feed for a user.

        The callback receives the current snapshot right away and a new full
        snapshot after every change. Call the returned handle (or its
        unsubscribe()) on teardown.
        """
        user_id = require_identity(user_id, "user_id")
        subscription = self.feed.subscribe(user_id, callback, limit=limit)

        def _initial(sub: Subscription) -> NotificationSnapshot:
            if db:
                with persistence_guard(db, "subscribe"):
                    return self._snapshot(db, user_id, limit)
            with get_db_context() as session:
                with persistence_guard(session, "subscribe"):
                    return self._snapshot(session, user_id, limit)

        try:
            subscription.deliver(_initial)
        except Exception:
            # never leave a live subscription without a handle
            subscription.unsubscribe()
            raise
        return subscription

    # ==================== PRODUCERS ====================

    async def _from_template(
        self,
        notification_type: NotificationType,
        user_id: str,
        data: Dict[str, Any],
        db: Optional[Session] = None,
        **fmt: Any
    ) -> AppNotification:
        template = self.templates[notification_type]
        values = {**data, **fmt}
        return await self.create_notification(
            type=notification_type,
            title=template["title"],
            message=template["message"].format(**values),
            user_id=user_id,
            priority=template["priority"],
            data=data,
            action_url=template["action_url"].format(**values),
            db=db
        )

    async def send_medication_reminder(
        self,
        user_id: str,
        medication_name: str,
        dosage: str,
        time: str,
        extra: Optional[Dict[str, Any]] = None,
        db: Optional[Session] = None
    ) -> AppNotification:
        data = {"medication_name": medication_name, "dosage": dosage, "time": time, **(extra or {})}
        return await self._from_template(NotificationType.MEDICATION_REMINDER, user_id, data, db=db)

    async def send_refill_reminder(
        self,
        user_id: str,
        medication_name: str,
        next_refill_date: str,
        reminder_id: Optional[int] = None,
        db: Optional[Session] = None
    ) -> AppNotification:
        data = {
            "medication_name": medication_name,
            "next_refill_date": next_refill_date,
            "reminder_id": reminder_id,
        }
        return await self._from_template(NotificationType.PRESCRIPTION_READY, user_id, data, db=db)

    async def send_appointment_reminder(
        self,
        user_id: str,
        appointment_id: str,
        doctor_name: str,
        date: str,
        time: str,
        db: Optional[Session] = None
    ) -> AppNotification:
        data = {"appointment_id": appointment_id, "doctor_name": doctor_name, "date": date, "time": time}
        return await self._from_template(NotificationType.APPOINTMENT_REMINDER, user_id, data, db=db)

    async def send_payment_notification(
        self,
        user_id: str,
        success: bool,
        amount: float,
        currency: str,
        transaction_id: str,
        db: Optional[Session] = None
    ) -> AppNotification:
        notification_type = NotificationType.PAYMENT_SUCCESS if success else NotificationType.PAYMENT_FAILED
        data = {"amount": amount, "currency": currency, "transaction_id": transaction_id}
        return await self._from_template(
            notification_type, user_id, data, db=db, amount=_format_amount(amount)
        )

    async def send_order_update(
        self,
        user_id: str,
        order_id: str,
        status: str,
        order_number: str,
        db: Optional[Session] = None
    ) -> AppNotification:
        data = {"order_id": order_id, "status": status, "order_number": order_number}
        return await self._from_template(NotificationType.ORDER_UPDATE, user_id, data, db=db)

    async def send_sos_alert(
        self,
        user_id: str,
        alert_id: str,
        patient_name: str,
        location: Optional[str] = None,
        db: Optional[Session] = None
    ) -> AppNotification:
        data = {"alert_id": alert_id, "patient_name": patient_name, "location": location}
        location_note = f" at {location}" if location else ""
        return await self._from_template(
            NotificationType.SOS_ALERT, user_id, data, db=db, location_note=location_note
        )

    async def send_role_notification(
        self,
        role: Union[str, UserRole],
        type: Union[str, NotificationType],
        title: str,
        message: str,
        priority: Union[str, NotificationPriority] = NotificationPriority.NORMAL,
        data: Optional[Dict[str, Any]] = None,
        db: Optional[Session] = None
    ) -> AppNotification:
        """Broadcast record addressed to a role; fan-out happens elsewhere"""
        return await self.create_notification(
            type=type,
            title=title,
            message=message,
            recipient_role=role,
            priority=priority,
            data=data,
            db=db
        )


# Singleton instance
notification_service = NotificationService()
