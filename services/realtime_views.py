"""
Realtime Views
Independent projections of a user's notification feed (badge, panel).

Each view owns its own subscription and treats every snapshot as the whole
truth. Two views of the same user may briefly disagree but both converge on
the latest snapshot.
"""

import logging
import threading
from typing import List, Optional, Tuple
from datetime import datetime
from sqlalchemy.orm import Session

from config import reminder_config
from services.notification_service import (
    NotificationService,
    NotificationSnapshot,
    NotificationView,
    notification_service as default_notification_service,
)


logger = logging.getLogger(__name__)


class _FeedView:
    """Base: subscribes on construction, folds snapshots, close() tears down"""

    def __init__(
        self,
        user_id: str,
        service: Optional[NotificationService] = None,
        limit: int = reminder_config.NOTIFICATION_PAGE_SIZE,
        db: Optional[Session] = None
    ):
        self.user_id = user_id
        self.updates = 0
        self.updated_at: Optional[datetime] = None
        self._lock = threading.Lock()
        self._service = service or default_notification_service
        self._subscription = self._service.subscribe(user_id, self._on_snapshot, limit=limit, db=db)

    @property
    def closed(self) -> bool:
        return not self._subscription.active

    def _on_snapshot(self, snapshot: NotificationSnapshot) -> None:
        with self._lock:
            self._apply(snapshot)
            self.updates += 1
            self.updated_at = snapshot.generated_at

    def _apply(self, snapshot: NotificationSnapshot) -> None:
        raise NotImplementedError

    def close(self) -> None:
        self._subscription.unsubscribe()
        logger.debug(f"{type(self).__name__} for {self.user_id} closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class UnreadBadgeView(_FeedView):
    """Unread count shown in the app layout"""

    count: int = 0

    def _apply(self, snapshot: NotificationSnapshot) -> None:
        self.count = snapshot.unread_count

    @property
    def label(self) -> str:
        if self.count <= 0:
            return ""
        return "99+" if self.count > 99 else str(self.count)


class NotificationPanelView(_FeedView):
    """Notification list panel"""

    items: Tuple[NotificationView, ...] = ()
    unread_count: int = 0

    def _apply(self, snapshot: NotificationSnapshot) -> None:
        self.items = snapshot.items
        self.unread_count = snapshot.unread_count

    def unread(self) -> List[NotificationView]:
        return [item for item in self.items if not item.read]

    def find(self, notification_id: int) -> Optional[NotificationView]:
        for item in self.items:
            if item.id == notification_id:
                return item
        return None
