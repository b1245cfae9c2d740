"""
Tests for Realtime Views
Badge and panel projections over independent subscriptions
"""

import pytest
from sqlalchemy.orm import Session

from models import NotificationType
from services.realtime_views import NotificationPanelView, UnreadBadgeView


async def notify(service, db, user_id="user-1"):
    return await service.create_notification(
        type=NotificationType.NEW_MESSAGE,
        title="New message",
        message="You have a new message",
        user_id=user_id,
        db=db
    )


class TestRealtimeViews:
    """Tests for badge and panel views"""

    @pytest.mark.asyncio
    async def test_views_start_from_current_state(self, notification_service, db_session: Session):
        await notify(notification_service, db_session)

        badge = UnreadBadgeView("user-1", service=notification_service, db=db_session)
        panel = NotificationPanelView("user-1", service=notification_service, db=db_session)

        assert badge.count == 1
        assert badge.label == "1"
        assert len(panel.items) == 1
        assert panel.unread_count == 1

    @pytest.mark.asyncio
    async def test_views_converge_on_latest_snapshot(self, notification_service, db_session: Session):
        badge = UnreadBadgeView("user-1", service=notification_service, db=db_session)
        panel = NotificationPanelView("user-1", service=notification_service, db=db_session)

        first = await notify(notification_service, db_session)
        second = await notify(notification_service, db_session)
        await notification_service.mark_read(first.id, db=db_session)

        assert badge.count == 1
        assert panel.unread_count == 1
        assert [item.id for item in panel.unread()] == [second.id]
        assert panel.find(first.id).read is True

        await notification_service.mark_all_read("user-1", db=db_session)

        assert badge.count == 0
        assert badge.label == ""
        assert panel.unread() == []

    @pytest.mark.asyncio
    async def test_closing_one_view_leaves_the_other(self, notification_service, db_session: Session):
        badge = UnreadBadgeView("user-1", service=notification_service, db=db_session)
        panel = NotificationPanelView("user-1", service=notification_service, db=db_session)

        panel.close()
        await notify(notification_service, db_session)

        assert panel.closed
        assert not badge.closed
        assert badge.count == 1
        assert panel.items == ()
        assert notification_service.feed.subscriber_count("user-1") == 1

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, notification_service, db_session: Session):
        with UnreadBadgeView("user-1", service=notification_service, db=db_session) as badge:
            await notify(notification_service, db_session)
            assert badge.count == 1

        await notify(notification_service, db_session)
        assert badge.count == 1
        assert badge.updates == 2

    @pytest.mark.asyncio
    async def test_badge_label_caps(self, notification_service, db_session: Session):
        badge = UnreadBadgeView("user-1", service=notification_service, db=db_session)
        badge.count = 150
        assert badge.label == "99+"

    @pytest.mark.asyncio
    async def test_deleted_items_leave_panel(self, notification_service, db_session: Session):
        panel = NotificationPanelView("user-1", service=notification_service, db=db_session)
        notification = await notify(notification_service, db_session)

        await notification_service.delete_notification(notification.id, db=db_session)

        assert panel.find(notification.id) is None
        assert panel.unread_count == 0
