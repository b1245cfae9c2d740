"""
Tests for Refill Service
Refill reminder lifecycle: create, upcoming window, due, sent, advance
"""

import pytest
from datetime import date, timedelta

from sqlalchemy.orm import Session

from exceptions import NotFoundError, ValidationError
from services.refill_service import RefillState, refill_threshold


TODAY = date(2024, 3, 15)


async def make_reminder(service, db, **overrides):
    data = {
        "patient_id": "patient-1",
        "medication_name": "Metformin",
        "next_refill_date": TODAY + timedelta(days=1),
        "days_before_refill": 2,
    }
    data.update(overrides)
    return await service.create_reminder(**data, db=db)


# =============================================================================
# Create and List
# =============================================================================

class TestCreateRefill:
    """Tests for creating and listing reminders"""

    @pytest.mark.asyncio
    async def test_create_reminder(self, refill_service, db_session: Session):
        reminder = await make_reminder(
            refill_service, db_session,
            current_quantity=10,
            last_refill_date=TODAY - timedelta(days=29),
            prescription_id="rx-1"
        )

        assert reminder.id is not None
        assert reminder.reminder_sent is False
        assert reminder.active is True
        assert reminder.current_quantity == 10
        assert refill_threshold(reminder) == TODAY - timedelta(days=1)

    @pytest.mark.asyncio
    async def test_accepts_iso_strings(self, refill_service, db_session: Session):
        reminder = await make_reminder(refill_service, db_session, next_refill_date="2024-04-01")
        assert reminder.next_refill_date == date(2024, 4, 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,field", [
        ({"patient_id": ""}, "patient_id"),
        ({"medication_name": " "}, "medication_name"),
        ({"days_before_refill": -1}, "days_before_refill"),
        ({"current_quantity": -5}, "current_quantity"),
        ({"next_refill_date": "soon"}, "next_refill_date"),
        ({"last_refill_date": TODAY + timedelta(days=1)}, "next_refill_date"),
    ])
    async def test_rejects_invalid_input(self, refill_service, db_session: Session, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            await make_reminder(refill_service, db_session, **overrides)
        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_list_ordered_by_refill_date(self, refill_service, db_session: Session):
        later = await make_reminder(refill_service, db_session, next_refill_date=TODAY + timedelta(days=20))
        sooner = await make_reminder(refill_service, db_session, next_refill_date=TODAY + timedelta(days=5))
        await make_reminder(refill_service, db_session, patient_id="patient-2")

        reminders = await refill_service.list_reminders("patient-1", db=db_session)
        assert [r.id for r in reminders] == [sooner.id, later.id]


# =============================================================================
# Upcoming and Due
# =============================================================================

class TestUpcomingRefills:
    """Tests for the upcoming window and due detection"""

    @pytest.mark.asyncio
    async def test_tomorrow_inside_seven_day_window(self, refill_service, db_session: Session):
        reminder = await make_reminder(refill_service, db_session)

        upcoming = await refill_service.upcoming("patient-1", 7, db=db_session)
        assert [r.id for r in upcoming] == [reminder.id]

    @pytest.mark.asyncio
    async def test_zero_day_window_is_today_only(self, refill_service, db_session: Session):
        await make_reminder(refill_service, db_session)
        today = await make_reminder(refill_service, db_session, next_refill_date=TODAY)

        upcoming = await refill_service.upcoming("patient-1", 0, db=db_session)
        assert [r.id for r in upcoming] == [today.id]

    @pytest.mark.asyncio
    async def test_window_edges_are_inclusive(self, refill_service, db_session: Session):
        edge = await make_reminder(refill_service, db_session, next_refill_date=TODAY + timedelta(days=7))
        await make_reminder(refill_service, db_session, next_refill_date=TODAY + timedelta(days=8))
        await make_reminder(refill_service, db_session, next_refill_date=TODAY - timedelta(days=1))

        upcoming = await refill_service.upcoming("patient-1", 7, db=db_session)
        assert [r.id for r in upcoming] == [edge.id]

    @pytest.mark.asyncio
    async def test_inactive_excluded(self, refill_service, db_session: Session):
        reminder = await make_reminder(refill_service, db_session)
        await refill_service.deactivate(reminder.id, db=db_session)

        assert await refill_service.upcoming("patient-1", 7, db=db_session) == []
        assert await refill_service.list_reminders("patient-1", db=db_session) == []

    @pytest.mark.asyncio
    async def test_due_uses_lead_time(self, refill_service, db_session: Session):
        due = await make_reminder(refill_service, db_session, days_before_refill=1)
        await make_reminder(
            refill_service, db_session,
            next_refill_date=TODAY + timedelta(days=10), days_before_refill=3
        )

        assert [r.id for r in await refill_service.due("patient-1", db=db_session)] == [due.id]

    @pytest.mark.asyncio
    async def test_sent_reminders_are_not_due(self, refill_service, db_session: Session, test_refill):
        assert refill_service.state_of(test_refill) == RefillState.DUE

        await refill_service.mark_sent(test_refill.id, db=db_session)

        assert refill_service.state_of(test_refill) == RefillState.REMINDED
        assert await refill_service.due("patient-1", db=db_session) == []

    @pytest.mark.asyncio
    async def test_states(self, refill_service, db_session: Session):
        scheduled = await make_reminder(
            refill_service, db_session, next_refill_date=TODAY + timedelta(days=30)
        )
        assert refill_service.state_of(scheduled) == RefillState.SCHEDULED

        await refill_service.deactivate(scheduled.id, db=db_session)
        assert refill_service.state_of(scheduled) == RefillState.INACTIVE


# =============================================================================
# Sent and Advance
# =============================================================================

class TestRefillCycle:
    """Tests for mark_sent / advance"""

    @pytest.mark.asyncio
    async def test_mark_sent_keeps_first_timestamp(self, refill_service, db_session: Session, test_refill, clock):
        first = await refill_service.mark_sent(test_refill.id, db=db_session)
        sent_at = first.reminder_sent_at
        clock.advance(hours=2)
        second = await refill_service.mark_sent(test_refill.id, db=db_session)

        assert second.reminder_sent is True
        assert second.reminder_sent_at == sent_at

    @pytest.mark.asyncio
    async def test_mark_sent_unknown(self, refill_service, db_session: Session):
        with pytest.raises(NotFoundError):
            await refill_service.mark_sent(999, db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sent_first", [True, False])
    async def test_advance_resets_cycle(self, refill_service, db_session: Session, test_refill, sent_first):
        if sent_first:
            await refill_service.mark_sent(test_refill.id, db=db_session)

        new_date = TODAY + timedelta(days=30)
        advanced = await refill_service.advance(test_refill.id, new_date, new_quantity=60, db=db_session)

        assert advanced.reminder_sent is False
        assert advanced.reminder_sent_at is None
        assert advanced.next_refill_date == new_date
        assert advanced.last_refill_date == TODAY
        assert advanced.current_quantity == 60
        assert refill_service.state_of(advanced) == RefillState.SCHEDULED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [0, -3])
    async def test_advance_requires_future_date(self, refill_service, db_session: Session, test_refill, offset):
        with pytest.raises(ValidationError):
            await refill_service.advance(test_refill.id, TODAY + timedelta(days=offset), db=db_session)

    @pytest.mark.asyncio
    async def test_advance_unknown(self, refill_service, db_session: Session):
        with pytest.raises(NotFoundError):
            await refill_service.advance(999, TODAY + timedelta(days=30), db=db_session)

    @pytest.mark.asyncio
    async def test_deactivate_is_idempotent(self, refill_service, db_session: Session, test_refill):
        await refill_service.deactivate(test_refill.id, db=db_session)
        again = await refill_service.deactivate(test_refill.id, db=db_session)
        assert again.active is False

    @pytest.mark.asyncio
    async def test_deactivate_unknown(self, refill_service, db_session: Session):
        with pytest.raises(NotFoundError):
            await refill_service.deactivate(999, db=db_session)
