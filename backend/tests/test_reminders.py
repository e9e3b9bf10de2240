"""
Tests for reminder states, notification messages and dispatch.
"""

import uuid
from datetime import time, timedelta

import pytest
from conftest import NOW, OTHER_USER_ID, USER_ID

from core.errors import NotFoundError
from db.models import Reminder
from reminders.notifications import (
    STATE_APPROACHING,
    STATE_COMPLETED,
    STATE_DUE,
    STATE_UPCOMING,
    dispatch_due_reminders,
    list_reminders,
    notification_message,
    reminder_state,
    toggle_completion,
)


def build(when=None, title="Pay supplier", **extra):
    when = when or NOW
    return Reminder(
        user_id=extra.pop("user_id", USER_ID),
        title=title,
        reminder_date=when.date(),
        reminder_time=extra.pop("reminder_time", when.time()),
        priority=extra.pop("priority", "medium"),
        category=extra.pop("category", "payment"),
        is_completed=extra.pop("is_completed", False),
        is_notified=extra.pop("is_notified", False),
        **extra,
    )


async def add(db, *reminders):
    db.add_all(reminders)
    await db.commit()
    return reminders


class TestReminderState:
    @pytest.mark.parametrize(
        "offset,expected",
        [
            (timedelta(minutes=-1), STATE_DUE),
            (timedelta(0), STATE_DUE),
            (timedelta(minutes=15), STATE_APPROACHING),
            (timedelta(minutes=16), STATE_UPCOMING),
            (timedelta(days=2), STATE_UPCOMING),
        ],
    )
    def test_state_by_time_left(self, offset, expected):
        assert reminder_state(build(NOW + offset), NOW) == expected

    def test_completed_wins(self):
        assert reminder_state(build(NOW - timedelta(days=1), is_completed=True), NOW) == STATE_COMPLETED

    def test_missing_time_means_midnight(self):
        reminder = build(NOW, reminder_time=None)
        assert reminder_state(reminder, NOW) == STATE_DUE


class TestNotificationMessage:
    def test_due_soon(self):
        reminder = build(NOW + timedelta(minutes=20), description="Call Kofi", priority="high")
        assert notification_message(reminder, NOW) == (
            "This reminder is due in 20 minutes. Details: Call Kofi Priority: HIGH"
        )

    def test_days_overdue(self):
        reminder = build(NOW - timedelta(days=2, hours=3))
        assert notification_message(reminder, NOW).startswith("This reminder is 2 days overdue.")

    def test_one_day_overdue_is_singular(self):
        reminder = build(NOW - timedelta(days=1, hours=1))
        assert "1 day overdue" in notification_message(reminder, NOW)

    def test_overdue_same_day(self):
        reminder = build(NOW, reminder_time=None)
        assert notification_message(reminder, NOW).startswith("This reminder is overdue.")

    def test_far_future_has_no_timing_text(self):
        reminder = build(NOW + timedelta(hours=3))
        assert notification_message(reminder, NOW) == " Priority: MEDIUM"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatches_due_and_overdue_once(self, test_db):
        soon, overdue, later, done, sent = await add(
            test_db,
            build(NOW + timedelta(minutes=20), title="soon"),
            build(NOW - timedelta(days=2), title="overdue"),
            build(NOW + timedelta(hours=2), title="later"),
            build(NOW - timedelta(hours=1), title="done", is_completed=True),
            build(NOW - timedelta(hours=1), title="sent", is_notified=True),
        )

        notifications = await dispatch_due_reminders(test_db, now=NOW)
        assert sorted(n.title for n in notifications) == [
            "⏰ Business Reminder: overdue",
            "⏰ Business Reminder: soon",
        ]
        assert soon.is_notified and overdue.is_notified
        assert not later.is_notified

        assert await dispatch_due_reminders(test_db, now=NOW) == []

    @pytest.mark.asyncio
    async def test_window_crossing_midnight(self, test_db):
        late_night = NOW.replace(hour=23, minute=50)
        [reminder] = await add(test_db, build(late_night + timedelta(minutes=20)))

        [notification] = await dispatch_due_reminders(test_db, now=late_night)
        assert notification.reminder_id == reminder.id


class TestListAndToggle:
    @pytest.mark.asyncio
    async def test_list_filters_completed(self, test_db):
        await add(
            test_db,
            build(NOW, title="open"),
            build(NOW, title="closed", is_completed=True),
            build(NOW, title="theirs", user_id=OTHER_USER_ID),
        )
        assert sorted(r.title for r in await list_reminders(test_db, USER_ID)) == ["closed", "open"]
        assert [r.title for r in await list_reminders(test_db, USER_ID, include_completed=False)] == ["open"]

    @pytest.mark.asyncio
    async def test_toggle_flips_completion_only(self, test_db):
        [reminder] = await add(test_db, build(NOW, reminder_time=time(9, 0), is_notified=True))

        toggled = await toggle_completion(test_db, USER_ID, reminder.id)
        assert toggled.is_completed
        assert toggled.is_notified
        toggled = await toggle_completion(test_db, USER_ID, reminder.id)
        assert not toggled.is_completed

    @pytest.mark.asyncio
    async def test_toggle_other_users_reminder(self, test_db):
        [reminder] = await add(test_db, build(NOW))
        with pytest.raises(NotFoundError):
            await toggle_completion(test_db, OTHER_USER_ID, reminder.id)
        with pytest.raises(NotFoundError):
            await toggle_completion(test_db, USER_ID, uuid.uuid4())
