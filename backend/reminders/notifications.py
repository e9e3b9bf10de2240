"""
Business reminder scheduling and notification dispatch.

A reminder is due at reminder_date + reminder_time (midnight when no time is
set). Relative to "now" a pending reminder is:
  - due:          due time has passed
  - approaching:  due within reminder_approaching_window_minutes (15)
  - upcoming:     anything later

dispatch_due_reminders picks every reminder that is not completed, not yet
notified and due within reminder_notify_window_minutes (30), overdue ones
included, builds its notification and flips is_notified so it is sent once.
Delivery itself (push, SMS, email) is not handled here.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import NotFoundError
from db.models import Reminder
from db.queries import fetch_one, fetch_rows

logger = structlog.get_logger()

STATE_COMPLETED = "completed"
STATE_DUE = "due"
STATE_APPROACHING = "approaching"
STATE_UPCOMING = "upcoming"


def due_at(reminder: Reminder) -> datetime:
    return datetime.combine(reminder.reminder_date, reminder.reminder_time or time.min)


def reminder_state(reminder: Reminder, now: datetime) -> str:
    if reminder.is_completed:
        return STATE_COMPLETED
    remaining = due_at(reminder) - now
    if remaining <= timedelta(0):
        return STATE_DUE
    if remaining <= timedelta(minutes=get_settings().reminder_approaching_window_minutes):
        return STATE_APPROACHING
    return STATE_UPCOMING


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def notification_message(reminder: Reminder, now: datetime) -> str:
    due = due_at(reminder)
    message = ""
    if due < now:
        overdue_days = (now - due).days
        if overdue_days > 0:
            message = f"This reminder is {_plural(overdue_days, 'day')} overdue. "
        else:
            message = "This reminder is overdue. "
    else:
        minutes = int((due - now).total_seconds() // 60)
        if minutes <= get_settings().reminder_notify_window_minutes:
            message = f"This reminder is due in {_plural(minutes, 'minute')}. "

    if reminder.description:
        message += f"Details: {reminder.description}"
    message += f" Priority: {(reminder.priority or 'medium').upper()}"
    return message


@dataclass(frozen=True)
class ReminderNotification:
    reminder_id: uuid.UUID
    user_id: uuid.UUID
    title: str
    message: str
    priority: str
    category: str
    reminder_date: date


async def list_reminders(db: AsyncSession, user_id: uuid.UUID, include_completed: bool = True) -> list[Reminder]:
    stmt = select(Reminder).where(Reminder.user_id == user_id)
    if not include_completed:
        stmt = stmt.where(Reminder.is_completed.is_(False))
    stmt = stmt.order_by(Reminder.reminder_date, Reminder.reminder_time)
    return await fetch_rows(db, stmt, source="business_reminders")


async def dispatch_due_reminders(db: AsyncSession, now: datetime | None = None) -> list[ReminderNotification]:
    """Build notifications for reminders entering the notify window and mark them notified."""
    now = now or datetime.utcnow()
    horizon = now + timedelta(minutes=get_settings().reminder_notify_window_minutes)

    candidates = await fetch_rows(
        db,
        select(Reminder).where(
            Reminder.is_completed.is_(False),
            Reminder.is_notified.is_(False),
            Reminder.reminder_date <= horizon.date(),
        ),
        source="business_reminders",
    )

    notifications: list[ReminderNotification] = []
    for reminder in candidates:
        if due_at(reminder) > horizon:
            continue
        notifications.append(
            ReminderNotification(
                reminder_id=reminder.id,
                user_id=reminder.user_id,
                title=f"⏰ Business Reminder: {reminder.title}",
                message=notification_message(reminder, now),
                priority=reminder.priority,
                category=reminder.category,
                reminder_date=reminder.reminder_date,
            )
        )
        reminder.is_notified = True

    if notifications:
        await db.commit()
    logger.info("reminders.dispatched", candidates=len(candidates), notified=len(notifications))
    return notifications


async def toggle_completion(db: AsyncSession, user_id: uuid.UUID, reminder_id: uuid.UUID) -> Reminder:
    reminder = await fetch_one(
        db,
        select(Reminder).where(Reminder.id == reminder_id, Reminder.user_id == user_id),
        source="business_reminders",
    )
    if reminder is None:
        raise NotFoundError("Reminder", str(reminder_id))

    reminder.is_completed = not reminder.is_completed
    await db.commit()
    logger.info("reminders.completion_toggled", reminder_id=str(reminder_id), completed=reminder.is_completed)
    return reminder
