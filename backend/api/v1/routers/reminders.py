"""
Reminders Router — business reminders and their due state.

Agent: full-stack-engineer
Skill: fastapi
"""

from datetime import date, datetime, time
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_user_id
from reminders.notifications import list_reminders, reminder_state, toggle_completion

router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


class ReminderResponse(BaseModel):
    id: UUID
    title: str
    description: str | None
    reminder_date: date
    reminder_time: time | None
    priority: str
    category: str
    is_completed: bool
    is_notified: bool
    recurring_type: str
    state: str  # "completed", "due", "approaching", "upcoming"


def _to_response(reminder, now: datetime) -> ReminderResponse:
    return ReminderResponse(
        id=reminder.id,
        title=reminder.title,
        description=reminder.description,
        reminder_date=reminder.reminder_date,
        reminder_time=reminder.reminder_time,
        priority=reminder.priority,
        category=reminder.category,
        is_completed=reminder.is_completed,
        is_notified=reminder.is_notified,
        recurring_type=reminder.recurring_type,
        state=reminder_state(reminder, now),
    )


@router.get("", response_model=list[ReminderResponse])
async def get_reminders(
    include_completed: bool = True,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    now = datetime.utcnow()
    return [_to_response(r, now) for r in await list_reminders(db, user_id, include_completed)]


@router.patch("/{reminder_id}/complete", response_model=ReminderResponse)
async def complete_reminder(
    reminder_id: UUID,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Toggle a reminder's completion flag."""
    reminder = await toggle_completion(db, user_id, reminder_id)
    return _to_response(reminder, datetime.utcnow())
