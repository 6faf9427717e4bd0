# file: services/reminder_processor.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import minutes_before
from app.database.models import Reminder, CalendarEvent, IN_APP_CHANNEL, utcnow
from app.models.notification import NotificationCreate
from app.services.notification_service import create_notification

logger = logging.getLogger(__name__)


class DueReminder(NamedTuple):
    reminder_id: int
    event_id: int
    user_id: int
    event_title: str
    start_at: datetime
    lead_minutes: int
    message: Optional[str]


@dataclass
class ReminderFailure:
    reminder_id: int
    error: str


@dataclass
class ReminderRunResult:
    processed: int = 0
    notification_ids: List[int] = field(default_factory=list)
    failures: List[ReminderFailure] = field(default_factory=list)


TITLE_MAX_LENGTH = 255


def reminder_title(event_title: str) -> str:
    return f"Reminder: {event_title}"[:TITLE_MAX_LENGTH]


def reminder_message(reminder: DueReminder) -> str:
    if reminder.message:
        return reminder.message
    return f'Your event "{reminder.event_title}" is coming up in {reminder.lead_minutes} minutes.'


def is_due(reminder: DueReminder, now: datetime) -> bool:
    """True while now lies in [start - lead, start)."""
    return reminder.start_at - timedelta(minutes=reminder.lead_minutes) <= now < reminder.start_at


async def fetch_due_reminders(db: AsyncSession, now: datetime) -> List[DueReminder]:
    """
    Active, unsent in-app reminders whose event has not started yet and whose
    lead-time window is open. The window is filtered in SQL and re-checked
    exactly with `is_due`. Rows come back in the database's default order.
    """
    stmt = (
        select(
            Reminder.id,
            Reminder.event_id,
            CalendarEvent.user_id,
            CalendarEvent.title,
            CalendarEvent.start_at,
            Reminder.lead_minutes,
            Reminder.message,
        )
        .join(CalendarEvent, Reminder.event_id == CalendarEvent.id)
        .where(
            Reminder.active == True,  # noqa: E712
            Reminder.sent == False,  # noqa: E712
            Reminder.channel == IN_APP_CHANNEL,
            CalendarEvent.start_at > now,
            minutes_before(db, CalendarEvent.start_at, Reminder.lead_minutes) <= now,
        )
    )
    result = await db.execute(stmt)
    candidates = [DueReminder(*row) for row in result.all()]
    return [reminder for reminder in candidates if is_due(reminder, now)]


async def _deliver(db: AsyncSession, reminder: DueReminder, now: datetime) -> Optional[int]:
    """
    Claims the reminder and creates its notification in one transaction.
    Returns the notification id, or None when another run claimed it first.
    """
    claim = await db.execute(
        update(Reminder)
        .where(Reminder.id == reminder.reminder_id, Reminder.sent == False)  # noqa: E712
        .values(sent=True, sent_at=now)
    )
    if claim.rowcount == 0:
        await db.rollback()
        return None

    notification = await create_notification(
        db,
        reminder.user_id,
        NotificationCreate(
            title=reminder_title(reminder.event_title),
            message=reminder_message(reminder),
            type="reminder",
            event_id=reminder.event_id,
            reminder_id=reminder.reminder_id,
        ),
        commit=False,
    )
    notification_id = notification.id
    await db.commit()
    return notification_id


async def process_pending_reminders(db: AsyncSession, now: Optional[datetime] = None) -> ReminderRunResult:
    """
    Turns every due reminder into a 'reminder' notification and marks it sent.
    Each reminder is its own transaction; a failing one is rolled back,
    recorded in the result, and the rest are still processed.
    """
    now = now or utcnow()
    logger.info("Running reminder check at %s", now.isoformat())

    due = await fetch_due_reminders(db, now)
    # End the read transaction so every delivery starts a fresh one.
    await db.commit()

    result = ReminderRunResult()
    if not due:
        logger.info(" -> No due reminders.")
        return result

    logger.info(" -> Found %d due reminders.", len(due))
    for reminder in due:
        try:
            notification_id = await _deliver(db, reminder, now)
        except Exception as e:
            await db.rollback()
            logger.exception(" -> Failed to deliver reminder %s", reminder.reminder_id)
            result.failures.append(ReminderFailure(reminder.reminder_id, type(e).__name__))
            continue

        if notification_id is None:
            logger.info(" -> Reminder %s was already delivered by another run.", reminder.reminder_id)
            continue

        result.processed += 1
        result.notification_ids.append(notification_id)

    logger.info("Reminder check finished: %d processed, %d failed.", result.processed, len(result.failures))
    return result
