# file: services/notification_service.py

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app import config
from app.database.models import Notification, CalendarEvent, Task, utcnow
from app.models.notification import NotificationCreate, NotificationResponse, LinkedItem
from app.services.errors import InvalidValueError, NotFoundError

logger = logging.getLogger(__name__)


def normalize_page(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    """
    Applies the listing bounds: limit defaults to 50 and is capped at 100,
    offset defaults to 0. Negative values are rejected.
    """
    if limit is None:
        limit = config.NOTIFICATIONS_DEFAULT_LIMIT
    if offset is None:
        offset = 0
    if limit < 0 or offset < 0:
        raise InvalidValueError("limit and offset must be non-negative integers.")
    return min(limit, config.NOTIFICATIONS_MAX_LIMIT), offset


def to_response(notification: Notification, event_title: Optional[str] = None,
                task_title: Optional[str] = None) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        type=notification.type,
        is_read=notification.is_read,
        read_at=notification.read_at,
        created_at=notification.created_at,
        event=LinkedItem(id=notification.event_id, title=event_title) if notification.event_id else None,
        task=LinkedItem(id=notification.task_id, title=task_title) if notification.task_id else None,
        reminder_id=notification.reminder_id,
    )


async def unread_count(db: AsyncSession, user_id: int) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id,
        Notification.is_read == False  # noqa: E712
    )
    result = await db.execute(stmt)
    return int(result.scalar() or 0)


async def list_notifications(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
) -> Tuple[List[NotificationResponse], int]:
    """
    Returns one page of the user's notifications, newest first, with the titles
    of linked events and tasks, together with the user's total unread count.
    """
    limit, offset = normalize_page(limit, offset)

    stmt = (
        select(Notification, CalendarEvent.title.label("event_title"), Task.title.label("task_title"))
        .outerjoin(CalendarEvent, Notification.event_id == CalendarEvent.id)
        .outerjoin(Task, Notification.task_id == Task.id)
        .where(Notification.user_id == user_id)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)

    result = await db.execute(stmt)
    notifications = [to_response(n, event_title, task_title) for n, event_title, task_title in result.all()]
    return notifications, await unread_count(db, user_id)


async def _get_owned(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
    stmt = select(Notification).where(
        Notification.id == notification_id,
        Notification.user_id == user_id
    )
    result = await db.execute(stmt)
    notification = result.scalars().first()
    if not notification:
        raise NotFoundError("Notification not found.")
    return notification


async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
    notification = await _get_owned(db, notification_id, user_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.commit()
        await db.refresh(notification)
    return notification


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True, read_at=utcnow())
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount


async def delete_notification(db: AsyncSession, notification_id: int, user_id: int) -> None:
    notification = await _get_owned(db, notification_id, user_id)
    await db.delete(notification)
    await db.commit()


async def clear_all(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(delete(Notification).where(Notification.user_id == user_id))
    await db.commit()
    return result.rowcount


async def create_notification(db: AsyncSession, user_id: int, data: NotificationCreate,
                              commit: bool = True) -> Notification:
    """
    Inserts a notification for user_id. With commit=False the row is only
    flushed, so the caller can make it part of a larger transaction.
    """
    notification = Notification(
        user_id=user_id,
        title=data.title,
        message=data.message,
        type=data.type,
        event_id=data.event_id,
        task_id=data.task_id,
        reminder_id=data.reminder_id,
        is_read=False,
    )
    db.add(notification)
    if commit:
        await db.commit()
        await db.refresh(notification)
    else:
        await db.flush()
    logger.debug("Created %s notification %s for user %s", notification.type, notification.id, user_id)
    return notification
