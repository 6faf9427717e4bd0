# file: controllers/notification.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import get_db
from app.database.models import User
from app.models.base import MessageResponse
from app.models.notification import (
    InternalNotificationCreate,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from app.services import notification_service
from app.services.auth import get_current_user, require_internal_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
async def get_notifications(
        unread_only: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    """
    Lists the current user's notifications, newest first, plus the unread count.
    """
    try:
        notifications, unread = await notification_service.list_notifications(
            db, current_user.id, unread_only=unread_only, limit=limit, offset=offset
        )
    except SQLAlchemyError:
        logger.exception("Get notifications error")
        raise HTTPException(status_code=500, detail="Failed to get notifications.")
    return NotificationListResponse(notifications=notifications, unread_count=unread)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        count = await notification_service.unread_count(db, current_user.id)
    except SQLAlchemyError:
        logger.exception("Get unread count error")
        raise HTTPException(status_code=500, detail="Failed to get unread count.")
    return UnreadCountResponse(count=count)


@router.patch("/read-all", response_model=MessageResponse)
async def mark_all_as_read(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        await notification_service.mark_all_read(db, current_user.id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Mark all as read error")
        raise HTTPException(status_code=500, detail="Failed to mark notifications as read.")
    return {"message": "All notifications marked as read."}


@router.patch("/{notification_id}/read", response_model=MessageResponse)
async def mark_as_read(
        notification_id: int,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        await notification_service.mark_read(db, notification_id, current_user.id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Mark as read error")
        raise HTTPException(status_code=500, detail="Failed to mark notification as read.")
    return {"message": "Notification marked as read."}


@router.delete("/", response_model=MessageResponse)
async def clear_all_notifications(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    """
    Deletes all notifications of the current user.
    """
    try:
        await notification_service.clear_all(db, current_user.id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Clear all notifications error")
        raise HTTPException(status_code=500, detail="Failed to clear notifications.")
    return {"message": "All notifications cleared."}


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
        notification_id: int,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        await notification_service.delete_notification(db, notification_id, current_user.id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Delete notification error")
        raise HTTPException(status_code=500, detail="Failed to delete notification.")
    return {"message": "Notification deleted."}


@router.post(
    "/",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_internal_token)],
)
async def create_notification(
        notification: InternalNotificationCreate,
        db: AsyncSession = Depends(get_db),
):
    """
    Creates a notification for any user. Meant for other services, not end users.
    """
    try:
        db_notification = await notification_service.create_notification(db, notification.user_id, notification)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Create notification error")
        raise HTTPException(status_code=500, detail="Failed to create notification.")
    return notification_service.to_response(db_notification)
