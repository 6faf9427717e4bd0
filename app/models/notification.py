# file: models/notification.py

from pydantic import Field
from typing import Literal, Optional, List
from datetime import datetime

from app.models.base import CamelModel

NotificationType = Literal["info", "reminder", "success", "warning", "error", "task"]


class NotificationCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    message: Optional[str] = None
    type: NotificationType = "info"
    event_id: Optional[int] = None
    task_id: Optional[int] = None
    reminder_id: Optional[int] = None


class InternalNotificationCreate(NotificationCreate):
    user_id: int


class LinkedItem(CamelModel):
    id: int
    title: Optional[str] = None


class NotificationResponse(CamelModel):
    id: int
    title: str
    message: Optional[str] = None
    type: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    event: Optional[LinkedItem] = None
    task: Optional[LinkedItem] = None
    reminder_id: Optional[int] = None


class NotificationListResponse(CamelModel):
    notifications: List[NotificationResponse]
    unread_count: int


class UnreadCountResponse(CamelModel):
    count: int
