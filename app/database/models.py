from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database.connection import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column in this schema stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


DEFAULT_SOUND_ID = "default"
IN_APP_CHANNEL = "in_app"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(Text, unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    preferences = relationship("UserPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan")
    custom_sounds = relationship("CustomSound", back_populates="user", cascade="all, delete-orphan")


# --- Calendar side of the schema. Owned by the calendar/task features;
# this service only reads events and tasks and flags reminders as sent. ---
class CalendarEvent(Base):
    __tablename__ = "calendar_events"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    start_at = Column(DateTime, nullable=False)

    reminders = relationship("Reminder", back_populates="event", cascade="all, delete-orphan")


class Task(Base):
    __tablename__ = "tasks"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)


class Reminder(Base):
    __tablename__ = "reminders"
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False, index=True)
    channel = Column(String(50), nullable=False, default=IN_APP_CHANNEL)
    lead_minutes = Column(Integer, nullable=False, default=15)
    message = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    sent = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime, nullable=True)

    event = relationship("CalendarEvent", back_populates="reminders")


# --- Notification & preference tables ---
class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    type = Column(String(50), nullable=False, default="info")
    is_read = Column(Boolean, default=False, nullable=False)
    # Set together with is_read, never on its own.
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    event_id = Column(Integer, ForeignKey("calendar_events.id", ondelete="SET NULL"), nullable=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    reminder_id = Column(Integer, ForeignKey("reminders.id", ondelete="SET NULL"), nullable=True)

    user = relationship("User", back_populates="notifications")


class UserPreferences(Base):
    __tablename__ = "user_preferences"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notifications_enabled = Column(Boolean, default=True, nullable=False)
    notification_sound = Column(String(100), default=DEFAULT_SOUND_ID, nullable=False)
    notification_volume = Column(Integer, default=80, nullable=False)
    quiet_hours_enabled = Column(Boolean, default=False, nullable=False)
    quiet_hours_start = Column(String(5), default="22:00", nullable=False)
    quiet_hours_end = Column(String(5), default="08:00", nullable=False)
    email_notifications = Column(Boolean, default=True, nullable=False)
    browser_notifications = Column(Boolean, default=True, nullable=False)
    timezone = Column(String(64), default="UTC", nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="preferences")
    __table_args__ = (UniqueConstraint("user_id", name="_user_preferences_user_uc"),)


class CustomSound(Base):
    __tablename__ = "custom_sounds"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=True)
    size = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="custom_sounds")
