import logging
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import dialect_insert
from app.database.models import UserPreferences, utcnow
from app.services.errors import InvalidValueError
from app.services.sound_catalog import is_valid_sound

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = (
    "notifications_enabled",
    "notification_sound",
    "notification_volume",
    "quiet_hours_enabled",
    "quiet_hours_start",
    "quiet_hours_end",
    "email_notifications",
    "browser_notifications",
    "timezone",
)


async def _load(db: AsyncSession, user_id: int) -> UserPreferences:
    stmt = (
        select(UserPreferences)
        .where(UserPreferences.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one()


async def get_preferences(db: AsyncSession, user_id: int) -> UserPreferences:
    """
    Returns the user's preferences, creating the default row on first access.
    The insert is ON CONFLICT DO NOTHING, so concurrent first reads still
    end up with a single row.
    """
    stmt = (
        dialect_insert(db, UserPreferences)
        .values(user_id=user_id)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)
    await db.commit()
    return await _load(db, user_id)


async def validate_changes(db: AsyncSession, user_id: int, changes: Dict[str, Any]) -> None:
    sound = changes.get("notification_sound")
    if sound is not None and not await is_valid_sound(db, user_id, sound):
        raise InvalidValueError("Invalid notification sound.")

    volume = changes.get("notification_volume")
    if volume is not None and not 0 <= volume <= 100:
        raise InvalidValueError("Volume must be between 0 and 100.")


async def update_preferences(db: AsyncSession, user_id: int, fields: Dict[str, Any]) -> UserPreferences:
    """
    Applies a partial update. Keys that are missing or None keep their stored
    value; a user without a row gets one built from the supplied values and
    the column defaults.
    """
    changes = {
        key: value for key, value in fields.items()
        if key in PREFERENCE_FIELDS and value is not None
    }
    # An empty sound selection leaves the stored sound unchanged.
    if changes.get("notification_sound") == "":
        del changes["notification_sound"]
    await validate_changes(db, user_id, changes)

    now = utcnow()
    stmt = dialect_insert(db, UserPreferences).values(user_id=user_id, updated_at=now, **changes)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={**changes, "updated_at": now},
    )
    await db.execute(stmt)
    await db.commit()

    logger.info("Updated preferences for user %s: %s", user_id, sorted(changes))
    return await _load(db, user_id)
