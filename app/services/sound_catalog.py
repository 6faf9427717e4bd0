import logging
from typing import List, NamedTuple, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app import config
from app.database.models import CustomSound, UserPreferences, DEFAULT_SOUND_ID, utcnow
from app.models.sound import SoundResponse, CustomSoundResponse
from app.services.errors import NotFoundError, QuotaExceededError
from app.services.upload_service import SOUNDS_SUBDIR, stored_path, remove_stored_file, public_url

logger = logging.getLogger(__name__)

CUSTOM_PREFIX = "custom_"


class BuiltinSound(NamedTuple):
    id: str
    name: str
    file: Optional[str]


BUILTIN_SOUNDS = (
    BuiltinSound("default", "Default", "default.mp3"),
    BuiltinSound("chime", "Chime", "chime.mp3"),
    BuiltinSound("bell", "Bell", "bell.mp3"),
    BuiltinSound("ping", "Ping", "ping.mp3"),
    BuiltinSound("pop", "Pop", "pop.mp3"),
    BuiltinSound("ding", "Ding", "ding.mp3"),
    BuiltinSound("alert", "Alert", "alert.mp3"),
    BuiltinSound("gentle", "Gentle", "gentle.mp3"),
    BuiltinSound("none", "None (Silent)", None),
)

BUILTIN_SOUND_IDS = frozenset(sound.id for sound in BUILTIN_SOUNDS)


def custom_sound_ref(sound_id: int) -> str:
    return f"{CUSTOM_PREFIX}{sound_id}"


def parse_custom_ref(value: str) -> Optional[int]:
    """Returns the numeric id in 'custom_<id>', or None if value is not of that form."""
    if not value.startswith(CUSTOM_PREFIX):
        return None
    raw_id = value[len(CUSTOM_PREFIX):]
    if not raw_id.isdigit():
        return None
    return int(raw_id)


def custom_sound_response(sound: CustomSound) -> CustomSoundResponse:
    return CustomSoundResponse(
        id=custom_sound_ref(sound.id),
        name=sound.name,
        file=sound.filename,
        url=public_url(SOUNDS_SUBDIR, sound.filename),
        original_name=sound.original_name,
        size=sound.size,
        created_at=sound.created_at,
    )


def builtin_sound_responses() -> List[SoundResponse]:
    return [SoundResponse(id=s.id, name=s.name, file=s.file) for s in BUILTIN_SOUNDS]


async def list_custom(db: AsyncSession, user_id: int) -> List[CustomSound]:
    stmt = (
        select(CustomSound)
        .where(CustomSound.user_id == user_id)
        .order_by(CustomSound.created_at.desc(), CustomSound.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_available(db: AsyncSession, user_id: int) -> List[SoundResponse]:
    """Built-in sounds followed by the user's own uploads, newest upload first."""
    custom = [
        SoundResponse(
            id=custom_sound_ref(sound.id),
            name=sound.name,
            file=sound.filename,
            url=public_url(SOUNDS_SUBDIR, sound.filename),
            is_custom=True,
        )
        for sound in await list_custom(db, user_id)
    ]
    return builtin_sound_responses() + custom


async def is_valid_sound(db: AsyncSession, user_id: int, sound_id: str) -> bool:
    if sound_id in BUILTIN_SOUND_IDS:
        return True
    custom_id = parse_custom_ref(sound_id)
    if custom_id is None:
        return False
    stmt = select(CustomSound.id).where(CustomSound.id == custom_id, CustomSound.user_id == user_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None


async def count_custom(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(select(func.count(CustomSound.id)).where(CustomSound.user_id == user_id))
    return int(result.scalar() or 0)


async def register_custom(db: AsyncSession, user_id: int, name: str, filename: str,
                          original_name: Optional[str], size: int) -> CustomSound:
    """
    Records an uploaded sound for the user. Raises QuotaExceededError when the
    user already owns the maximum number of sounds; the caller owns the stored
    file and must remove it in that case.
    """
    if await count_custom(db, user_id) >= config.MAX_CUSTOM_SOUNDS:
        raise QuotaExceededError(
            f"Maximum of {config.MAX_CUSTOM_SOUNDS} custom sounds reached. Delete one to upload another."
        )

    sound = CustomSound(
        user_id=user_id,
        name=name,
        filename=filename,
        original_name=original_name,
        size=size,
    )
    db.add(sound)
    await db.commit()
    await db.refresh(sound)
    logger.info("Registered custom sound %s for user %s", sound.id, user_id)
    return sound


async def reset_sound_references(db: AsyncSession, user_id: int, sound_ref: str) -> int:
    """Points preferences that use sound_ref back at the default sound. Does not commit."""
    stmt = (
        update(UserPreferences)
        .where(UserPreferences.user_id == user_id, UserPreferences.notification_sound == sound_ref)
        .values(notification_sound=DEFAULT_SOUND_ID, updated_at=utcnow())
    )
    result = await db.execute(stmt)
    return result.rowcount


async def delete_custom(db: AsyncSession, user_id: int, sound_id: int) -> None:
    stmt = select(CustomSound).where(CustomSound.id == sound_id, CustomSound.user_id == user_id)
    result = await db.execute(stmt)
    sound = result.scalars().first()
    if not sound:
        raise NotFoundError("Sound not found.")

    filename = sound.filename
    reset = await reset_sound_references(db, user_id, custom_sound_ref(sound_id))
    await db.delete(sound)
    await db.commit()

    if reset:
        logger.info("Reset notification sound to default for user %s after deleting sound %s", user_id, sound_id)

    # Row and preference reset are committed first; a leftover file is harmless.
    remove_stored_file(stored_path(SOUNDS_SUBDIR, filename))
