import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import get_db
from app.database.models import User
from app.models.base import MessageResponse
from app.models.sound import CustomSoundUploadResponse, SoundListResponse
from app.services import sound_catalog
from app.services.auth import get_current_user
from app.services.upload_service import AUDIO_POLICY, provisional_upload

logger = logging.getLogger(__name__)

router = APIRouter()


def _display_name(name: Optional[str], original_name: str) -> str:
    if name and name.strip():
        return name.strip()[:255]
    return (Path(original_name).stem or "Custom sound")[:255]


@router.get("/", response_model=SoundListResponse)
async def get_available_sounds(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        sounds = await sound_catalog.list_available(db, current_user.id)
    except SQLAlchemyError:
        logger.exception("Get available sounds error")
        raise HTTPException(status_code=500, detail="Failed to get sounds.")
    return SoundListResponse(sounds=sounds)


@router.post("/", response_model=CustomSoundUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_custom_sound(
        file: UploadFile = File(...),
        name: Optional[str] = Form(None),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    """
    Uploads an audio file and registers it as one of the user's custom sounds.
    The stored file is removed again if the sound cannot be registered.
    """
    try:
        async with provisional_upload(file, AUDIO_POLICY) as stored:
            try:
                sound = await sound_catalog.register_custom(
                    db,
                    current_user.id,
                    name=_display_name(name, stored.original_name),
                    filename=stored.filename,
                    original_name=stored.original_name,
                    size=stored.size,
                )
            except SQLAlchemyError:
                await db.rollback()
                raise
    except (SQLAlchemyError, OSError):
        logger.exception("Upload custom sound error")
        raise HTTPException(status_code=500, detail="Failed to upload sound.")

    return CustomSoundUploadResponse(
        message="Sound uploaded successfully.",
        sound=sound_catalog.custom_sound_response(sound),
    )


@router.delete("/{sound_id}", response_model=MessageResponse)
async def delete_custom_sound(
        sound_id: int,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        await sound_catalog.delete_custom(db, current_user.id, sound_id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Delete custom sound error")
        raise HTTPException(status_code=500, detail="Failed to delete sound.")
    return {"message": "Sound deleted."}
