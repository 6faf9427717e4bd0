import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import get_db
from app.database.models import User
from app.models.preferences import (
    PreferencesEnvelope,
    PreferencesResponse,
    PreferencesUpdate,
    PreferencesUpdateResponse,
)
from app.services import preference_service, sound_catalog
from app.services.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=PreferencesEnvelope)
async def get_user_preferences(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    """
    Returns the current user's notification preferences, creating the
    defaults on first access, together with the sounds they can pick.
    """
    try:
        prefs = await preference_service.get_preferences(db, current_user.id)
        sounds = await sound_catalog.list_available(db, current_user.id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Get user preferences error")
        raise HTTPException(status_code=500, detail="Failed to get preferences.")
    return PreferencesEnvelope(
        preferences=PreferencesResponse.model_validate(prefs),
        available_sounds=sounds,
    )


@router.put("/", response_model=PreferencesUpdateResponse)
async def update_user_preferences(
        preferences_update: PreferencesUpdate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    try:
        prefs = await preference_service.update_preferences(
            db, current_user.id, preferences_update.model_dump(exclude_unset=True)
        )
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Update user preferences error")
        raise HTTPException(status_code=500, detail="Failed to update preferences.")
    return PreferencesUpdateResponse(
        message="Preferences updated successfully.",
        preferences=PreferencesResponse.model_validate(prefs),
    )
