from pydantic import field_validator
from typing import Optional, List
from datetime import datetime
import re

from app.models.base import CamelModel
from app.models.sound import SoundResponse

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class PreferencesUpdate(CamelModel):
    """
    Partial update. Omitted and null fields keep their stored value.
    Sound and volume are checked by the preference service, which knows
    the caller's custom sounds.
    """
    notifications_enabled: Optional[bool] = None
    notification_sound: Optional[str] = None
    notification_volume: Optional[int] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    email_notifications: Optional[bool] = None
    browser_notifications: Optional[bool] = None
    timezone: Optional[str] = None

    @field_validator('quiet_hours_start', 'quiet_hours_end')
    def validate_time(cls, v):
        if v is not None and not _TIME_PATTERN.match(v):
            raise ValueError('Quiet hours must use the HH:MM 24-hour format')
        return v

    @field_validator('timezone')
    def validate_timezone(cls, v):
        if v is not None:
            v = v.strip()
            if not v or len(v) > 64:
                raise ValueError('Timezone must be a non-empty name of at most 64 characters')
        return v


class PreferencesResponse(CamelModel):
    notifications_enabled: bool
    notification_sound: str
    notification_volume: int
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str
    email_notifications: bool
    browser_notifications: bool
    timezone: str
    updated_at: Optional[datetime] = None


class PreferencesEnvelope(CamelModel):
    preferences: PreferencesResponse
    available_sounds: List[SoundResponse]


class PreferencesUpdateResponse(CamelModel):
    message: str
    preferences: PreferencesResponse
