from typing import Optional, List
from datetime import datetime

from app.models.base import CamelModel


class SoundResponse(CamelModel):
    id: str
    name: str
    file: Optional[str] = None
    url: Optional[str] = None
    is_custom: bool = False


class CustomSoundResponse(CamelModel):
    id: str
    name: str
    file: str
    url: str
    original_name: Optional[str] = None
    size: int
    created_at: datetime
    is_custom: bool = True


class SoundListResponse(CamelModel):
    sounds: List[SoundResponse]


class CustomSoundUploadResponse(CamelModel):
    message: str
    sound: CustomSoundResponse
