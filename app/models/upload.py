from typing import List

from app.models.base import CamelModel


class UploadedFileResponse(CamelModel):
    filename: str
    original_name: str
    content_type: str
    size: int
    url: str


class UploadResponse(CamelModel):
    file: UploadedFileResponse


class MultiUploadResponse(CamelModel):
    files: List[UploadedFileResponse]
