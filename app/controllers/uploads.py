import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.database.models import User
from app.models.upload import MultiUploadResponse, UploadResponse, UploadedFileResponse
from app.services.auth import get_current_user
from app.services.upload_service import (
    StoredFile,
    general_policy,
    provisional_upload,
    provisional_uploads,
    single_file_policy,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(stored: StoredFile) -> UploadedFileResponse:
    return UploadedFileResponse(
        filename=stored.filename,
        original_name=stored.original_name,
        content_type=stored.content_type,
        size=stored.size,
        url=stored.url,
    )


@router.post("/", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
        file: UploadFile = File(...),
        current_user: User = Depends(get_current_user),
):
    """Stores one image, PDF or audio attachment."""
    try:
        async with provisional_upload(file, single_file_policy()) as stored:
            response = UploadResponse(file=_to_response(stored))
    except OSError:
        logger.exception("File upload error for user %s", current_user.id)
        raise HTTPException(status_code=500, detail="File upload failed.")
    return response


@router.post("/multiple", response_model=MultiUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_files(
        files: List[UploadFile] = File(...),
        current_user: User = Depends(get_current_user),
):
    """Stores up to ten attachments. Nothing is kept unless every file is accepted."""
    try:
        async with provisional_uploads(files, general_policy()) as stored_files:
            response = MultiUploadResponse(files=[_to_response(stored) for stored in stored_files])
    except OSError:
        logger.exception("Multiple file upload error for user %s", current_user.id)
        raise HTTPException(status_code=500, detail="File upload failed.")
    return response
