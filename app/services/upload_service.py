# file: services/upload_service.py

import logging
import os
import re
import shutil
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from fastapi import UploadFile

from app import config
from app.services.errors import InvalidFileTypeError, FileTooLargeError, TooManyFilesError

logger = logging.getLogger(__name__)

IMAGES_SUBDIR = "imagenes"
PDFS_SUBDIR = "pdfs"
SOUNDS_SUBDIR = "sounds"
OTHER_SUBDIR = "otros"

IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
PDF_MIME_TYPE = "application/pdf"
AUDIO_MIME_TYPES = frozenset({
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/x-wav",
    "audio/ogg",
    "audio/webm",
})
GENERAL_MIME_TYPES = IMAGE_MIME_TYPES | {PDF_MIME_TYPE} | AUDIO_MIME_TYPES

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass(frozen=True)
class UploadPolicy:
    allowed_types: frozenset
    max_bytes: int
    max_files: int
    type_error: str


@dataclass(frozen=True)
class StoredFile:
    path: Path
    filename: str
    subdir: str
    original_name: str
    content_type: str
    size: int

    @property
    def url(self) -> str:
        return public_url(self.subdir, self.filename)


AUDIO_POLICY = UploadPolicy(
    allowed_types=AUDIO_MIME_TYPES,
    max_bytes=config.AUDIO_MAX_FILE_SIZE,
    max_files=1,
    type_error="Invalid file type. Only MP3, WAV, OGG and WebM audio files are allowed.",
)


def general_policy(max_files: int = config.MAX_FILES_PER_REQUEST) -> UploadPolicy:
    # MAX_FILE_SIZE is read per call so it can be changed at runtime.
    return UploadPolicy(
        allowed_types=GENERAL_MIME_TYPES,
        max_bytes=config.MAX_FILE_SIZE,
        max_files=max_files,
        type_error="Invalid file type. Only images, PDFs, and audio files are allowed.",
    )


def single_file_policy() -> UploadPolicy:
    return general_policy(max_files=1)


def subdirectory_for(content_type: str) -> str:
    if content_type.startswith("image/"):
        return IMAGES_SUBDIR
    if content_type == PDF_MIME_TYPE:
        return PDFS_SUBDIR
    if content_type.startswith("audio/"):
        return SOUNDS_SUBDIR
    return OTHER_SUBDIR


def stored_path(subdir: str, filename: str) -> Path:
    return Path(config.UPLOAD_DIR) / subdir / filename


def public_url(subdir: str, filename: str) -> str:
    return f"/uploads/{subdir}/{filename}"


def file_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    position = file.file.tell()
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(position)
    return size


def _format_limit(max_bytes: int) -> str:
    megabytes = max_bytes / (1024 * 1024)
    return f"{megabytes:g}MB"


def validate_upload(file: UploadFile, policy: UploadPolicy) -> int:
    """Checks type and size against the policy and returns the size in bytes."""
    if (file.content_type or "") not in policy.allowed_types:
        raise InvalidFileTypeError(policy.type_error)

    size = file_size(file)
    if size > policy.max_bytes:
        raise FileTooLargeError(f"File too large. Maximum size is {_format_limit(policy.max_bytes)}.")
    return size


def validate_batch(files: Sequence[UploadFile], policy: UploadPolicy) -> None:
    if not files:
        raise TooManyFilesError("No file uploaded.")
    if len(files) > policy.max_files:
        raise TooManyFilesError(f"Too many files. Maximum is {policy.max_files} file(s).")
    for file in files:
        validate_upload(file, policy)


def _generated_name(original_name: str) -> str:
    suffix = Path(original_name).suffix
    if not _SAFE_SUFFIX.match(suffix):
        suffix = ""
    return f"{uuid.uuid4().hex}{suffix}"


def store_upload(file: UploadFile) -> StoredFile:
    """
    Writes the upload under UPLOAD_DIR/<category>/ with a generated name.
    The client's filename only contributes its extension.
    """
    content_type = file.content_type or ""
    original_name = file.filename or ""
    subdir = subdirectory_for(content_type)
    filename = _generated_name(original_name)
    file_path = stored_path(subdir, filename)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    file.file.seek(0)
    try:
        with file_path.open("wb") as buffer:
            shutil.copyfileobj(file.file, buffer)
    except OSError:
        remove_stored_file(file_path)
        raise

    size = file_path.stat().st_size
    logger.info("Stored upload '%s' as %s (%d bytes)", original_name, file_path, size)
    return StoredFile(
        path=file_path,
        filename=filename,
        subdir=subdir,
        original_name=original_name,
        content_type=content_type,
        size=size,
    )


def remove_stored_file(path: Path) -> bool:
    """Deletes a stored file. Never raises: a missing file is ignored, other errors are logged."""
    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug("Stored file %s was already gone", path)
        return False
    except OSError:
        logger.exception("Failed to remove stored file %s", path)
        return False
    logger.info("Removed stored file %s", path)
    return True


@asynccontextmanager
async def provisional_upload(file: UploadFile, policy: UploadPolicy):
    """
    Validates and stores one file, then yields it. If the body of the
    `async with` block raises, the stored file is deleted before the
    exception propagates.
    """
    validate_batch([file], policy)
    stored = store_upload(file)
    try:
        yield stored
    except BaseException:
        logger.warning("Discarding %s after a failed request", stored.path)
        remove_stored_file(stored.path)
        raise


@asynccontextmanager
async def provisional_uploads(files: Sequence[UploadFile], policy: UploadPolicy):
    """Batch form of provisional_upload. Every file is validated before any is written."""
    validate_batch(files, policy)
    stored: List[StoredFile] = []
    try:
        for file in files:
            stored.append(store_upload(file))
        yield stored
    except BaseException:
        for item in stored:
            remove_stored_file(item.path)
        raise
