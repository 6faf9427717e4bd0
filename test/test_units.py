import asyncio
import io
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import UploadFile
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
from starlette.datastructures import Headers

from app import config
from app.services.errors import (
    FileTooLargeError, InvalidFileTypeError, InvalidValueError, QuotaExceededError, TooManyFilesError,
)


# === Helpers ===
def make_upload(filename="clip.mp3", content_type="audio/mpeg", data=b"audio-bytes"):
    return UploadFile(file=io.BytesIO(data), filename=filename, headers=Headers({"content-type": content_type}))


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_DIR", tmp_path)
    return tmp_path


###############################################################
# 1. Unit Tests for `app/models`
###############################################################
from app.models.notification import NotificationCreate
from app.models.preferences import PreferencesUpdate


def test_utc_001_notification_create_defaults_to_info():
    notification = NotificationCreate(title="Hello")
    assert notification.type == "info"
    assert notification.event_id is None


def test_utc_002_notification_create_rejects_unknown_type():
    with pytest.raises(ValidationError):
        NotificationCreate(title="Hello", type="spam")


def test_utc_003_preferences_update_accepts_camel_case():
    update = PreferencesUpdate(**{"notificationVolume": 40, "quietHoursStart": "23:30"})
    assert update.model_dump(exclude_unset=True) == {"notification_volume": 40, "quiet_hours_start": "23:30"}


def test_utc_004_preferences_update_rejects_bad_time():
    with pytest.raises(ValidationError):
        PreferencesUpdate(quiet_hours_end="8am")


###############################################################
# 2. Unit Tests for `app/services/notification_service.py`
###############################################################
from app.services.notification_service import normalize_page, mark_read


def test_utc_005_pagination_defaults_and_cap():
    assert normalize_page(None, None) == (50, 0)
    assert normalize_page(500, 20) == (100, 20)
    assert normalize_page(0, 0) == (0, 0)


@pytest.mark.parametrize("limit, offset", [(-1, 0), (10, -5)])
def test_utc_006_pagination_rejects_negative(limit, offset):
    with pytest.raises(InvalidValueError):
        normalize_page(limit, offset)


@pytest.mark.asyncio
async def test_utc_007_mark_read_keeps_first_read_timestamp():
    first_read = datetime(2025, 1, 1, 9, 0)
    already_read = MagicMock(is_read=True, read_at=first_read)
    session = AsyncMock()
    result = MagicMock()
    result.scalars.return_value.first.return_value = already_read
    session.execute = AsyncMock(return_value=result)

    notification = await mark_read(session, 1, 1)

    assert notification.read_at == first_read
    session.commit.assert_not_awaited()


###############################################################
# 3. Unit Tests for `app/services/sound_catalog.py`
###############################################################
from app.services import sound_catalog


def test_utc_008_builtin_catalog_is_fixed():
    assert len(sound_catalog.BUILTIN_SOUNDS) == 9
    assert isinstance(sound_catalog.BUILTIN_SOUNDS, tuple)
    silent = [s for s in sound_catalog.BUILTIN_SOUNDS if s.id == "none"]
    assert silent and silent[0].file is None
    assert "default" in sound_catalog.BUILTIN_SOUND_IDS


def test_utc_009_parse_custom_ref():
    assert sound_catalog.parse_custom_ref("custom_12") == 12
    assert sound_catalog.parse_custom_ref("custom_") is None
    assert sound_catalog.parse_custom_ref("custom_1x") is None
    assert sound_catalog.parse_custom_ref("chime") is None


@pytest.mark.asyncio
async def test_utc_010_is_valid_sound_skips_db_for_builtins():
    session = AsyncMock()
    assert await sound_catalog.is_valid_sound(session, 1, "bell") is True
    assert await sound_catalog.is_valid_sound(session, 1, "trumpet") is False
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_utc_011_register_custom_enforces_quota(mocker):
    session = AsyncMock()
    session.add = MagicMock()
    mocker.patch("app.services.sound_catalog.count_custom", new_callable=AsyncMock, return_value=10)
    with pytest.raises(QuotaExceededError):
        await sound_catalog.register_custom(session, 1, "Beep", "x.mp3", "beep.mp3", 10)
    session.add.assert_not_called()
    session.commit.assert_not_awaited()


###############################################################
# 4. Unit Tests for `app/services/preference_service.py`
###############################################################
from app.services.preference_service import update_preferences


@pytest.mark.asyncio
@pytest.mark.parametrize("volume", [-1, 101])
async def test_utc_012_update_rejects_volume_before_writing(volume):
    session = AsyncMock()
    with pytest.raises(InvalidValueError, match="Volume must be between 0 and 100."):
        await update_preferences(session, 1, {"notification_volume": volume})
    session.execute.assert_not_awaited()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_utc_013_update_rejects_unknown_sound():
    session = AsyncMock()
    with pytest.raises(InvalidValueError, match="Invalid notification sound."):
        await update_preferences(session, 1, {"notification_sound": "kazoo"})
    session.commit.assert_not_awaited()


###############################################################
# 5. Unit Tests for `app/services/upload_service.py`
###############################################################
from app.services import upload_service


@pytest.mark.parametrize("content_type, expected", [
    ("image/png", "imagenes"),
    ("application/pdf", "pdfs"),
    ("audio/ogg", "sounds"),
    ("text/plain", "otros"),
])
def test_utc_014_subdirectory_for(content_type, expected):
    assert upload_service.subdirectory_for(content_type) == expected


def test_utc_015_audio_policy_rejects_zip():
    with pytest.raises(InvalidFileTypeError):
        upload_service.validate_upload(make_upload("a.zip", "application/zip"), upload_service.AUDIO_POLICY)


def test_utc_016_audio_policy_rejects_images_that_general_policy_accepts():
    image = make_upload("a.png", "image/png")
    with pytest.raises(InvalidFileTypeError):
        upload_service.validate_upload(image, upload_service.AUDIO_POLICY)
    assert upload_service.validate_upload(image, upload_service.general_policy()) == len(b"audio-bytes")


def test_utc_017_size_limits(monkeypatch):
    big_audio = make_upload(data=b"0" * (5 * 1024 * 1024 + 1))
    with pytest.raises(FileTooLargeError):
        upload_service.validate_upload(big_audio, upload_service.AUDIO_POLICY)

    monkeypatch.setattr(config, "MAX_FILE_SIZE", 4)
    with pytest.raises(FileTooLargeError):
        upload_service.validate_upload(make_upload("a.pdf", "application/pdf", b"%PDF-"), upload_service.general_policy())


def test_utc_018_batch_limits():
    with pytest.raises(TooManyFilesError):
        upload_service.validate_batch([], upload_service.general_policy())
    with pytest.raises(TooManyFilesError):
        upload_service.validate_batch([make_upload(), make_upload()], upload_service.AUDIO_POLICY)
    with pytest.raises(TooManyFilesError):
        upload_service.validate_batch([make_upload() for _ in range(11)], upload_service.general_policy())


def test_utc_019_store_upload_generates_safe_name(upload_dir):
    stored = upload_service.store_upload(make_upload("../../etc/passwd.mp3", "audio/mpeg", b"abc"))

    assert stored.path.parent == upload_dir / "sounds"
    assert stored.filename.endswith(".mp3")
    assert len(stored.filename) == 32 + len(".mp3")
    assert stored.original_name == "../../etc/passwd.mp3"
    assert stored.size == 3
    assert stored.url == f"/uploads/sounds/{stored.filename}"
    assert stored.path.read_bytes() == b"abc"


def test_utc_020_store_upload_drops_odd_extensions(upload_dir):
    stored = upload_service.store_upload(make_upload("clip.mp3;rm -rf", "audio/mpeg"))
    assert "." not in stored.filename


def test_utc_021_remove_stored_file_tolerates_missing(upload_dir):
    assert upload_service.remove_stored_file(upload_dir / "nope.mp3") is False


@pytest.mark.asyncio
async def test_utc_022_provisional_upload_cleans_up_on_failure(upload_dir):
    with pytest.raises(QuotaExceededError):
        async with upload_service.provisional_upload(make_upload(), upload_service.AUDIO_POLICY) as stored:
            assert stored.path.exists()
            raise QuotaExceededError("full")
    assert not stored.path.exists()


@pytest.mark.asyncio
async def test_utc_023_provisional_upload_keeps_file_on_success(upload_dir):
    async with upload_service.provisional_upload(make_upload(), upload_service.AUDIO_POLICY) as stored:
        pass
    assert stored.path.exists()


@pytest.mark.asyncio
async def test_utc_024_cleanup_failure_does_not_mask_original_error(upload_dir):
    with patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
        with pytest.raises(QuotaExceededError):
            async with upload_service.provisional_upload(make_upload(), upload_service.AUDIO_POLICY):
                raise QuotaExceededError("full")


@pytest.mark.asyncio
async def test_utc_025_rejected_upload_writes_nothing(upload_dir):
    with pytest.raises(InvalidFileTypeError):
        async with upload_service.provisional_upload(make_upload("a.zip", "application/zip"),
                                                     upload_service.AUDIO_POLICY):
            pytest.fail("body must not run for a rejected file")
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_utc_026_batch_cleanup_removes_every_file(upload_dir):
    files = [make_upload("a.png", "image/png"), make_upload("b.pdf", "application/pdf")]
    with pytest.raises(RuntimeError):
        async with upload_service.provisional_uploads(files, upload_service.general_policy()) as stored:
            assert len(stored) == 2
            raise RuntimeError("db down")
    assert [p for p in upload_dir.rglob("*") if p.is_file()] == []


###############################################################
# 6. Unit Tests for `app/services/reminder_processor.py`
###############################################################
from app.services import reminder_processor
from app.services.reminder_processor import DueReminder, is_due, reminder_message, process_pending_reminders

NOW = datetime(2025, 6, 1, 12, 0)


def make_due(reminder_id=1, lead=15, start_in=10, message=None):
    return DueReminder(
        reminder_id=reminder_id, event_id=7, user_id=3, event_title="Standup",
        start_at=NOW + timedelta(minutes=start_in), lead_minutes=lead, message=message,
    )


def test_utc_027_reminder_window_is_half_open():
    assert is_due(make_due(lead=15, start_in=10), NOW) is True
    assert is_due(make_due(lead=15, start_in=15), NOW) is True
    assert is_due(make_due(lead=15, start_in=16), NOW) is False
    assert is_due(make_due(lead=15, start_in=0), NOW) is False


def test_utc_028_reminder_message_template():
    assert reminder_message(make_due(lead=30)) == 'Your event "Standup" is coming up in 30 minutes.'
    assert reminder_message(make_due(message="Bring coffee")) == "Bring coffee"


@pytest.mark.asyncio
async def test_utc_029_failed_reminder_does_not_stop_the_run():
    session = AsyncMock()
    due = [make_due(reminder_id=1), make_due(reminder_id=2), make_due(reminder_id=3)]
    deliveries = [OperationalError("UPDATE", {}, Exception("locked")), 41, None]

    with patch.object(reminder_processor, "fetch_due_reminders", new_callable=AsyncMock, return_value=due), \
            patch.object(reminder_processor, "_deliver", new_callable=AsyncMock, side_effect=deliveries):
        result = await process_pending_reminders(session, now=NOW)

    assert result.processed == 1
    assert result.notification_ids == [41]
    assert [(f.reminder_id, f.error) for f in result.failures] == [(1, "OperationalError")]
    session.rollback.assert_awaited()


@pytest.mark.asyncio
async def test_utc_030_deliver_skips_reminder_claimed_elsewhere():
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=0))

    with patch.object(reminder_processor, "create_notification", new_callable=AsyncMock) as mock_create:
        assert await reminder_processor._deliver(session, make_due(), NOW) is None

    mock_create.assert_not_awaited()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_utc_031_deliver_creates_notification_in_same_transaction():
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=1))

    with patch.object(reminder_processor, "create_notification", new_callable=AsyncMock,
                      return_value=MagicMock(id=99)) as mock_create:
        assert await reminder_processor._deliver(session, make_due(), NOW) == 99

    _, kwargs = mock_create.call_args
    assert kwargs["commit"] is False
    payload = mock_create.call_args.args[2]
    assert payload.type == "reminder"
    assert payload.title == "Reminder: Standup"
    assert payload.event_id == 7
    assert payload.reminder_id == 1
    session.commit.assert_awaited_once()


def test_utc_033_reminder_title_fits_notification_title():
    title = reminder_processor.reminder_title("x" * 255)
    assert len(title) == 255
    assert title.startswith("Reminder: x")
    NotificationCreate(title=title)


@pytest.mark.asyncio
async def test_utc_034_non_database_error_is_isolated():
    session = AsyncMock()
    due = [make_due(reminder_id=1), make_due(reminder_id=2)]

    with patch.object(reminder_processor, "fetch_due_reminders", new_callable=AsyncMock, return_value=due), \
            patch.object(reminder_processor, "_deliver", new_callable=AsyncMock,
                         side_effect=[ValueError("bad payload"), 52]):
        result = await process_pending_reminders(session, now=NOW)

    assert result.processed == 1
    assert result.notification_ids == [52]
    assert [(f.reminder_id, f.error) for f in result.failures] == [(1, "ValueError")]
    session.rollback.assert_awaited()


@pytest.mark.asyncio
async def test_utc_035_scheduler_survives_a_failed_cycle():
    from scripts import reminder_scheduler

    with patch.object(reminder_scheduler, "init_db", new_callable=AsyncMock), \
            patch.object(reminder_scheduler, "run_cycle", new_callable=AsyncMock,
                         side_effect=[RuntimeError("boom"), 0]) as mock_cycle, \
            patch.object(reminder_scheduler.asyncio, "sleep", new_callable=AsyncMock,
                         side_effect=[None, asyncio.CancelledError()]):
        with pytest.raises(asyncio.CancelledError):
            await reminder_scheduler.main_scheduler_loop()

    assert mock_cycle.await_count == 2


###############################################################
# 7. Unit Tests for `app/services/auth.py`
###############################################################
from fastapi import HTTPException
from app.services.auth import require_internal_token


@pytest.mark.asyncio
async def test_utc_032_internal_token_checks(monkeypatch):
    monkeypatch.setattr(config, "INTERNAL_API_TOKEN", None)
    assert await require_internal_token(None) is None

    monkeypatch.setattr(config, "INTERNAL_API_TOKEN", "s3cret")
    with pytest.raises(HTTPException) as exc:
        await require_internal_token("wrong")
    assert exc.value.status_code == 403
    assert await require_internal_token("s3cret") is None
