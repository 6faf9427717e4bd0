# file: app/config.py

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_host = os.getenv("DB_HOST")
    if db_host:
        db_user = os.getenv("DB_USER")
        db_password = os.getenv("DB_PASSWORD")
        db_port = os.getenv("DB_PORT", "5432")
        db_name = os.getenv("DB_NAME")
        if not db_password:
            raise ValueError("DB_PASSWORD environment variable is required when DB_HOST is set")
        return f"postgresql+asyncpg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"

    return "sqlite+aiosqlite:///./notifications.db"


DATABASE_URL = _database_url()

# --- Uploads ---
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))
MAX_FILE_SIZE = _int_env("MAX_FILE_SIZE", 10 * 1024 * 1024)
AUDIO_MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_FILES_PER_REQUEST = 10
MAX_CUSTOM_SOUNDS = 10

# --- Notification listing ---
NOTIFICATIONS_DEFAULT_LIMIT = 50
NOTIFICATIONS_MAX_LIMIT = 100

# --- Auth ---
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 43200)
INTERNAL_API_TOKEN = os.getenv("INTERNAL_API_TOKEN")

# --- Scheduler ---
REMINDER_INTERVAL_SECONDS = _int_env("REMINDER_INTERVAL_SECONDS", 60)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
