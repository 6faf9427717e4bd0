# file: main.py

import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app import config
from app.controllers.notification import router as notification_router
from app.controllers.preferences import router as preferences_router
from app.controllers.reminders import router as reminders_router
from app.controllers.sounds import router as sounds_router
from app.controllers.uploads import router as uploads_router
from app.database.connection import init_db
from app.services.errors import ServiceError

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Notification & Preference API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Path(config.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")

app.include_router(notification_router, prefix="/api/notifications", tags=["notifications"])
app.include_router(preferences_router, prefix="/api/preferences", tags=["preferences"])
app.include_router(sounds_router, prefix="/api/sounds", tags=["sounds"])
app.include_router(uploads_router, prefix="/api/uploads", tags=["uploads"])
app.include_router(reminders_router, prefix="/api/reminders", tags=["reminders"])


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/")
async def root():
    return {"message": "Notification API is running"}


@app.on_event("startup")
async def startup_event():
    await init_db()
    logger.info("Serving uploads from %s", Path(config.UPLOAD_DIR).resolve())
