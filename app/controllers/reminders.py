import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import get_db
from app.models.reminder import ReminderFailure, ReminderProcessResponse
from app.services.auth import require_internal_token
from app.services.reminder_processor import process_pending_reminders

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/process", response_model=ReminderProcessResponse, dependencies=[Depends(require_internal_token)])
async def process_reminders(db: AsyncSession = Depends(get_db)):
    """
    Converts due reminders into notifications. Called by the scheduler.
    """
    try:
        result = await process_pending_reminders(db)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Process pending reminders error")
        raise HTTPException(status_code=500, detail="Failed to process reminders.")

    return ReminderProcessResponse(
        message=f"Processed {result.processed} reminders.",
        count=result.processed,
        failures=[ReminderFailure(reminder_id=f.reminder_id, error=f.error) for f in result.failures],
    )
