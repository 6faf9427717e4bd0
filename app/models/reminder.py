from typing import List

from app.models.base import CamelModel


class ReminderFailure(CamelModel):
    reminder_id: int
    error: str


class ReminderProcessResponse(CamelModel):
    message: str
    count: int
    failures: List[ReminderFailure] = []
