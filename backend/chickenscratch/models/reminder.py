from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ReminderKind(str, Enum):
    STALE_SUBMISSION = "stale_submission"
    OVERDUE_TASK = "overdue_task"
    STALE_TASK = "stale_task"
    MEETING_RESPONSE = "meeting_response"


class ReminderEntityType(str, Enum):
    SUBMISSION = "submission"
    TASK = "task"
    MEETING = "meeting"


REMINDER_ENTITY: dict[ReminderKind, ReminderEntityType] = {
    ReminderKind.STALE_SUBMISSION: ReminderEntityType.SUBMISSION,
    ReminderKind.OVERDUE_TASK: ReminderEntityType.TASK,
    ReminderKind.STALE_TASK: ReminderEntityType.TASK,
    ReminderKind.MEETING_RESPONSE: ReminderEntityType.MEETING,
}


class ReminderLedgerEntry(BaseModel):
    """
    Model for public.reminder_log (dedup only).
    """

    id: Optional[UUID] = None
    entity_type: ReminderEntityType
    entity_id: str
    reminder_type: ReminderKind
    sent_to: str
    sent_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScanResult(BaseModel):
    kind: ReminderKind
    sent: int = 0
    errors: int = 0
