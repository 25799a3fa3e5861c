from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class OfficerTaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class OfficerTaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OfficerTaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    assigned_to: Optional[str] = None
    priority: OfficerTaskPriority = OfficerTaskPriority.MEDIUM
    due_date: Optional[datetime] = None


class OfficerTaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    assigned_to: Optional[str] = None
    status: Optional[OfficerTaskStatus] = None
    priority: Optional[OfficerTaskPriority] = None
    due_date: Optional[datetime] = None


class MeetingProposalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    proposed_dates: list[str] = Field(..., min_length=1)


class MeetingProposalUpdate(BaseModel):
    """
    Either finalize the proposal or record the caller's availability.
    """

    finalized_date: Optional[datetime] = None
    available_slots: Optional[list[Any]] = None


class AnnouncementCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
