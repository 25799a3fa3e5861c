from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TemplateKind(str, Enum):
    NEW_SUBMISSION = "new_submission"
    COMMITTEE_ASSIGNMENT = "committee_assignment"
    CHANGES_REQUESTED = "changes_requested"
    STALE_SUBMISSION = "stale_submission"
    OVERDUE_TASK = "overdue_task"
    STALE_TASK = "stale_task"
    MEETING_RESPONSE = "meeting_response"
    OFFICER_ANNOUNCEMENT = "officer_announcement"
    OFFICER_MEETING = "officer_meeting"


TEMPLATE_FILES: dict[TemplateKind, str] = {kind: f"{kind.value}.html" for kind in TemplateKind}


class NotificationResult(BaseModel):
    success: bool
    message: str
    recipients: list[str] = Field(default_factory=list)
    email_id: Optional[str] = None


class NotificationFailure(BaseModel):
    """
    Model for public.notification_failures (admin screen).
    """

    id: Optional[UUID] = None
    template_kind: str
    subject: str
    recipients: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    submission_id: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationFailureDelete(BaseModel):
    id: Optional[str] = None
    all: bool = False


class TargetSelector(BaseModel):
    """
    Who should receive a notification.

    中文注释:
    - positions: 固定职位列表（如新稿件 → Coordinator + Editor-in-Chief）；
    - committee_status + submission_type: 按状态/稿件类型映射（coordinator_approved → Proofreader 或 Lead Design）；
    - emails: 直接指定收件人（作者邮件）；
    - all_officers: 全体 officer（可排除发起人）。
    """

    positions: list[str] = Field(default_factory=list)
    committee_status: Optional[str] = None
    submission_type: Optional[str] = None
    emails: list[str] = Field(default_factory=list)
    user_ids: list[str] = Field(default_factory=list)
    all_officers: bool = False
    exclude_user_id: Optional[str] = None


class NotificationIntent(BaseModel):
    """
    Outbox item produced by a committed transition; dispatched after the response.
    """

    selector: TargetSelector
    kind: TemplateKind
    context: dict[str, Any] = Field(default_factory=dict)
