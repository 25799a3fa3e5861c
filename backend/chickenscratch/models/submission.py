from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SubmissionType(str, Enum):
    WRITING = "writing"
    VISUAL = "visual"


class AuthorStatus(str, Enum):
    """
    Coarse, author-facing status shown on the "mine" page.
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    NEEDS_REVISION = "needs_revision"
    APPROVED = "approved"
    PUBLISHED = "published"
    DECLINED = "declined"
    WITHDRAWN = "withdrawn"


class CommitteeStatus(str, Enum):
    """
    Committee workflow state. NULL in the database means a brand new submission.

    中文注释:
    - 这是一个封闭枚举；数据库里出现未知值时 normalize 返回 None，由服务层按 404/403 处理。
    - with_proofreader / with_lead_design / with_editor_in_chief / final_committee_review
      是看板展示用的历史状态，保留以便读取旧数据。
    """

    PENDING_COORDINATOR = "pending_coordinator"
    WITH_COORDINATOR = "with_coordinator"
    COORDINATOR_APPROVED = "coordinator_approved"
    COORDINATOR_DECLINED = "coordinator_declined"
    WITH_PROOFREADER = "with_proofreader"
    PROOFREADER_COMMITTED = "proofreader_committed"
    WITH_LEAD_DESIGN = "with_lead_design"
    LEAD_DESIGN_COMMITTED = "lead_design_committed"
    WITH_EDITOR_IN_CHIEF = "with_editor_in_chief"
    EDITOR_APPROVED = "editor_approved"
    EDITOR_DECLINED = "editor_declined"
    CHANGES_REQUESTED = "changes_requested"
    FINAL_COMMITTEE_REVIEW = "final_committee_review"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_COMMITTEE_STATUSES


TERMINAL_COMMITTEE_STATUSES: frozenset[CommitteeStatus] = frozenset(
    {
        CommitteeStatus.EDITOR_APPROVED,
        CommitteeStatus.COORDINATOR_DECLINED,
        CommitteeStatus.EDITOR_DECLINED,
    }
)


class CommitteeAction(str, Enum):
    REVIEW = "review"
    APPROVE = "approve"
    DECLINE = "decline"
    REQUEST_CHANGES = "request_changes"
    COMMIT = "commit"
    FINAL_APPROVE = "final_approve"
    FINAL_DECLINE = "final_decline"


def normalize_committee_status(value: Any) -> CommitteeStatus | None:
    if value is None:
        return None
    if isinstance(value, CommitteeStatus):
        return value
    text = str(value).strip().lower()
    if not text:
        return None
    try:
        return CommitteeStatus(text)
    except ValueError:
        return None


def normalize_submission_type(value: Any) -> SubmissionType:
    # 中文注释: 历史数据里 type 可能是 poetry/fiction/art 等细分类；非 visual 一律按 writing 处理。
    text = str(value or "").strip().lower()
    if text in {"visual", "art", "visual_art", "photography", "comics", "comic"}:
        return SubmissionType.VISUAL
    return SubmissionType.WRITING


class CommitteeComment(BaseModel):
    """
    One entry of the append-only submissions.committee_comments array.
    """

    id: str
    user_id: str = Field(..., alias="userId")
    user_role: str = Field(..., alias="userRole")
    comment: str
    action: str
    timestamp: str

    model_config = ConfigDict(populate_by_name=True)


class Submission(BaseModel):
    id: UUID
    owner_id: Optional[UUID] = None
    title: str
    type: str
    genre: Optional[str] = None
    summary: Optional[str] = None
    content_warnings: Optional[str] = None
    file_url: Optional[str] = None
    preferred_name: Optional[str] = None

    status: Optional[str] = AuthorStatus.SUBMITTED.value
    committee_status: Optional[CommitteeStatus] = None
    google_docs_link: Optional[str] = None
    lead_design_commit_link: Optional[str] = None
    editor_notes: Optional[str] = None
    decline_reason: Optional[str] = None
    committee_comments: list[dict[str, Any]] = Field(default_factory=list)
    assigned_editor: Optional[UUID] = None
    published: bool = False
    published_url: Optional[str] = None
    issue: Optional[str] = None

    coordinator_reviewed_at: Optional[datetime] = None
    proofreader_committed_at: Optional[datetime] = None
    lead_design_committed_at: Optional[datetime] = None
    editor_reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubmissionCreate(BaseModel):
    """
    Author intake payload. File upload itself is handled by the storage collaborator;
    only the resulting reference is stored here.
    """

    title: str = Field(..., min_length=3, max_length=200)
    type: SubmissionType
    genre: Optional[str] = Field(default=None, max_length=100)
    summary: Optional[str] = Field(default=None, max_length=2000)
    content_warnings: Optional[str] = Field(default=None, max_length=1000)
    file_url: Optional[str] = None
    preferred_name: Optional[str] = Field(default=None, max_length=200)


class SubmissionRevision(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    preferred_name: Optional[str] = Field(default=None, max_length=200)
    file_url: Optional[str] = None


class PublishRequest(BaseModel):
    """
    POST /submissions/{id}/publish. published=false withdraws the publication flag.
    """

    published: bool
    published_url: Optional[str] = Field(default=None, alias="publishedUrl", max_length=2048)
    issue: Optional[str] = Field(default=None, max_length=120)

    model_config = ConfigDict(populate_by_name=True)


class EditorNotesRequest(BaseModel):
    editor_notes: Optional[str] = Field(default=None, alias="editorNotes", max_length=4000)

    model_config = ConfigDict(populate_by_name=True)


class AssignEditorRequest(BaseModel):
    # null 表示取消指派
    editor_id: Optional[UUID] = Field(..., alias="editorId")

    model_config = ConfigDict(populate_by_name=True)


class AssignmentNotificationRequest(BaseModel):
    """
    Manual re-send of the hand-off email for a submission (dashboard "notify" button).
    """

    submission_id: UUID = Field(..., alias="submissionId")
    committee_status: Optional[str] = Field(default=None, alias="committeeStatus")
    notification_type: Optional[Literal["new_submission", "assignment"]] = Field(
        default=None, alias="notificationType"
    )

    model_config = ConfigDict(populate_by_name=True)
