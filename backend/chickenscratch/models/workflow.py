from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from chickenscratch.models.notification import NotificationIntent
from chickenscratch.models.submission import CommitteeAction


class WorkflowActionRequest(BaseModel):
    """
    POST /committee-workflow payload (camelCase on the wire, as the dashboard sends it).
    """

    submission_id: UUID = Field(..., alias="submissionId")
    action: CommitteeAction
    comment: Optional[str] = Field(default=None, max_length=4000)
    link_url: Optional[str] = Field(default=None, alias="linkUrl", max_length=2048)
    assignee_id: Optional[UUID] = Field(default=None, alias="assigneeId")

    model_config = ConfigDict(populate_by_name=True)


class WorkflowOutcome(BaseModel):
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    google_doc_url: Optional[str] = None
    audit_recorded: bool = False
    notifications: list[NotificationIntent] = Field(default_factory=list)

    def to_response(self) -> dict:
        if self.google_doc_url is not None:
            return {"success": True, "google_doc_url": self.google_doc_url}
        return {"success": True, "newStatus": self.new_status}
