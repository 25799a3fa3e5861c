from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditLogEntry(BaseModel):
    """
    Immutable row of public.audit_log.

    中文注释:
    - submission_id 没有外键（稿件删除后审计记录仍需可查）。
    - 只允许 append，不提供 update/delete。
    """

    id: Optional[UUID] = None  # DB generated
    actor_id: Optional[str] = None
    submission_id: str
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "actor_id": self.actor_id,
            "submission_id": self.submission_id,
            "action": self.action,
            "details": self.details,
        }
        if self.created_at is not None:
            row["created_at"] = self.created_at.isoformat()
        return row
