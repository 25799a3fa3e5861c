from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException

from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.notification import NotificationIntent, TargetSelector, TemplateKind
from chickenscratch.models.officer import (
    AnnouncementCreate,
    MeetingProposalCreate,
    MeetingProposalUpdate,
    OfficerTaskCreate,
    OfficerTaskStatus,
    OfficerTaskUpdate,
)
from chickenscratch.services.member_directory import MemberDirectory

logger = logging.getLogger("chickenscratch.officers")


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class OfficerService:
    """
    Officer 工作台：任务 / 会议提案 / 公告。

    中文注释:
    - 这些实体没有委员会角色门禁（路由层只校验 officer 身份），也不写审计。
    - 会议与公告创建后只返回通知 intent，由路由层后台发送给其余 officer。
    """

    def __init__(self, *, client: Any = None, directory: Optional[MemberDirectory] = None) -> None:
        self.client = client or supabase_admin
        self.directory = directory or MemberDirectory(client=self.client)

    # ------------------------------------------------------------------
    # tasks
    # ------------------------------------------------------------------
    def list_tasks(self) -> list[dict[str, Any]]:
        resp = self.client.table("officer_tasks").select("*").order("created_at", desc=True).execute()
        return extract_rows(resp)

    def create_task(self, *, creator_id: str, payload: OfficerTaskCreate) -> dict[str, Any]:
        title = payload.title.strip()
        if not title:
            raise HTTPException(status_code=400, detail="Title is required")
        row = {
            "title": title,
            "description": payload.description,
            "assigned_to": payload.assigned_to or None,
            "priority": payload.priority.value,
            "due_date": _iso(payload.due_date),
            "status": OfficerTaskStatus.TODO.value,
            "created_by": creator_id,
        }
        try:
            resp = self.client.table("officer_tasks").insert(row).execute()
        except Exception as e:
            logger.error(f"[Officers] create task failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to create task")
        rows = extract_rows(resp)
        return rows[0] if rows else row

    def update_task(self, task_id: str, payload: OfficerTaskUpdate) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        for field in payload.model_fields_set:
            value = getattr(payload, field)
            if field == "due_date":
                updates[field] = _iso(value)
            elif hasattr(value, "value"):
                updates[field] = value.value
            else:
                updates[field] = value
        if not updates:
            raise HTTPException(status_code=400, detail="No valid update provided")
        updates["updated_at"] = datetime.now(timezone.utc).isoformat()

        try:
            resp = self.client.table("officer_tasks").update(updates).eq("id", task_id).execute()
        except Exception as e:
            logger.error(f"[Officers] update task {task_id} failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to update task")
        rows = extract_rows(resp)
        if not rows:
            raise HTTPException(status_code=404, detail="Task not found")
        return rows[0]

    def delete_task(self, task_id: str) -> None:
        try:
            self.client.table("officer_tasks").delete().eq("id", task_id).execute()
        except Exception as e:
            logger.error(f"[Officers] delete task {task_id} failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete task")

    # ------------------------------------------------------------------
    # meetings
    # ------------------------------------------------------------------
    def list_meetings(self) -> list[dict[str, Any]]:
        resp = self.client.table("meeting_proposals").select("*").order("created_at", desc=True).execute()
        proposals = extract_rows(resp)
        ids = [str(p.get("id")) for p in proposals if p.get("id")]
        if not ids:
            return proposals

        avail_resp = (
            self.client.table("officer_availability")
            .select("user_id,meeting_proposal_id,available_slots")
            .in_("meeting_proposal_id", ids)
            .execute()
        )
        by_meeting: dict[str, list[dict[str, Any]]] = {}
        for row in extract_rows(avail_resp):
            by_meeting.setdefault(str(row.get("meeting_proposal_id")), []).append(row)
        return [{**p, "availability": by_meeting.get(str(p.get("id")), [])} for p in proposals]

    def create_meeting(
        self, *, creator_id: str, payload: MeetingProposalCreate
    ) -> tuple[dict[str, Any], NotificationIntent]:
        title = payload.title.strip()
        dates = [d for d in payload.proposed_dates if str(d or "").strip()]
        if not title or not dates:
            raise HTTPException(status_code=400, detail="Title and proposed dates are required")

        row = {
            "title": title,
            "description": payload.description,
            "proposed_dates": dates,
            "created_by": creator_id,
        }
        try:
            resp = self.client.table("meeting_proposals").insert(row).execute()
        except Exception as e:
            logger.error(f"[Officers] create meeting failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to create meeting proposal")
        rows = extract_rows(resp)
        proposal = rows[0] if rows else row

        intent = NotificationIntent(
            selector=TargetSelector(all_officers=True, exclude_user_id=creator_id),
            kind=TemplateKind.OFFICER_MEETING,
            context={
                "title": title,
                "description": payload.description,
                "proposed_dates": dates,
                "author_name": self.directory.display_name(creator_id),
            },
        )
        return proposal, intent

    def update_meeting(self, meeting_id: str, *, user_id: str, payload: MeetingProposalUpdate) -> dict[str, Any]:
        if payload.finalized_date is not None:
            return {"proposal": self.finalize_meeting(meeting_id, payload.finalized_date)}
        if payload.available_slots is not None:
            return {"availability": self.record_availability(meeting_id, user_id=user_id, slots=payload.available_slots)}
        raise HTTPException(status_code=400, detail="No valid update provided")

    def finalize_meeting(self, meeting_id: str, finalized_date: datetime) -> dict[str, Any]:
        try:
            resp = (
                self.client.table("meeting_proposals")
                .update({"finalized_date": _iso(finalized_date)})
                .eq("id", meeting_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"[Officers] finalize meeting {meeting_id} failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to finalize meeting")
        rows = extract_rows(resp)
        if not rows:
            raise HTTPException(status_code=404, detail="Meeting proposal not found")
        return rows[0]

    def record_availability(self, meeting_id: str, *, user_id: str, slots: list[Any]) -> dict[str, Any]:
        row = {"user_id": user_id, "meeting_proposal_id": meeting_id, "available_slots": slots}
        try:
            resp = (
                self.client.table("officer_availability")
                .upsert(row, on_conflict="meeting_proposal_id,user_id")
                .execute()
            )
        except Exception as e:
            logger.error(f"[Officers] availability update failed: meeting={meeting_id} user={user_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update availability")
        rows = extract_rows(resp)
        return rows[0] if rows else row

    # ------------------------------------------------------------------
    # announcements
    # ------------------------------------------------------------------
    def list_announcements(self) -> list[dict[str, Any]]:
        resp = self.client.table("officer_announcements").select("*").order("created_at", desc=True).execute()
        return extract_rows(resp)

    def create_announcement(
        self, *, author_id: str, payload: AnnouncementCreate
    ) -> tuple[dict[str, Any], NotificationIntent]:
        message = payload.message.strip()
        if not message:
            raise HTTPException(status_code=400, detail="Message is required")
        try:
            resp = (
                self.client.table("officer_announcements")
                .insert({"message": message, "created_by": author_id})
                .execute()
            )
        except Exception as e:
            logger.error(f"[Officers] create announcement failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to create announcement")
        rows = extract_rows(resp)
        announcement = rows[0] if rows else {"message": message, "created_by": author_id}

        intent = NotificationIntent(
            selector=TargetSelector(all_officers=True, exclude_user_id=author_id),
            kind=TemplateKind.OFFICER_ANNOUNCEMENT,
            context={"message": message, "author_name": self.directory.display_name(author_id)},
        )
        return announcement, intent
