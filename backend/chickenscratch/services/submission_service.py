from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException

from chickenscratch.core.keyed_lock import KeyedLockRegistry, submission_locks
from chickenscratch.core.positions import Position, WorkflowRole, is_site_admin, resolve_user_role
from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.notification import NotificationIntent, TargetSelector, TemplateKind
from chickenscratch.models.submission import (
    AuthorStatus,
    AssignEditorRequest,
    CommitteeStatus,
    EditorNotesRequest,
    PublishRequest,
    SubmissionCreate,
    SubmissionRevision,
    normalize_committee_status,
    normalize_submission_type,
)
from chickenscratch.services.audit_service import AuditTrail
from chickenscratch.services.member_directory import MemberDirectory
from chickenscratch.services.workflow_service import is_valid_link
from chickenscratch.services.workflow_transitions import HANDOFF_POSITIONS, status_label

logger = logging.getLogger("chickenscratch.submissions")


class SubmissionService:
    """
    作者投稿 / 修改、编辑工具（发布 / 备注 / 指派）、管理员删除。

    中文注释:
    - 投稿落库后 committee_status 为空（新稿件），随后由状态机接管；
    - 删除是独立的管理员操作：先写审计再删行，审计记录在删除后仍可查询；
    - 所有写操作与工作流共用按稿件的进程内锁。
    """

    def __init__(
        self,
        *,
        client: Any = None,
        audit: Optional[AuditTrail] = None,
        directory: Optional[MemberDirectory] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ) -> None:
        self.client = client or supabase_admin
        self.audit = audit or AuditTrail(client=self.client)
        self.directory = directory or MemberDirectory(client=self.client)
        self.locks = locks or submission_locks

    def _get(self, submission_id: str) -> dict[str, Any]:
        resp = self.client.table("submissions").select("*").eq("id", submission_id).limit(1).execute()
        rows = extract_rows(resp)
        if not rows:
            raise HTTPException(status_code=404, detail="Submission not found")
        return rows[0]

    def list_mine(self, owner_id: str) -> list[dict[str, Any]]:
        resp = (
            self.client.table("submissions")
            .select("*")
            .eq("owner_id", owner_id)
            .order("created_at", desc=True)
            .execute()
        )
        return extract_rows(resp)

    def create_submission(
        self, *, owner_id: str, payload: SubmissionCreate
    ) -> tuple[dict[str, Any], NotificationIntent]:
        now = datetime.now(timezone.utc).isoformat()
        row = {
            "owner_id": owner_id,
            "title": payload.title.strip(),
            "type": payload.type.value,
            "genre": payload.genre,
            "summary": payload.summary,
            "content_warnings": payload.content_warnings,
            "file_url": payload.file_url,
            "preferred_name": payload.preferred_name,
            "status": AuthorStatus.SUBMITTED.value,
            "committee_status": None,
            "committee_comments": [],
            "created_at": now,
            "updated_at": now,
        }
        try:
            resp = self.client.table("submissions").insert(row).execute()
        except Exception as e:
            logger.error(f"[Submissions] insert failed: owner={owner_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to create submission")
        rows = extract_rows(resp)
        created = rows[0] if rows else row

        author_name = payload.preferred_name or self.directory.display_name(owner_id)
        intent = NotificationIntent(
            selector=TargetSelector(
                positions=[Position.SUBMISSIONS_COORDINATOR.value, Position.EDITOR_IN_CHIEF.value],
            ),
            kind=TemplateKind.NEW_SUBMISSION,
            context={
                "submission_id": str(created.get("id") or ""),
                "title": created.get("title"),
                "submission_type": payload.type.value,
                "genre": payload.genre,
                "author_name": author_name,
                "submitted_at": now[:10],
            },
        )
        logger.info(f"[Submissions] created {created.get('id')} by {owner_id}")
        return created, intent

    def revise_submission(self, *, submission_id: str, owner_id: str, payload: SubmissionRevision) -> dict[str, Any]:
        updates: dict[str, Any] = {
            "status": AuthorStatus.SUBMITTED.value,
            "committee_status": CommitteeStatus.PENDING_COORDINATOR.value,
        }
        if payload.title is not None:
            title = payload.title.strip()
            if len(title) < 3:
                raise HTTPException(status_code=400, detail="Title must be between 3 and 200 characters")
            updates["title"] = title
        if payload.preferred_name is not None:
            updates["preferred_name"] = payload.preferred_name.strip() or None
        if payload.file_url:
            updates["file_url"] = payload.file_url

        # 与工作流动作共用同一把稿件锁：读-校验-写-审计 不可与委员会动作交错
        with self.locks.hold(str(submission_id)):
            row = self._get(submission_id)
            if str(row.get("owner_id") or "") != str(owner_id):
                raise HTTPException(status_code=403, detail="Only the author can revise this submission")
            if row.get("status") != AuthorStatus.NEEDS_REVISION.value:
                raise HTTPException(status_code=400, detail="Submission is not awaiting revision")

            updates["updated_at"] = datetime.now(timezone.utc).isoformat()
            try:
                self.client.table("submissions").update(updates).eq("id", submission_id).execute()
            except Exception as e:
                logger.error(f"[Submissions] revise failed: {submission_id}: {e}")
                raise HTTPException(status_code=500, detail="Failed to update submission")

            self.audit.record(
                submission_id=submission_id,
                actor_id=owner_id,
                action="submission_revised",
                details={
                    "previousStatus": row.get("committee_status"),
                    "newStatus": CommitteeStatus.PENDING_COORDINATOR.value,
                    "fields": sorted(k for k in updates if k not in {"status", "committee_status", "updated_at"}),
                },
            )
        return {**row, **updates}

    # ------------------------------------------------------------------
    # editor tools (Editor-in-Chief, or an officer acting as one)
    # ------------------------------------------------------------------
    def _require_editor(self, user_role_record: Optional[dict[str, Any]]) -> None:
        if resolve_user_role(user_role_record) is not WorkflowRole.EDITOR_IN_CHIEF:
            raise HTTPException(status_code=403, detail="Forbidden - Editor-in-Chief access required")

    def _update_with_audit(
        self,
        *,
        submission_id: str,
        actor_id: str,
        updates: dict[str, Any],
        action: str,
        details: dict[str, Any],
        row: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            self.client.table("submissions").update(
                {**updates, "updated_at": datetime.now(timezone.utc).isoformat()}
            ).eq("id", submission_id).execute()
        except Exception as e:
            logger.error(f"[Submissions] {action} failed: {submission_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update submission")
        self.audit.record(submission_id=submission_id, actor_id=actor_id, action=action, details=details)
        return {**row, **updates}

    def publish_submission(
        self,
        *,
        submission_id: str,
        actor_id: str,
        user_role_record: Optional[dict[str, Any]],
        payload: PublishRequest,
    ) -> dict[str, Any]:
        """
        发布 / 撤回发布。

        中文注释:
        - 只有 editor_approved 的稿件可以发布（作者侧 status -> published）；
        - 撤回时只清 published 标记，作者侧状态从 published 回到 approved。
        """
        self._require_editor(user_role_record)
        published_url = (payload.published_url or "").strip() or None
        if published_url and not is_valid_link(published_url):
            raise HTTPException(status_code=400, detail="publishedUrl must be a valid http(s) URL")
        issue = (payload.issue or "").strip() or None

        with self.locks.hold(str(submission_id)):
            row = self._get(submission_id)
            updates: dict[str, Any] = {
                "published": payload.published,
                "published_url": published_url,
                "issue": issue,
            }
            if payload.published:
                if normalize_committee_status(row.get("committee_status")) is not CommitteeStatus.EDITOR_APPROVED:
                    raise HTTPException(
                        status_code=403, detail="Only editor-approved submissions can be published"
                    )
                updates["status"] = AuthorStatus.PUBLISHED.value
            elif row.get("status") == AuthorStatus.PUBLISHED.value:
                updates["status"] = AuthorStatus.APPROVED.value

            updated = self._update_with_audit(
                submission_id=submission_id,
                actor_id=actor_id,
                updates=updates,
                action="publish",
                details=dict(updates),
                row=row,
            )
        logger.info(f"[Submissions] publish={payload.published} {submission_id} by {actor_id}")
        return updated

    def save_editor_notes(
        self,
        *,
        submission_id: str,
        actor_id: str,
        user_role_record: Optional[dict[str, Any]],
        payload: EditorNotesRequest,
    ) -> dict[str, Any]:
        self._require_editor(user_role_record)
        notes = payload.editor_notes if payload.editor_notes else None
        with self.locks.hold(str(submission_id)):
            row = self._get(submission_id)
            return self._update_with_audit(
                submission_id=submission_id,
                actor_id=actor_id,
                updates={"editor_notes": notes},
                action="note",
                details={"editor_notes": notes},
                row=row,
            )

    def assign_editor(
        self,
        *,
        submission_id: str,
        actor_id: str,
        user_role_record: Optional[dict[str, Any]],
        payload: AssignEditorRequest,
    ) -> dict[str, Any]:
        self._require_editor(user_role_record)
        editor_id = str(payload.editor_id) if payload.editor_id else None
        with self.locks.hold(str(submission_id)):
            row = self._get(submission_id)
            return self._update_with_audit(
                submission_id=submission_id,
                actor_id=actor_id,
                updates={"assigned_editor": editor_id},
                action="assign",
                details={"assigned_editor": editor_id},
                row=row,
            )

    def assignment_intent(
        self,
        *,
        submission_id: str,
        committee_status: Optional[str] = None,
        notification_type: Optional[str] = None,
    ) -> Optional[NotificationIntent]:
        """
        Build the hand-off (or new-submission) email for a manual re-send.

        Returns None when the status has no hand-off recipient.
        """
        row = self._get(submission_id)
        submission_type = normalize_submission_type(row.get("type"))
        context: dict[str, Any] = {
            "submission_id": str(row.get("id") or submission_id),
            "title": row.get("title"),
            "submission_type": submission_type.value,
            "genre": row.get("genre"),
        }

        if notification_type == "new_submission":
            context["author_name"] = row.get("preferred_name") or self.directory.display_name(
                str(row.get("owner_id") or "")
            )
            context["submitted_at"] = str(row.get("created_at") or "")[:10]
            return NotificationIntent(
                selector=TargetSelector(
                    positions=[Position.SUBMISSIONS_COORDINATOR.value, Position.EDITOR_IN_CHIEF.value],
                ),
                kind=TemplateKind.NEW_SUBMISSION,
                context=context,
            )

        status = normalize_committee_status(committee_status or row.get("committee_status"))
        if status not in HANDOFF_POSITIONS:
            return None
        context["status_label"] = status_label(status)
        return NotificationIntent(
            selector=TargetSelector(committee_status=status.value, submission_type=submission_type.value),
            kind=TemplateKind.COMMITTEE_ASSIGNMENT,
            context=context,
        )

    def delete_submission(
        self, *, submission_id: str, actor_id: str, user_role_record: Optional[dict[str, Any]]
    ) -> None:
        positions = (user_role_record or {}).get("positions") or []
        if not is_site_admin(positions):
            raise HTTPException(status_code=403, detail="Only BBEG or Dictator-in-Chief can delete submissions")

        with self.locks.hold(str(submission_id)):
            row = self._get(submission_id)

            # 先写审计：删除后 submission_id 不再可查，审计是唯一痕迹
            self.audit.record(
                submission_id=submission_id,
                actor_id=actor_id,
                action="submission_deleted",
                details={
                    "title": row.get("title"),
                    "ownerId": row.get("owner_id"),
                    "committeeStatus": row.get("committee_status"),
                    "status": row.get("status"),
                },
            )
            try:
                self.client.table("submissions").delete().eq("id", submission_id).execute()
            except Exception as e:
                logger.error(f"[Submissions] delete failed: {submission_id}: {e}")
                raise HTTPException(status_code=500, detail="Failed to delete submission")
        logger.info(f"[Submissions] deleted {submission_id} by {actor_id}")
