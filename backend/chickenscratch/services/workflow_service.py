from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse
from uuid import uuid4

from fastapi import HTTPException

from chickenscratch.core.keyed_lock import KeyedLockRegistry, submission_locks
from chickenscratch.core.positions import WorkflowRole, is_officer_override, resolve_user_role
from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.notification import NotificationIntent, TargetSelector, TemplateKind
from chickenscratch.models.submission import (
    CommitteeAction,
    CommitteeComment,
    CommitteeStatus,
    SubmissionType,
    normalize_committee_status,
    normalize_submission_type,
)
from chickenscratch.models.workflow import WorkflowOutcome
from chickenscratch.services.audit_service import AuditTrail
from chickenscratch.services.document_conversion import DocumentConverter
from chickenscratch.services.member_directory import MemberDirectory
from chickenscratch.services.workflow_transitions import (
    HANDOFF_POSITIONS,
    TransitionRule,
    allowed_actions,
    find_override_rule,
    find_rule,
    status_label,
)

logger = logging.getLogger("chickenscratch.workflow")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_valid_link(url: Optional[str]) -> bool:
    raw = str(url or "").strip()
    if not raw:
        return False
    try:
        parsed = urlparse(raw)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class CommitteeWorkflowService:
    """
    委员会工作流状态机（唯一允许修改 committee_status 的入口）。

    中文注释:
    1) 校验顺序：角色(403) → 载荷(400) → 稿件存在(404) → 状态/角色/动作匹配(403)；任何拒绝都发生在写库之前。
    2) 同一稿件的动作按 submission_id 串行（进程内 keyed lock），不同稿件互不阻塞。
    3) “状态 + 审计”先后提交；审计失败只记日志。
    4) 通知只生成 intent（outbox），由 HTTP 层在响应后以后台任务发送。
    """

    def __init__(
        self,
        *,
        client: Any = None,
        audit: Optional[AuditTrail] = None,
        converter: Optional[DocumentConverter] = None,
        directory: Optional[MemberDirectory] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ) -> None:
        self.client = client or supabase_admin
        self.audit = audit or AuditTrail(client=self.client)
        self.converter = converter or DocumentConverter()
        self.directory = directory or MemberDirectory(client=self.client)
        self.locks = locks or submission_locks

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def _load_submission(self, submission_id: str) -> dict[str, Any]:
        try:
            resp = self.client.table("submissions").select("*").eq("id", submission_id).limit(1).execute()
        except Exception as e:
            logger.error(f"[Workflow] load submission failed: {submission_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to load submission")
        rows = extract_rows(resp)
        if not rows:
            raise HTTPException(status_code=404, detail="Submission not found")
        return rows[0]

    def available_actions(self, *, submission_id: str, user_role_record: Optional[dict[str, Any]]) -> dict[str, Any]:
        """
        供看板渲染按钮：当前用户在该稿件当前状态下可执行的动作。
        """
        role = resolve_user_role(user_role_record)
        if role is None:
            raise HTTPException(status_code=403, detail="Forbidden - Committee access required")

        row = self._load_submission(submission_id)
        status = normalize_committee_status(row.get("committee_status"))
        submission_type = normalize_submission_type(row.get("type"))
        actions = allowed_actions(status, role, submission_type)
        if is_officer_override(user_role_record, role):
            for action in CommitteeAction:
                if find_override_rule(status, action, submission_type) is not None:
                    actions.add(action)
        return {
            "role": role.value,
            "committee_status": status.value if status else None,
            "actions": sorted(a.value for a in actions),
        }

    # ------------------------------------------------------------------
    # apply
    # ------------------------------------------------------------------
    def _resolve_rule(
        self,
        *,
        record: Optional[dict[str, Any]],
        role: WorkflowRole,
        status: Optional[CommitteeStatus],
        action: CommitteeAction,
        submission_type: SubmissionType,
    ) -> TransitionRule:
        rule = find_rule(status, role, action, submission_type)
        if rule is None and is_officer_override(record, role):
            rule = find_override_rule(status, action, submission_type)
            if rule is not None:
                logger.info(f"[Workflow] officer override: acting as {rule.role.value} for action={action.value}")
        if rule is None:
            state = status.value if status else "new"
            raise HTTPException(
                status_code=403,
                detail=f"Action '{action.value}' is not allowed for role '{role.value}' in state '{state}'",
            )
        return rule

    def apply(
        self,
        *,
        submission_id: str,
        actor_id: str,
        user_role_record: Optional[dict[str, Any]],
        action: CommitteeAction,
        comment: Optional[str] = None,
        link_url: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> WorkflowOutcome:
        role = resolve_user_role(user_role_record)
        if role is None:
            raise HTTPException(status_code=403, detail="Forbidden - Committee access required")

        if action == CommitteeAction.COMMIT and not is_valid_link(link_url):
            raise HTTPException(status_code=400, detail="A valid http(s) link is required to commit")

        comment_text = (comment or "").strip() or None
        submission_key = str(submission_id)

        with self.locks.hold(submission_key):
            row = self._load_submission(submission_key)
            raw_status = row.get("committee_status")
            status = normalize_committee_status(raw_status)
            if raw_status and status is None:
                raise HTTPException(status_code=403, detail=f"Submission is in an unknown committee state: {raw_status}")
            submission_type = normalize_submission_type(row.get("type"))

            rule = self._resolve_rule(
                record=user_role_record,
                role=role,
                status=status,
                action=action,
                submission_type=submission_type,
            )

            if rule.converts_document:
                return self._convert_document(row=row, actor_id=actor_id, role=role, status=status, comment=comment_text)

            now = _utc_now_iso()
            delta = self._build_delta(
                row=row,
                rule=rule,
                actor_id=actor_id,
                role=role,
                action=action,
                comment=comment_text,
                link_url=link_url,
                assignee_id=assignee_id,
                now=now,
            )

            try:
                self.client.table("submissions").update(delta).eq("id", submission_key).execute()
            except Exception as e:
                logger.error(f"[Workflow] persist failed: submission={submission_key} action={action.value}: {e}")
                raise HTTPException(status_code=500, detail="Failed to update submission")

            new_status = rule.next_status
            audit_recorded = self.audit.record(
                submission_id=submission_key,
                actor_id=actor_id,
                action=f"committee_{action.value}",
                details={
                    "action": action.value,
                    "previousStatus": status.value if status else None,
                    "newStatus": new_status.value if new_status else None,
                    "comment": comment_text,
                    "linkUrl": link_url,
                    "assigneeId": assignee_id,
                    "userRole": role.value,
                    "actorRole": rule.role.value,
                },
            )

        logger.info(
            f"[Workflow] {submission_key}: {status.value if status else 'new'} -> "
            f"{new_status.value if new_status else None} by {role.value} ({action.value})"
        )

        return WorkflowOutcome(
            previous_status=status.value if status else None,
            new_status=new_status.value if new_status else None,
            audit_recorded=audit_recorded,
            notifications=self._build_intents(row=row, new_status=new_status, submission_type=submission_type, delta=delta),
        )

    def _build_delta(
        self,
        *,
        row: dict[str, Any],
        rule: TransitionRule,
        actor_id: str,
        role: WorkflowRole,
        action: CommitteeAction,
        comment: Optional[str],
        link_url: Optional[str],
        assignee_id: Optional[str],
        now: str,
    ) -> dict[str, Any]:
        delta: dict[str, Any] = {"updated_at": now}
        if rule.next_status is not None:
            delta["committee_status"] = rule.next_status.value
        if rule.stamp_field:
            delta[rule.stamp_field] = now
        if rule.link_field:
            delta[rule.link_field] = str(link_url).strip()
        if rule.stores_decline_reason:
            delta["decline_reason"] = comment
        if rule.stores_editor_notes:
            delta["editor_notes"] = comment
        if rule.author_status is not None:
            delta["status"] = rule.author_status.value
        if assignee_id:
            delta["assigned_editor"] = str(assignee_id)

        if comment:
            entry = CommitteeComment(
                id=str(uuid4()),
                user_id=str(actor_id),
                user_role=role.value,
                comment=comment,
                action=action.value,
                timestamp=now,
            )
            existing = list(row.get("committee_comments") or [])
            delta["committee_comments"] = [*existing, entry.model_dump(by_alias=True)]
        return delta

    def _convert_document(
        self,
        *,
        row: dict[str, Any],
        actor_id: str,
        role: WorkflowRole,
        status: Optional[CommitteeStatus],
        comment: Optional[str],
    ) -> WorkflowOutcome:
        submission_id = str(row.get("id"))
        author_name = self.directory.display_name(str(row.get("owner_id") or ""))
        result = self.converter.convert(row, actor_id=actor_id, author_name=author_name)
        if not result.success:
            raise HTTPException(status_code=result.status or 502, detail=result.error or "Document conversion failed")

        # 状态不变、不打时间戳；只回写可编辑文档链接，再留一条审计
        try:
            self.client.table("submissions").update(
                {"google_docs_link": result.google_doc_url, "updated_at": _utc_now_iso()}
            ).eq("id", submission_id).execute()
        except Exception as e:
            logger.error(f"[Workflow] store converted doc link failed: submission={submission_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update submission")

        audit_recorded = self.audit.record(
            submission_id=submission_id,
            actor_id=actor_id,
            action=f"committee_{CommitteeAction.REVIEW.value}",
            details={
                "action": CommitteeAction.REVIEW.value,
                "previousStatus": status.value if status else None,
                "newStatus": status.value if status else None,
                "comment": comment,
                "googleDocUrl": result.google_doc_url,
                "userRole": role.value,
                "actorRole": WorkflowRole.SUBMISSIONS_COORDINATOR.value,
            },
        )
        return WorkflowOutcome(
            previous_status=status.value if status else None,
            new_status=status.value if status else None,
            google_doc_url=result.google_doc_url,
            audit_recorded=audit_recorded,
        )

    def _build_intents(
        self,
        *,
        row: dict[str, Any],
        new_status: Optional[CommitteeStatus],
        submission_type: SubmissionType,
        delta: dict[str, Any],
    ) -> list[NotificationIntent]:
        if new_status is None:
            return []

        context = {
            "submission_id": str(row.get("id")),
            "title": row.get("title"),
            "submission_type": submission_type.value,
            "genre": row.get("genre"),
            "status_label": status_label(new_status),
        }

        if new_status in HANDOFF_POSITIONS:
            selector = TargetSelector(committee_status=new_status.value, submission_type=submission_type.value)
            return [NotificationIntent(selector=selector, kind=TemplateKind.COMMITTEE_ASSIGNMENT, context=context)]

        if new_status == CommitteeStatus.CHANGES_REQUESTED:
            owner_id = str(row.get("owner_id") or "")
            if not owner_id:
                logger.warning(f"[Workflow] changes requested but submission has no owner: {row.get('id')}")
                return []
            context["editor_notes"] = delta.get("editor_notes")
            selector = TargetSelector(user_ids=[owner_id])
            return [NotificationIntent(selector=selector, kind=TemplateKind.CHANGES_REQUESTED, context=context)]

        return []
