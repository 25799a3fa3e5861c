from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from chickenscratch.core.config import WorkflowConfig
from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.notification import TargetSelector, TemplateKind
from chickenscratch.models.reminder import REMINDER_ENTITY, ReminderEntityType, ReminderKind, ScanResult
from chickenscratch.models.submission import normalize_committee_status
from chickenscratch.services.member_directory import MemberDirectory
from chickenscratch.services.notification_service import NotificationDispatcher
from chickenscratch.services.reminder_ledger import ReminderLedger
from chickenscratch.services.workflow_transitions import IDLE_TIMESTAMP_FIELDS, status_label

logger = logging.getLogger("chickenscratch.reminders")

TEMPLATE_FOR_KIND: dict[ReminderKind, TemplateKind] = {
    ReminderKind.STALE_SUBMISSION: TemplateKind.STALE_SUBMISSION,
    ReminderKind.OVERDUE_TASK: TemplateKind.OVERDUE_TASK,
    ReminderKind.STALE_TASK: TemplateKind.STALE_TASK,
    ReminderKind.MEETING_RESPONSE: TemplateKind.MEETING_RESPONSE,
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _whole_days(delta: timedelta) -> int:
    return max(0, int(delta.total_seconds() // 86400))


class ReminderScanner:
    """
    提醒扫描器：停滞稿件 / 逾期任务 / 停滞任务 / 低回复会议。

    中文注释:
    1) 四类扫描互相独立，可任意顺序/并发触发（由外部 cron 调度）。
    2) 单个实体（或单个收件人）失败只计入 errors，不影响其余实体。
    3) 不做自动重试：下一次扫描即重试，由去重账本的冷却窗口限流。
    """

    def __init__(
        self,
        *,
        client: Any = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        ledger: Optional[ReminderLedger] = None,
        directory: Optional[MemberDirectory] = None,
        cooldown_days: Optional[int] = None,
    ) -> None:
        self.client = client or supabase_admin
        if cooldown_days is None:
            cooldown_days = WorkflowConfig.from_env().reminder_cooldown_days
        self.cooldown_days = cooldown_days
        self.directory = directory or MemberDirectory(client=self.client)
        self.dispatcher = dispatcher or NotificationDispatcher(client=self.client, directory=self.directory)
        self.ledger = ledger or ReminderLedger(client=self.client, cooldown_days=self.cooldown_days)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(days=self.cooldown_days)

    def scan(self, kind: ReminderKind, now: Optional[datetime] = None) -> ScanResult:
        now = now or datetime.now(timezone.utc)
        handlers = {
            ReminderKind.STALE_SUBMISSION: self._scan_stale_submissions,
            ReminderKind.OVERDUE_TASK: self._scan_overdue_tasks,
            ReminderKind.STALE_TASK: self._scan_stale_tasks,
            ReminderKind.MEETING_RESPONSE: self._scan_meeting_responses,
        }
        result = handlers[kind](now)
        logger.info(f"[Reminders] scan {kind.value}: sent={result.sent} errors={result.errors}")
        return result

    # ------------------------------------------------------------------
    # per-recipient send with dedup
    # ------------------------------------------------------------------
    def _remind(
        self,
        result: ScanResult,
        *,
        kind: ReminderKind,
        entity_id: str,
        recipients: list[str],
        context: dict[str, Any],
        now: datetime,
    ) -> None:
        entity_type: ReminderEntityType = REMINDER_ENTITY[kind]
        for recipient in recipients:
            try:
                claim_id = self.ledger.claim(entity_type, entity_id, kind, recipient, now)
            except Exception as e:
                logger.error(f"[Reminders] ledger check failed: {entity_type.value}/{entity_id} -> {recipient}: {e}")
                result.errors += 1
                continue
            if claim_id is None:
                continue

            outcome = self.dispatcher.send([recipient], TEMPLATE_FOR_KIND[kind], context)
            if outcome.success:
                result.sent += 1
            else:
                logger.warning(
                    f"[Reminders] send failed: {kind.value} {entity_type.value}/{entity_id} -> {recipient}: {outcome.message}"
                )
                self.ledger.release(claim_id)
                result.errors += 1

    def _task_recipients(self, task: dict[str, Any]) -> list[str]:
        assignee = str(task.get("assigned_to") or "").strip()
        if assignee:
            email = self.directory.email_for_user(assignee)
            return [email] if email else []
        return self.directory.officer_emails()

    # ------------------------------------------------------------------
    # 1. stale committee submissions
    # ------------------------------------------------------------------
    def _scan_stale_submissions(self, now: datetime) -> ScanResult:
        result = ScanResult(kind=ReminderKind.STALE_SUBMISSION)
        active = [status.value for status in IDLE_TIMESTAMP_FIELDS]
        resp = (
            self.client.table("submissions")
            .select(
                "id,title,type,committee_status,updated_at,coordinator_reviewed_at,"
                "proofreader_committed_at,lead_design_committed_at"
            )
            .in_("committee_status", active)
            .execute()
        )

        for sub in extract_rows(resp):
            try:
                status = normalize_committee_status(sub.get("committee_status"))
                if status is None or status not in IDLE_TIMESTAMP_FIELDS:
                    continue
                since = parse_timestamp(sub.get(IDLE_TIMESTAMP_FIELDS[status]))
                if since is None or now - since < self.cooldown:
                    continue

                selector = TargetSelector(committee_status=status.value, submission_type=sub.get("type"))
                recipients = self.dispatcher.resolve_recipients(selector)
                self._remind(
                    result,
                    kind=ReminderKind.STALE_SUBMISSION,
                    entity_id=str(sub.get("id")),
                    recipients=recipients,
                    context={
                        "submission_id": str(sub.get("id")),
                        "title": sub.get("title") or "Untitled",
                        "status_label": status_label(status),
                        "days_since": _whole_days(now - since),
                    },
                    now=now,
                )
            except Exception as e:
                logger.error(f"[Reminders] stale submission {sub.get('id')} failed: {e}")
                result.errors += 1
        return result

    # ------------------------------------------------------------------
    # 2. overdue officer tasks
    # ------------------------------------------------------------------
    def _scan_overdue_tasks(self, now: datetime) -> ScanResult:
        result = ScanResult(kind=ReminderKind.OVERDUE_TASK)
        resp = (
            self.client.table("officer_tasks")
            .select("id,title,assigned_to,due_date,status")
            .not_.is_("due_date", "null")
            .lt("due_date", now.isoformat())
            .neq("status", "completed")
            .execute()
        )

        for task in extract_rows(resp):
            try:
                due = parse_timestamp(task.get("due_date"))
                if due is None or due >= now:
                    continue
                self._remind(
                    result,
                    kind=ReminderKind.OVERDUE_TASK,
                    entity_id=str(task.get("id")),
                    recipients=self._task_recipients(task),
                    context={"title": task.get("title") or "Untitled", "days_overdue": _whole_days(now - due)},
                    now=now,
                )
            except Exception as e:
                logger.error(f"[Reminders] overdue task {task.get('id')} failed: {e}")
                result.errors += 1
        return result

    # ------------------------------------------------------------------
    # 3. stale officer tasks (todo, no due date)
    # ------------------------------------------------------------------
    def _scan_stale_tasks(self, now: datetime) -> ScanResult:
        result = ScanResult(kind=ReminderKind.STALE_TASK)
        cutoff = now - self.cooldown
        resp = (
            self.client.table("officer_tasks")
            .select("id,title,assigned_to,created_at,status")
            .eq("status", "todo")
            .is_("due_date", "null")
            .lte("created_at", cutoff.isoformat())
            .execute()
        )

        for task in extract_rows(resp):
            try:
                created = parse_timestamp(task.get("created_at"))
                if created is None or created > cutoff:
                    continue
                self._remind(
                    result,
                    kind=ReminderKind.STALE_TASK,
                    entity_id=str(task.get("id")),
                    recipients=self._task_recipients(task),
                    context={"title": task.get("title") or "Untitled", "days_since": _whole_days(now - created)},
                    now=now,
                )
            except Exception as e:
                logger.error(f"[Reminders] stale task {task.get('id')} failed: {e}")
                result.errors += 1
        return result

    # ------------------------------------------------------------------
    # 4. meeting proposals with low response
    # ------------------------------------------------------------------
    def _scan_meeting_responses(self, now: datetime) -> ScanResult:
        result = ScanResult(kind=ReminderKind.MEETING_RESPONSE)
        cutoff = now - self.cooldown
        resp = (
            self.client.table("meeting_proposals")
            .select("id,title,created_at,finalized_date")
            .is_("finalized_date", "null")
            .lte("created_at", cutoff.isoformat())
            .execute()
        )
        proposals = extract_rows(resp)
        if not proposals:
            return result

        officer_ids = self.directory.officer_user_ids()
        if not officer_ids:
            return result

        for proposal in proposals:
            try:
                avail = (
                    self.client.table("officer_availability")
                    .select("user_id")
                    .eq("meeting_proposal_id", proposal.get("id"))
                    .execute()
                )
                responded = {str(row.get("user_id")) for row in extract_rows(avail)}
                # 已有一半及以上 officer 回复时不再催
                if len(responded & set(officer_ids)) * 2 >= len(officer_ids):
                    continue

                non_responders = [uid for uid in officer_ids if uid not in responded]
                self._remind(
                    result,
                    kind=ReminderKind.MEETING_RESPONSE,
                    entity_id=str(proposal.get("id")),
                    recipients=self.directory.emails_for_users(non_responders),
                    context={"title": proposal.get("title") or "Untitled meeting"},
                    now=now,
                )
            except Exception as e:
                logger.error(f"[Reminders] meeting {proposal.get('id')} failed: {e}")
                result.errors += 1
        return result
