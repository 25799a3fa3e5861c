from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Optional

from chickenscratch.core.mail import EmailService, get_email_service
from chickenscratch.core.positions import Position
from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.notification import (
    TEMPLATE_FILES,
    NotificationIntent,
    NotificationResult,
    TargetSelector,
    TemplateKind,
)
from chickenscratch.models.submission import normalize_committee_status, normalize_submission_type
from chickenscratch.services.member_directory import MemberDirectory
from chickenscratch.services.workflow_transitions import RESPONSIBLE_POSITIONS, positions_for

logger = logging.getLogger("chickenscratch.notifications")

SUBJECTS: dict[TemplateKind, str] = {
    TemplateKind.NEW_SUBMISSION: "New Submission: {title}",
    TemplateKind.COMMITTEE_ASSIGNMENT: "Submission Assigned: {title}",
    TemplateKind.CHANGES_REQUESTED: "Changes Requested: {title}",
    TemplateKind.STALE_SUBMISSION: "Reminder: \"{title}\" needs attention",
    TemplateKind.OVERDUE_TASK: "Overdue Task: {title}",
    TemplateKind.STALE_TASK: "Task Reminder: {title}",
    TemplateKind.MEETING_RESPONSE: "Please respond: {title}",
    TemplateKind.OFFICER_ANNOUNCEMENT: "New Officer Announcement",
    TemplateKind.OFFICER_MEETING: "New Meeting Proposal: {title}",
}


def _format_subject(kind: TemplateKind, context: dict[str, Any]) -> str:
    values: defaultdict[str, Any] = defaultdict(lambda: "Untitled")
    values.update({k: v for k, v in context.items() if v is not None})
    return SUBJECTS[kind].format_map(values)


class NotificationDispatcher:
    """
    通知分发：选择器 → 收件人 → 模板 → 邮件。

    中文注释:
    1) notify 永不抛异常：通知是“建议性副作用”，不能影响触发它的状态提交。
    2) 没有收件人视为成功（0 recipients）；dry 模式同样视为成功。
    3) provider 失败写入 notification_failures，供管理员后台查看。
    """

    def __init__(
        self,
        *,
        client: Any = None,
        directory: Optional[MemberDirectory] = None,
        email_service: Optional[EmailService] = None,
    ) -> None:
        self.client = client or supabase_admin
        self.directory = directory or MemberDirectory(client=self.client)
        self._email_service = email_service

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = get_email_service()
        return self._email_service

    def positions_for_selector(self, selector: TargetSelector) -> list[Position]:
        positions: list[Position] = []
        for raw in selector.positions:
            try:
                pos = Position(raw)
            except ValueError:
                logger.warning(f"[Notify] unknown position ignored: {raw}")
                continue
            if pos not in positions:
                positions.append(pos)

        status = normalize_committee_status(selector.committee_status)
        if status is not None:
            submission_type = normalize_submission_type(selector.submission_type)
            for pos in positions_for(RESPONSIBLE_POSITIONS, status, submission_type):
                if pos not in positions:
                    positions.append(pos)
        return positions

    def resolve_recipients(self, selector: TargetSelector) -> list[str]:
        """
        Resolve a selector to a de-duplicated, ordered list of email addresses.
        """
        out: list[str] = []

        def _add(addresses: list[str]) -> None:
            for addr in addresses:
                email = str(addr or "").strip()
                if email and email.lower() not in {x.lower() for x in out}:
                    out.append(email)

        _add(selector.emails)
        if selector.user_ids:
            _add(self.directory.emails_for_users(selector.user_ids))

        positions = self.positions_for_selector(selector)
        if positions:
            _add(self.directory.emails_for_positions(positions))

        if selector.all_officers:
            _add(self.directory.officer_emails(exclude_user_id=selector.exclude_user_id))
        return out

    def notify(self, selector: TargetSelector, kind: TemplateKind, context: dict[str, Any]) -> NotificationResult:
        try:
            recipients = self.resolve_recipients(selector)
        except Exception as e:
            logger.error(f"[Notify] recipient lookup failed: kind={kind.value}: {e}")
            return NotificationResult(success=False, message=f"Recipient lookup failed: {e}")

        if not recipients:
            logger.info(f"[Notify] no recipients for kind={kind.value}")
            return NotificationResult(success=True, message="No recipients found", recipients=[])

        return self.send(recipients, kind, context)

    def send(self, recipients: list[str], kind: TemplateKind, context: dict[str, Any]) -> NotificationResult:
        subject = _format_subject(kind, context)
        try:
            result = self.email_service.send_template_email(
                to=recipients,
                subject=subject,
                template_name=TEMPLATE_FILES[kind],
                context=context,
            )
        except Exception as e:
            # send_template_email 本身不抛异常；这里兜底第三方 SDK 的意外行为
            logger.error(f"[Notify] send crashed: kind={kind.value}: {e}")
            self._record_failure(kind, subject, recipients, str(e), context)
            return NotificationResult(success=False, message=str(e), recipients=recipients)

        if not result.ok:
            self._record_failure(kind, subject, recipients, result.error, context)
            return NotificationResult(
                success=False,
                message=result.error or "Email send failed",
                recipients=recipients,
            )

        message = "Logged (email provider not configured)" if result.dry_run else "Email sent"
        logger.info(f"[Notify] {message}: kind={kind.value} recipients={len(recipients)}")
        return NotificationResult(success=True, message=message, recipients=recipients, email_id=result.provider_id)

    def dispatch(self, intent: NotificationIntent) -> NotificationResult:
        """
        Background-task entry point for outbox intents produced by the workflow.
        """
        return self.notify(intent.selector, intent.kind, intent.context)

    def dispatch_all(self, intents: list[NotificationIntent]) -> list[NotificationResult]:
        return [self.dispatch(intent) for intent in intents]

    def _record_failure(
        self,
        kind: TemplateKind,
        subject: str,
        recipients: list[str],
        error: Optional[str],
        context: dict[str, Any],
    ) -> None:
        row = {
            "template_kind": kind.value,
            "subject": subject,
            "recipients": recipients,
            "error_message": (error or "unknown error")[:2000],
            "submission_id": str(context.get("submission_id")) if context.get("submission_id") else None,
            "context": {k: v for k, v in context.items() if isinstance(v, (str, int, float, bool)) or v is None},
        }
        try:
            self.client.table("notification_failures").insert(row).execute()
        except Exception as e:
            logger.error(f"[Notify] failed to record notification failure: {e}")


class NotificationFailureService:
    """
    管理员后台：查看/清理发送失败记录。
    """

    def __init__(self, *, client: Any = None) -> None:
        self.client = client or supabase_admin

    def list_failures(self, *, limit: int = 100) -> list[dict[str, Any]]:
        resp = (
            self.client.table("notification_failures")
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return extract_rows(resp)

    def delete_failure(self, failure_id: str) -> None:
        self.client.table("notification_failures").delete().eq("id", failure_id).execute()

    def delete_all(self) -> None:
        self.client.table("notification_failures").delete().not_.is_("id", "null").execute()
