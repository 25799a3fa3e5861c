from __future__ import annotations

import logging
from typing import Any

from postgrest.exceptions import APIError

from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.audit import AuditLogEntry

logger = logging.getLogger("chickenscratch.audit")


class AuditTrail:
    """
    审计日志：只追加（append-only）。

    中文注释:
    1) 写入发生在状态提交之后，失败只记日志并返回 False，不能回滚/阻断业务写入。
    2) 本类刻意不提供 update/delete。
    3) 查询不依赖 submissions 表（稿件被删除后记录仍可查）。
    """

    def __init__(self, *, client: Any = None) -> None:
        self.client = client or supabase_admin

    def append(self, entry: AuditLogEntry) -> bool:
        try:
            self.client.table("audit_log").insert(entry.to_row()).execute()
            return True
        except APIError as e:
            # 中文注释: 唯一约束冲突（重复写入）同样只记录，不抛出。
            logger.warning(f"[Audit] append rejected: action={entry.action} submission={entry.submission_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"[Audit] append failed: action={entry.action} submission={entry.submission_id}: {e}")
            return False

    def record(
        self,
        *,
        submission_id: str,
        actor_id: str | None,
        action: str,
        details: dict[str, Any] | None = None,
    ) -> bool:
        return self.append(
            AuditLogEntry(
                submission_id=str(submission_id),
                actor_id=str(actor_id) if actor_id else None,
                action=action,
                details=details or {},
            )
        )

    def query_by_submission(self, submission_id: str) -> list[AuditLogEntry]:
        resp = (
            self.client.table("audit_log")
            .select("id,actor_id,submission_id,action,details,created_at")
            .eq("submission_id", str(submission_id))
            .order("created_at", desc=False)
            .execute()
        )
        return [AuditLogEntry.model_validate(row) for row in extract_rows(resp)]
