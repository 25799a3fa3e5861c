from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from chickenscratch.core.config import WorkflowConfig
from chickenscratch.core.keyed_lock import KeyedLockRegistry, reminder_locks
from chickenscratch.lib.api_client import extract_rows, supabase_admin
from chickenscratch.models.reminder import ReminderEntityType, ReminderKind

logger = logging.getLogger("chickenscratch.reminders")


class ReminderLedger:
    """
    提醒去重账本（public.reminder_log）。

    中文注释:
    1) 规则：同一 (entity, kind, recipient) 在冷却窗口内只发一次；窗口是滑动的，过期后会再次提醒。
    2) claim() 是串行化点：进程内按三元组加锁 + “先插入再校验”（窗口内最早的一行胜出，其余删除自己的行）。
       这样即便多个扫描进程重叠，也最多只有一个能拿到发送权。
    3) 发送失败时 release() 删除占位行，下一次扫描即重试。
    """

    def __init__(
        self,
        *,
        client: Any = None,
        cooldown_days: Optional[int] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ) -> None:
        self.client = client or supabase_admin
        if cooldown_days is None:
            cooldown_days = WorkflowConfig.from_env().reminder_cooldown_days
        self.cooldown = timedelta(days=cooldown_days)
        self.locks = locks or reminder_locks

    @staticmethod
    def _key(entity_type: ReminderEntityType, entity_id: str, kind: ReminderKind, recipient: str) -> str:
        return f"{entity_type.value}:{entity_id}:{kind.value}:{recipient.lower()}"

    def _window_rows(
        self,
        entity_type: ReminderEntityType,
        entity_id: str,
        kind: ReminderKind,
        recipient: str,
        now: datetime,
        *,
        inclusive: bool = False,
    ) -> list[dict[str, Any]]:
        window_start = (now - self.cooldown).astimezone(timezone.utc).isoformat()
        query = (
            self.client.table("reminder_log")
            .select("id,sent_at")
            .eq("entity_type", entity_type.value)
            .eq("entity_id", str(entity_id))
            .eq("reminder_type", kind.value)
            .eq("sent_to", recipient)
        )
        # 校验阶段包含窗口起点，保证冷却为 0 时也能看到自己刚插入的行
        query = query.gte("sent_at", window_start) if inclusive else query.gt("sent_at", window_start)
        resp = query.order("sent_at", desc=False).execute()
        return extract_rows(resp)

    def was_recently_sent(
        self,
        entity_type: ReminderEntityType,
        entity_id: str,
        kind: ReminderKind,
        recipient: str,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or datetime.now(timezone.utc)
        return bool(self._window_rows(entity_type, entity_id, kind, recipient, now))

    def claim(
        self,
        entity_type: ReminderEntityType,
        entity_id: str,
        kind: ReminderKind,
        recipient: str,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Reserve the right to send one reminder. Returns the ledger row id, or None when suppressed.
        """
        now = now or datetime.now(timezone.utc)
        sent_at = now.astimezone(timezone.utc).isoformat()

        with self.locks.hold(self._key(entity_type, entity_id, kind, recipient)):
            if self._window_rows(entity_type, entity_id, kind, recipient, now):
                return None

            resp = (
                self.client.table("reminder_log")
                .insert(
                    {
                        "entity_type": entity_type.value,
                        "entity_id": str(entity_id),
                        "reminder_type": kind.value,
                        "sent_to": recipient,
                        "sent_at": sent_at,
                    }
                )
                .execute()
            )
            inserted = extract_rows(resp)
            claim_id = str(inserted[0].get("id")) if inserted and inserted[0].get("id") else None
            if claim_id is None:
                # 拿不到自己的行 id 就无法区分胜负，也无法安全 release：按已抑制处理
                logger.warning(f"[Reminders] ledger insert returned no row: {entity_type.value}/{entity_id} {kind.value}")
                return None

            rows = self._window_rows(entity_type, entity_id, kind, recipient, now, inclusive=True)
            winner = rows[0] if rows else None
            if winner is None:
                logger.warning(f"[Reminders] ledger insert not visible: {entity_type.value}/{entity_id} {kind.value}")
                return None

            winner_id = str(winner.get("id"))
            if winner_id != claim_id:
                # 其他扫描抢先写入：撤回自己的行
                self.release(claim_id)
                return None
            return winner_id

    def release(self, claim_id: Optional[str]) -> None:
        if not claim_id:
            return
        try:
            self.client.table("reminder_log").delete().eq("id", claim_id).execute()
        except Exception as e:
            logger.error(f"[Reminders] failed to release ledger claim {claim_id}: {e}")
