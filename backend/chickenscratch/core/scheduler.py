from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from chickenscratch.models.reminder import ReminderKind, ScanResult
from chickenscratch.services.reminder_service import ReminderScanner

logger = logging.getLogger("chickenscratch.reminders")


class ReminderScheduler:
    """
    提醒调度入口（外部 cron 通过 /api/v1/internal/cron/reminders 触发）。

    中文注释:
    1) run_all 逐类执行四种扫描；某一类整体失败只记为该类的 error，不影响其他类。
    2) 返回值只含计数（sent/errors），不返回收件人明细。
    """

    def __init__(self, scanner: Optional[ReminderScanner] = None):
        self._scanner = scanner

    @property
    def scanner(self) -> ReminderScanner:
        if self._scanner is None:
            self._scanner = ReminderScanner()
        return self._scanner

    def run(self, kind: ReminderKind, now: Optional[datetime] = None) -> ScanResult:
        return self.scanner.scan(kind, now=now)

    def run_all(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        results: Dict[str, Any] = {}
        total = 0
        for kind in ReminderKind:
            try:
                result = self.run(kind, now=now)
                results[kind.value] = {"sent": result.sent, "errors": result.errors}
                total += result.sent
            except Exception as e:
                logger.error(f"[Reminders] scan {kind.value} crashed: {e}", exc_info=True)
                results[kind.value] = {"sent": 0, "errors": 1, "error": str(e)}
        return {"sent": total, "results": results}
