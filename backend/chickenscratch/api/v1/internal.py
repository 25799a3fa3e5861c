import asyncio

from fastapi import APIRouter, Depends

from chickenscratch.api.v1.common import get_reminder_scheduler
from chickenscratch.core.scheduler import ReminderScheduler
from chickenscratch.core.security import require_cron_secret
from chickenscratch.models.reminder import ReminderKind

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.api_route("/cron/reminders", methods=["GET", "POST"])
async def run_all_reminders(
    _cron: None = Depends(require_cron_secret),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """
    触发全部四类提醒扫描（内部接口，外部调度器调用）。
    """
    summary = await asyncio.to_thread(scheduler.run_all)
    return {"success": True, **summary}


@router.post("/cron/reminders/{kind}")
async def run_reminder_kind(
    kind: ReminderKind,
    _cron: None = Depends(require_cron_secret),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    result = await asyncio.to_thread(scheduler.run, kind)
    return {"success": True, "kind": kind.value, "sent": result.sent, "errors": result.errors}
