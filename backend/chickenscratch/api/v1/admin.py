import asyncio

from fastapi import APIRouter, Depends, HTTPException

from chickenscratch.api.v1.common import get_failure_service
from chickenscratch.core.roles import require_site_admin
from chickenscratch.models.notification import NotificationFailureDelete
from chickenscratch.services.notification_service import NotificationFailureService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/notification-failures")
async def list_notification_failures(
    limit: int = 100,
    _admin: dict = Depends(require_site_admin),
    service: NotificationFailureService = Depends(get_failure_service),
):
    rows = await asyncio.to_thread(service.list_failures, limit=max(1, min(limit, 500)))
    return {"success": True, "data": rows}


@router.delete("/notification-failures")
async def delete_notification_failures(
    payload: NotificationFailureDelete,
    _admin: dict = Depends(require_site_admin),
    service: NotificationFailureService = Depends(get_failure_service),
):
    if payload.all:
        await asyncio.to_thread(service.delete_all)
    elif payload.id:
        await asyncio.to_thread(service.delete_failure, payload.id)
    else:
        raise HTTPException(status_code=400, detail="Missing id or all flag")
    return {"success": True}
