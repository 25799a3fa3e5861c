import asyncio
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from chickenscratch.api.v1.common import enqueue_notifications, get_dispatcher, get_officer_service
from chickenscratch.core.roles import require_officer
from chickenscratch.models.officer import (
    AnnouncementCreate,
    MeetingProposalCreate,
    MeetingProposalUpdate,
    OfficerTaskCreate,
    OfficerTaskUpdate,
)
from chickenscratch.services.notification_service import NotificationDispatcher
from chickenscratch.services.officer_service import OfficerService

router = APIRouter(prefix="/officer", tags=["Officers"])


# === Tasks ===
@router.get("/tasks")
async def list_tasks(
    _officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    return {"tasks": await asyncio.to_thread(service.list_tasks)}


@router.post("/tasks", status_code=201)
async def create_task(
    payload: OfficerTaskCreate,
    officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    task = await asyncio.to_thread(service.create_task, creator_id=officer["id"], payload=payload)
    return {"task": task}


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: UUID,
    payload: OfficerTaskUpdate,
    _officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    task = await asyncio.to_thread(service.update_task, str(task_id), payload)
    return {"task": task}


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: UUID,
    _officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    await asyncio.to_thread(service.delete_task, str(task_id))
    return {"success": True}


# === Meetings ===
@router.get("/meetings")
async def list_meetings(
    _officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    return {"proposals": await asyncio.to_thread(service.list_meetings)}


@router.post("/meetings", status_code=201)
async def create_meeting(
    payload: MeetingProposalCreate,
    background_tasks: BackgroundTasks,
    officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    proposal, intent = await asyncio.to_thread(service.create_meeting, creator_id=officer["id"], payload=payload)
    enqueue_notifications(background_tasks, dispatcher, [intent])
    return {"proposal": proposal}


@router.patch("/meetings/{meeting_id}")
async def update_meeting(
    meeting_id: UUID,
    payload: MeetingProposalUpdate,
    officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    """
    finalized_date → 定稿会议时间；available_slots → 记录当前 officer 的可用时间（upsert）。
    """
    return await asyncio.to_thread(service.update_meeting, str(meeting_id), user_id=officer["id"], payload=payload)


# === Announcements ===
@router.get("/announcements")
async def list_announcements(
    _officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
):
    return {"announcements": await asyncio.to_thread(service.list_announcements)}


@router.post("/announcements", status_code=201)
async def create_announcement(
    payload: AnnouncementCreate,
    background_tasks: BackgroundTasks,
    officer: dict = Depends(require_officer),
    service: OfficerService = Depends(get_officer_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    announcement, intent = await asyncio.to_thread(
        service.create_announcement, author_id=officer["id"], payload=payload
    )
    enqueue_notifications(background_tasks, dispatcher, [intent])
    return {"announcement": announcement}
