import asyncio
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from chickenscratch.api.v1.common import enqueue_notifications, get_dispatcher, get_submission_service
from chickenscratch.core.auth_utils import get_current_user
from chickenscratch.core.roles import get_current_member, require_committee
from chickenscratch.models.submission import (
    AssignEditorRequest,
    AssignmentNotificationRequest,
    EditorNotesRequest,
    PublishRequest,
    SubmissionCreate,
    SubmissionRevision,
)
from chickenscratch.services.notification_service import NotificationDispatcher
from chickenscratch.services.submission_service import SubmissionService

router = APIRouter(prefix="/submissions", tags=["Submissions"])
notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post("", status_code=201)
async def create_submission(
    payload: SubmissionCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    作者投稿：写入后通知 Submissions Coordinator 与 Editor-in-Chief。
    """
    created, intent = await asyncio.to_thread(
        service.create_submission, owner_id=current_user["id"], payload=payload
    )
    enqueue_notifications(background_tasks, dispatcher, [intent])
    return {"success": True, "data": created}


@router.get("/mine")
async def list_my_submissions(
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    rows = await asyncio.to_thread(service.list_mine, current_user["id"])
    return {"success": True, "data": rows}


@router.post("/{submission_id}/revise")
async def revise_submission(
    submission_id: UUID,
    payload: SubmissionRevision,
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    updated = await asyncio.to_thread(
        service.revise_submission,
        submission_id=str(submission_id),
        owner_id=current_user["id"],
        payload=payload,
    )
    return {"success": True, "data": updated}


@router.post("/{submission_id}/publish")
async def publish_submission(
    submission_id: UUID,
    payload: PublishRequest,
    member: dict = Depends(get_current_member),
    service: SubmissionService = Depends(get_submission_service),
):
    updated = await asyncio.to_thread(
        service.publish_submission,
        submission_id=str(submission_id),
        actor_id=member["id"],
        user_role_record=member.get("user_role"),
        payload=payload,
    )
    return {"success": True, "data": updated}


@router.post("/{submission_id}/notes")
async def save_editor_notes(
    submission_id: UUID,
    payload: EditorNotesRequest,
    member: dict = Depends(get_current_member),
    service: SubmissionService = Depends(get_submission_service),
):
    await asyncio.to_thread(
        service.save_editor_notes,
        submission_id=str(submission_id),
        actor_id=member["id"],
        user_role_record=member.get("user_role"),
        payload=payload,
    )
    return {"success": True}


@router.post("/{submission_id}/assign")
async def assign_editor(
    submission_id: UUID,
    payload: AssignEditorRequest,
    member: dict = Depends(get_current_member),
    service: SubmissionService = Depends(get_submission_service),
):
    await asyncio.to_thread(
        service.assign_editor,
        submission_id=str(submission_id),
        actor_id=member["id"],
        user_role_record=member.get("user_role"),
        payload=payload,
    )
    return {"success": True}


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: UUID,
    member: dict = Depends(get_current_member),
    service: SubmissionService = Depends(get_submission_service),
):
    """
    管理员删除（BBEG / Dictator-in-Chief），删除前写审计。
    """
    await asyncio.to_thread(
        service.delete_submission,
        submission_id=str(submission_id),
        actor_id=member["id"],
        user_role_record=member.get("user_role"),
    )
    return {"success": True}


@notifications_router.post("/submission-assigned")
async def resend_assignment_notification(
    payload: AssignmentNotificationRequest,
    _member: dict = Depends(require_committee),
    service: SubmissionService = Depends(get_submission_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    手动重发交接通知（看板上的“通知”按钮）。

    中文注释: 这里同步发送并返回结果；发送失败返回 500，便于前端提示重试。
    """
    intent = await asyncio.to_thread(
        service.assignment_intent,
        submission_id=str(payload.submission_id),
        committee_status=payload.committee_status,
        notification_type=payload.notification_type,
    )
    if intent is None:
        return {"success": True, "message": "No notification required for this status", "recipients": []}
    result = await asyncio.to_thread(dispatcher.dispatch, intent)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.message)
    return result.model_dump()
