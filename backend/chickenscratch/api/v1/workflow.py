import asyncio
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from chickenscratch.api.v1.common import (
    enqueue_notifications,
    get_audit_trail,
    get_dispatcher,
    get_workflow_service,
)
from chickenscratch.core.roles import get_current_member, require_committee
from chickenscratch.models.workflow import WorkflowActionRequest
from chickenscratch.services.audit_service import AuditTrail
from chickenscratch.services.notification_service import NotificationDispatcher
from chickenscratch.services.workflow_service import CommitteeWorkflowService

router = APIRouter(tags=["Committee Workflow"])


@router.post("/committee-workflow")
async def apply_committee_action(
    payload: WorkflowActionRequest,
    background_tasks: BackgroundTasks,
    member: dict = Depends(get_current_member),
    service: CommitteeWorkflowService = Depends(get_workflow_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    执行一次委员会动作（review/approve/decline/request_changes/commit/final_*）。

    中文注释:
    - 状态机是同步代码（Supabase client 同步），放到线程里执行，避免阻塞事件循环；
    - 通知在响应返回后以后台任务发送。
    """
    outcome = await asyncio.to_thread(
        service.apply,
        submission_id=str(payload.submission_id),
        actor_id=member["id"],
        user_role_record=member.get("user_role"),
        action=payload.action,
        comment=payload.comment,
        link_url=payload.link_url,
        assignee_id=str(payload.assignee_id) if payload.assignee_id else None,
    )
    enqueue_notifications(background_tasks, dispatcher, outcome.notifications)
    return outcome.to_response()


@router.get("/committee-workflow/{submission_id}/actions")
async def list_available_actions(
    submission_id: UUID,
    member: dict = Depends(get_current_member),
    service: CommitteeWorkflowService = Depends(get_workflow_service),
):
    data = await asyncio.to_thread(
        service.available_actions,
        submission_id=str(submission_id),
        user_role_record=member.get("user_role"),
    )
    return {"success": True, "data": data}


@router.get("/submissions/{submission_id}/audit")
async def get_submission_audit(
    submission_id: UUID,
    _member: dict = Depends(require_committee),
    audit: AuditTrail = Depends(get_audit_trail),
):
    """
    稿件审计记录（按时间正序）；稿件已删除时仍可查询。
    """
    entries = await asyncio.to_thread(audit.query_by_submission, str(submission_id))
    return {"success": True, "data": [e.model_dump(mode="json") for e in entries]}
