from typing import Iterable

from fastapi import BackgroundTasks

from chickenscratch.core.scheduler import ReminderScheduler
from chickenscratch.models.notification import NotificationIntent
from chickenscratch.services.audit_service import AuditTrail
from chickenscratch.services.notification_service import NotificationDispatcher, NotificationFailureService
from chickenscratch.services.officer_service import OfficerService
from chickenscratch.services.submission_service import SubmissionService
from chickenscratch.services.workflow_service import CommitteeWorkflowService

# 中文注释:
# - 路由通过这些 provider 获取服务实例，测试里用 app.dependency_overrides 注入假实现。
# - 服务本身无状态（锁表是进程级单例），每个请求新建即可。


def get_workflow_service() -> CommitteeWorkflowService:
    return CommitteeWorkflowService()


def get_audit_trail() -> AuditTrail:
    return AuditTrail()


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


def get_submission_service() -> SubmissionService:
    return SubmissionService()


def get_officer_service() -> OfficerService:
    return OfficerService()


def get_failure_service() -> NotificationFailureService:
    return NotificationFailureService()


def get_reminder_scheduler() -> ReminderScheduler:
    return ReminderScheduler()


def enqueue_notifications(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    intents: Iterable[NotificationIntent],
) -> int:
    """
    把通知 intent 挂到响应之后执行（advisory：失败不影响已返回的结果）。
    """
    count = 0
    for intent in intents:
        background_tasks.add_task(dispatcher.dispatch, intent)
        count += 1
    return count
