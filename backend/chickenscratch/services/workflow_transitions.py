from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from chickenscratch.core.positions import Position, WorkflowRole
from chickenscratch.models.submission import (
    AuthorStatus,
    CommitteeAction,
    CommitteeStatus,
    SubmissionType,
)

# 中文注释：
# - 委员会状态机规则必须显性可见：(当前状态, 角色, 动作[, 稿件类型]) -> TransitionRule。
# - 表里没有的组合一律视为越权（403），不会修改 committee_status。
# - None 表示新稿件（committee_status 为空）。

StateKey = Optional[CommitteeStatus]


@dataclass(frozen=True)
class TransitionRule:
    role: WorkflowRole
    next_status: Optional[CommitteeStatus]
    stamp_field: Optional[str] = None
    link_field: Optional[str] = None
    stores_decline_reason: bool = False
    stores_editor_notes: bool = False
    author_status: Optional[AuthorStatus] = None
    converts_document: bool = False

    @property
    def requires_link(self) -> bool:
        return self.link_field is not None


_RuleKey = tuple[StateKey, WorkflowRole, CommitteeAction, Optional[SubmissionType]]

_COORDINATOR = WorkflowRole.SUBMISSIONS_COORDINATOR
_PROOFREADER = WorkflowRole.PROOFREADER
_LEAD_DESIGN = WorkflowRole.LEAD_DESIGN
_EDITOR = WorkflowRole.EDITOR_IN_CHIEF

_TO_WITH_COORDINATOR = TransitionRule(role=_COORDINATOR, next_status=CommitteeStatus.WITH_COORDINATOR)

_PROOFREADER_COMMIT = TransitionRule(
    role=_PROOFREADER,
    next_status=CommitteeStatus.PROOFREADER_COMMITTED,
    stamp_field="proofreader_committed_at",
    link_field="google_docs_link",
)

_LEAD_DESIGN_COMMIT = TransitionRule(
    role=_LEAD_DESIGN,
    next_status=CommitteeStatus.LEAD_DESIGN_COMMITTED,
    stamp_field="lead_design_committed_at",
    link_field="lead_design_commit_link",
)

_EDITOR_APPROVE = TransitionRule(
    role=_EDITOR,
    next_status=CommitteeStatus.EDITOR_APPROVED,
    stamp_field="editor_reviewed_at",
)

_EDITOR_DECLINE = TransitionRule(
    role=_EDITOR,
    next_status=CommitteeStatus.EDITOR_DECLINED,
    stamp_field="editor_reviewed_at",
    stores_decline_reason=True,
)

_EDITOR_REQUEST_CHANGES = TransitionRule(
    role=_EDITOR,
    next_status=CommitteeStatus.CHANGES_REQUESTED,
    stamp_field="editor_reviewed_at",
    stores_editor_notes=True,
    author_status=AuthorStatus.NEEDS_REVISION,
)

EDITOR_REVIEWABLE_STATUSES: tuple[CommitteeStatus, ...] = (
    CommitteeStatus.LEAD_DESIGN_COMMITTED,
    CommitteeStatus.PROOFREADER_COMMITTED,
    CommitteeStatus.WITH_EDITOR_IN_CHIEF,
)


def _build_transitions() -> dict[_RuleKey, TransitionRule]:
    table: dict[_RuleKey, TransitionRule] = {
        # Submissions Coordinator
        (None, _COORDINATOR, CommitteeAction.REVIEW, None): _TO_WITH_COORDINATOR,
        (CommitteeStatus.PENDING_COORDINATOR, _COORDINATOR, CommitteeAction.REVIEW, None): _TO_WITH_COORDINATOR,
        (CommitteeStatus.WITH_COORDINATOR, _COORDINATOR, CommitteeAction.REVIEW, None): TransitionRule(
            role=_COORDINATOR,
            next_status=None,
            converts_document=True,
        ),
        (CommitteeStatus.WITH_COORDINATOR, _COORDINATOR, CommitteeAction.APPROVE, None): TransitionRule(
            role=_COORDINATOR,
            next_status=CommitteeStatus.COORDINATOR_APPROVED,
            stamp_field="coordinator_reviewed_at",
        ),
        (CommitteeStatus.WITH_COORDINATOR, _COORDINATOR, CommitteeAction.DECLINE, None): TransitionRule(
            role=_COORDINATOR,
            next_status=CommitteeStatus.COORDINATOR_DECLINED,
            stamp_field="coordinator_reviewed_at",
            stores_decline_reason=True,
        ),
        (CommitteeStatus.WITH_COORDINATOR, _COORDINATOR, CommitteeAction.REQUEST_CHANGES, None): TransitionRule(
            role=_COORDINATOR,
            next_status=CommitteeStatus.CHANGES_REQUESTED,
            stores_editor_notes=True,
            author_status=AuthorStatus.NEEDS_REVISION,
        ),
        # Proofreader (writing only)
        (
            CommitteeStatus.COORDINATOR_APPROVED,
            _PROOFREADER,
            CommitteeAction.COMMIT,
            SubmissionType.WRITING,
        ): _PROOFREADER_COMMIT,
        # Lead Design (visual straight from the coordinator, writing after proofreading)
        (
            CommitteeStatus.COORDINATOR_APPROVED,
            _LEAD_DESIGN,
            CommitteeAction.COMMIT,
            SubmissionType.VISUAL,
        ): _LEAD_DESIGN_COMMIT,
        (CommitteeStatus.PROOFREADER_COMMITTED, _LEAD_DESIGN, CommitteeAction.COMMIT, None): _LEAD_DESIGN_COMMIT,
    }

    # Editor-in-Chief
    for status in EDITOR_REVIEWABLE_STATUSES:
        table[(status, _EDITOR, CommitteeAction.APPROVE, None)] = _EDITOR_APPROVE
        table[(status, _EDITOR, CommitteeAction.FINAL_APPROVE, None)] = _EDITOR_APPROVE
        table[(status, _EDITOR, CommitteeAction.DECLINE, None)] = _EDITOR_DECLINE
        table[(status, _EDITOR, CommitteeAction.FINAL_DECLINE, None)] = _EDITOR_DECLINE
        table[(status, _EDITOR, CommitteeAction.REQUEST_CHANGES, None)] = _EDITOR_REQUEST_CHANGES

    return table


TRANSITIONS: dict[_RuleKey, TransitionRule] = _build_transitions()

# Lookup order for officer override: the officer's own role first, then lower roles.
_OVERRIDE_ORDER: tuple[WorkflowRole, ...] = (_EDITOR, _COORDINATOR, _PROOFREADER, _LEAD_DESIGN)


def find_rule(
    status: StateKey,
    role: WorkflowRole,
    action: CommitteeAction,
    submission_type: SubmissionType,
) -> TransitionRule | None:
    rule = TRANSITIONS.get((status, role, action, submission_type))
    if rule is not None:
        return rule
    return TRANSITIONS.get((status, role, action, None))


def find_override_rule(
    status: StateKey,
    action: CommitteeAction,
    submission_type: SubmissionType,
) -> TransitionRule | None:
    """
    Officer override: pick the row for (state, action) regardless of which role owns it.
    """
    for role in _OVERRIDE_ORDER:
        rule = find_rule(status, role, action, submission_type)
        if rule is not None:
            return rule
    return None


def allowed_actions(status: StateKey, role: WorkflowRole, submission_type: SubmissionType) -> set[CommitteeAction]:
    """
    返回当前角色在该状态下可执行的动作集合（用于前端按钮渲染）。
    """
    out: set[CommitteeAction] = set()
    for action in CommitteeAction:
        if find_rule(status, role, action, submission_type) is not None:
            out.add(action)
    return out


# 交接状态 → 下一个负责职位（writing/visual 区分的用 dict）。
PositionTarget = Union[Position, dict[SubmissionType, Position]]

HANDOFF_POSITIONS: dict[CommitteeStatus, PositionTarget] = {
    CommitteeStatus.COORDINATOR_APPROVED: {
        SubmissionType.WRITING: Position.PROOFREADER,
        SubmissionType.VISUAL: Position.LEAD_DESIGN,
    },
    CommitteeStatus.PROOFREADER_COMMITTED: Position.LEAD_DESIGN,
    CommitteeStatus.LEAD_DESIGN_COMMITTED: Position.EDITOR_IN_CHIEF,
}

# 停滞提醒：活跃状态 → 负责职位（在交接映射基础上加上协调员阶段）。
RESPONSIBLE_POSITIONS: dict[CommitteeStatus, PositionTarget] = {
    CommitteeStatus.PENDING_COORDINATOR: Position.SUBMISSIONS_COORDINATOR,
    CommitteeStatus.WITH_COORDINATOR: Position.SUBMISSIONS_COORDINATOR,
    **HANDOFF_POSITIONS,
}

# 停滞提醒：活跃状态 → 用于计算“闲置时长”的时间戳字段。
IDLE_TIMESTAMP_FIELDS: dict[CommitteeStatus, str] = {
    CommitteeStatus.PENDING_COORDINATOR: "updated_at",
    CommitteeStatus.WITH_COORDINATOR: "updated_at",
    CommitteeStatus.COORDINATOR_APPROVED: "coordinator_reviewed_at",
    CommitteeStatus.PROOFREADER_COMMITTED: "proofreader_committed_at",
    CommitteeStatus.LEAD_DESIGN_COMMITTED: "lead_design_committed_at",
}


def positions_for(
    mapping: dict[CommitteeStatus, PositionTarget],
    status: StateKey,
    submission_type: SubmissionType,
) -> list[Position]:
    if status is None:
        return []
    target = mapping.get(status)
    if target is None:
        return []
    if isinstance(target, dict):
        pos = target.get(submission_type)
        return [pos] if pos else []
    return [target]


def status_label(status: StateKey) -> str:
    if status is None:
        return "New"
    return status.value.replace("_", " ").title()
