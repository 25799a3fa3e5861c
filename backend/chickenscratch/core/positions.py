from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping

# 中文注释：
# - 这里集中定义 position/role 与“工作流角色”的映射，避免权限判断散落在各路由。
# - 角色每次请求现算（纯函数），不缓存、不跨请求传递。


class Position(str, Enum):
    SUBMISSIONS_COORDINATOR = "Submissions Coordinator"
    PROOFREADER = "Proofreader"
    LEAD_DESIGN = "Lead Design"
    EDITOR_IN_CHIEF = "Editor-in-Chief"

    BBEG = "BBEG"
    DICTATOR_IN_CHIEF = "Dictator-in-Chief"
    SCROLL_GREMLIN = "Scroll Gremlin"
    CHIEF_HOARDER = "Chief Hoarder"
    PR_NIGHTMARE = "PR Nightmare"


class BroadRole(str, Enum):
    OFFICER = "officer"
    COMMITTEE = "committee"


class WorkflowRole(str, Enum):
    SUBMISSIONS_COORDINATOR = "submissions_coordinator"
    PROOFREADER = "proofreader"
    LEAD_DESIGN = "lead_design"
    EDITOR_IN_CHIEF = "editor_in_chief"


COMMITTEE_POSITIONS: frozenset[Position] = frozenset(
    {
        Position.SUBMISSIONS_COORDINATOR,
        Position.PROOFREADER,
        Position.LEAD_DESIGN,
        Position.EDITOR_IN_CHIEF,
    }
)

OFFICER_POSITIONS: frozenset[Position] = frozenset(
    {
        Position.BBEG,
        Position.DICTATOR_IN_CHIEF,
        Position.SCROLL_GREMLIN,
        Position.CHIEF_HOARDER,
        Position.PR_NIGHTMARE,
    }
)

SITE_ADMIN_POSITIONS: frozenset[Position] = frozenset({Position.BBEG, Position.DICTATOR_IN_CHIEF})

# Precedence is evaluated top to bottom; UI buttons assume one active role per request.
ROLE_PRECEDENCE: tuple[tuple[Position, WorkflowRole], ...] = (
    (Position.SUBMISSIONS_COORDINATOR, WorkflowRole.SUBMISSIONS_COORDINATOR),
    (Position.PROOFREADER, WorkflowRole.PROOFREADER),
    (Position.LEAD_DESIGN, WorkflowRole.LEAD_DESIGN),
    (Position.EDITOR_IN_CHIEF, WorkflowRole.EDITOR_IN_CHIEF),
)

# Position -> workflow role, used by the dispatcher to map a role back to the people holding it.
ROLE_POSITION: dict[WorkflowRole, Position] = {role: pos for pos, role in ROLE_PRECEDENCE}


def parse_positions(raw: Iterable[Any] | None) -> set[Position]:
    """
    将数据库里的字符串数组转换为 Position 集合；未知值直接忽略。
    """
    out: set[Position] = set()
    for item in raw or []:
        if isinstance(item, Position):
            out.add(item)
            continue
        text = str(item or "").strip()
        if not text:
            continue
        try:
            out.add(Position(text))
        except ValueError:
            continue
    return out


def parse_roles(raw: Iterable[Any] | None) -> set[BroadRole]:
    out: set[BroadRole] = set()
    for item in raw or []:
        if isinstance(item, BroadRole):
            out.add(item)
            continue
        text = str(item or "").strip().lower()
        if not text:
            continue
        try:
            out.add(BroadRole(text))
        except ValueError:
            continue
    return out


def has_officer_access(positions: Iterable[Any] | None, roles: Iterable[Any] | None) -> bool:
    if BroadRole.OFFICER in parse_roles(roles):
        return True
    return bool(parse_positions(positions) & OFFICER_POSITIONS)


def has_committee_access(positions: Iterable[Any] | None, roles: Iterable[Any] | None) -> bool:
    if BroadRole.COMMITTEE in parse_roles(roles):
        return True
    return bool(parse_positions(positions) & COMMITTEE_POSITIONS)


def is_site_admin(positions: Iterable[Any] | None) -> bool:
    return bool(parse_positions(positions) & SITE_ADMIN_POSITIONS)


def resolve_role(positions: Iterable[Any] | None, roles: Iterable[Any] | None) -> WorkflowRole | None:
    """
    Map a user's positions/roles to the single workflow role used for this request.

    Committee positions win in fixed order; officers without a committee
    position act as Editor-in-Chief.
    """
    held = parse_positions(positions)
    for position, role in ROLE_PRECEDENCE:
        if position in held:
            return role
    if held & OFFICER_POSITIONS or BroadRole.OFFICER in parse_roles(roles):
        return WorkflowRole.EDITOR_IN_CHIEF
    return None


def resolve_user_role(record: Mapping[str, Any] | None) -> WorkflowRole | None:
    """
    从 user_roles 行解析工作流角色。

    中文注释:
    - 非成员（is_member=false）一律无角色；
    - 既不是 committee 也不是 officer 的成员同样无角色。
    """
    if not record or not record.get("is_member"):
        return None
    positions = record.get("positions") or []
    roles = record.get("roles") or []
    if not (has_officer_access(positions, roles) or has_committee_access(positions, roles)):
        return None
    return resolve_role(positions, roles)


def is_officer_override(record: Mapping[str, Any] | None, role: WorkflowRole | None) -> bool:
    """
    True when the Editor-in-Chief role came from officer access rather than the position itself.
    """
    if role is not WorkflowRole.EDITOR_IN_CHIEF or not record:
        return False
    positions = record.get("positions") or []
    if Position.EDITOR_IN_CHIEF in parse_positions(positions):
        return False
    return has_officer_access(positions, record.get("roles") or [])
