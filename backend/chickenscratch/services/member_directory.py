from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from chickenscratch.core.positions import OFFICER_POSITIONS, BroadRole, Position
from chickenscratch.lib.api_client import extract_rows, supabase_admin

logger = logging.getLogger("chickenscratch.directory")


class MemberDirectory:
    """
    Profile / UserRole 只读访问（工作流引擎对 user_roles 只读）。

    中文注释:
    - positions/roles 在库里是 text[]，这里统一用 contains/overlaps 查询；
    - 邮箱为空的 profile 直接丢弃，不视为错误。
    """

    def __init__(self, *, client: Any = None) -> None:
        self.client = client or supabase_admin

    def get_user_role(self, user_id: str) -> Optional[dict[str, Any]]:
        resp = (
            self.client.table("user_roles")
            .select("user_id,is_member,roles,positions")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        rows = extract_rows(resp)
        return rows[0] if rows else None

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        if not user_id:
            return None
        resp = (
            self.client.table("profiles")
            .select("id,email,name,full_name")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = extract_rows(resp)
        return rows[0] if rows else None

    def display_name(self, user_id: str) -> str:
        profile = self.get_profile(user_id) or {}
        return str(profile.get("name") or profile.get("full_name") or profile.get("email") or "An officer")

    def email_for_user(self, user_id: str) -> Optional[str]:
        profile = self.get_profile(user_id) or {}
        email = str(profile.get("email") or "").strip()
        return email or None

    def emails_for_users(self, user_ids: Iterable[str]) -> list[str]:
        ids = sorted({str(uid).strip() for uid in user_ids if str(uid or "").strip()})
        if not ids:
            return []
        resp = self.client.table("profiles").select("id,email").in_("id", ids).execute()
        by_id = {str(row.get("id")): str(row.get("email") or "").strip() for row in extract_rows(resp)}
        # 保持传入顺序，方便提醒按人逐一去重
        return [by_id[uid] for uid in ids if by_id.get(uid)]

    def user_ids_for_positions(self, positions: Iterable[Position | str]) -> list[str]:
        user_ids: list[str] = []
        seen: set[str] = set()
        for pos in positions:
            value = pos.value if isinstance(pos, Position) else str(pos)
            resp = self.client.table("user_roles").select("user_id").contains("positions", [value]).execute()
            for row in extract_rows(resp):
                uid = str(row.get("user_id") or "")
                if uid and uid not in seen:
                    seen.add(uid)
                    user_ids.append(uid)
        return user_ids

    def emails_for_positions(self, positions: Iterable[Position | str]) -> list[str]:
        user_ids = self.user_ids_for_positions(positions)
        if not user_ids:
            logger.warning(f"[Directory] no users hold positions: {[getattr(p, 'value', p) for p in positions]}")
            return []
        return self.emails_for_users(user_ids)

    def officer_user_ids(self) -> list[str]:
        role_resp = (
            self.client.table("user_roles")
            .select("user_id")
            .contains("roles", [BroadRole.OFFICER.value])
            .execute()
        )
        position_resp = (
            self.client.table("user_roles")
            .select("user_id")
            .overlaps("positions", sorted(p.value for p in OFFICER_POSITIONS))
            .execute()
        )
        out: list[str] = []
        seen: set[str] = set()
        for row in [*extract_rows(role_resp), *extract_rows(position_resp)]:
            uid = str(row.get("user_id") or "")
            if uid and uid not in seen:
                seen.add(uid)
                out.append(uid)
        return out

    def officer_emails(self, *, exclude_user_id: Optional[str] = None) -> list[str]:
        ids = [uid for uid in self.officer_user_ids() if uid != exclude_user_id]
        return self.emails_for_users(ids)
