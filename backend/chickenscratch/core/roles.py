import logging
from typing import Optional

from fastapi import Depends, HTTPException

from chickenscratch.core.auth_utils import get_current_user
from chickenscratch.core.positions import has_committee_access, has_officer_access, is_site_admin
from chickenscratch.lib.api_client import extract_rows, supabase_admin

logger = logging.getLogger("chickenscratch.auth")


def load_user_role(user_id: str) -> Optional[dict]:
    """
    读取 user_roles 行（只读，由管理员工具维护）。

    中文注释: 每次请求现查，不做缓存，保证职位调整立即生效。
    """
    try:
        resp = (
            supabase_admin.table("user_roles")
            .select("user_id,is_member,roles,positions")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error(f"[Auth] failed to load user_roles for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load user role")
    rows = extract_rows(resp)
    return rows[0] if rows else None


async def get_current_member(current_user: dict = Depends(get_current_user)) -> dict:
    """
    当前用户 + 其 user_roles 记录（可能为 None：普通作者）。
    """
    return {**current_user, "user_role": load_user_role(current_user["id"])}


async def require_committee(member: dict = Depends(get_current_member)) -> dict:
    record = member.get("user_role") or {}
    if not record.get("is_member"):
        raise HTTPException(status_code=403, detail="Forbidden - Committee access required")
    positions = record.get("positions") or []
    roles = record.get("roles") or []
    if not (has_committee_access(positions, roles) or has_officer_access(positions, roles)):
        raise HTTPException(status_code=403, detail="Forbidden - Committee access required")
    return member


async def require_officer(member: dict = Depends(get_current_member)) -> dict:
    record = member.get("user_role") or {}
    if not has_officer_access(record.get("positions") or [], record.get("roles") or []):
        raise HTTPException(status_code=403, detail="Forbidden - Officer access required")
    return member


async def require_site_admin(member: dict = Depends(get_current_member)) -> dict:
    record = member.get("user_role") or {}
    if not is_site_admin(record.get("positions") or []):
        raise HTTPException(status_code=403, detail="Forbidden - Admin access required")
    return member
