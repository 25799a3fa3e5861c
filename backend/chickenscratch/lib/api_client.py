import os
from typing import Any, Callable, Optional

from supabase import Client, create_client

from chickenscratch.core.config import app_config

url: str = app_config.supabase_url

# 中文注释:
# - 工作流引擎所有读写都走 service_role（绕过 RLS），鉴权在应用层完成（positions/roles）。
# - anon key 仅用于校验用户 token（auth.get_user 兜底路径）。
anon_key: str = os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_KEY") or ""
service_role_key: str = app_config.supabase_key


class _LazySupabaseClient:
    """
    延迟初始化 Supabase Client，避免在 import 时因为缺少环境变量导致整个模块导入失败。

    中文注释:
    - 单元测试会 patch `supabase_admin`，因此这里必须保证“可导入”。
    - 真实运行时，如果缺少 URL/KEY，在第一次访问 client 时抛出清晰错误即可。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)

    def __repr__(self) -> str:
        state = "ready" if self._client is not None else "lazy"
        return f"<{self._name} ({state})>"


def _require_supabase_url() -> str:
    if not url:
        raise RuntimeError("SUPABASE_URL is required")
    return url


def _create_supabase() -> Client:
    if not anon_key:
        raise RuntimeError("SUPABASE_ANON_KEY or SUPABASE_KEY is required")
    return create_client(_require_supabase_url(), anon_key)


def _create_supabase_admin() -> Client:
    admin_key = service_role_key or anon_key
    if not admin_key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) is required")
    return create_client(_require_supabase_url(), admin_key)


# === 用户态客户端（仅用于 token 校验兜底） ===
supabase: Client = _LazySupabaseClient(_create_supabase, name="supabase")  # type: ignore[assignment]

# === 管理端 Supabase 客户端（工作流/提醒/审计读写） ===
supabase_admin: Client = _LazySupabaseClient(_create_supabase_admin, name="supabase_admin")  # type: ignore[assignment]


def extract_rows(resp: Any) -> list[dict[str, Any]]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)
