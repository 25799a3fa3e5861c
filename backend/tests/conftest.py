import os
import sys
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# === 全局测试配置 ===
# 中文注释:
# 1. JWT secret / cron secret 必须在导入 main 之前设置（auth_utils 在 import 时读取）。
# 2. 不配置任何邮件 provider：通知走 dry 模式。
# 3. 数据库统一用 tests/utils/fake_supabase.py 的内存实现。
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ["CRON_SECRET"] = "test-cron-secret"
for _key in ("RESEND_API_KEY", "SMTP_HOST", "DOC_CONVERSION_URL", "SENTRY_DSN"):
    os.environ.pop(_key, None)

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, BACKEND_DIR)
sys.path.insert(0, os.path.join(BACKEND_DIR, "tests"))

from main import app  # noqa: E402
from utils.factories import make_db  # noqa: E402


@pytest.fixture
def db():
    return make_db()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def patched_roles(monkeypatch, db):
    """
    路由层的 user_roles 查询改读内存库。
    """
    monkeypatch.setattr("chickenscratch.core.roles.supabase_admin", db)
    return db

