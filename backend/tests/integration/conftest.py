import os

import pytest
from supabase import Client, create_client


@pytest.fixture(scope="session")
def supabase_url() -> str:
    url = (os.environ.get("SUPABASE_URL") or "").strip()
    if not url:
        pytest.skip("SUPABASE_URL must be set for integration tests")
    return url


@pytest.fixture(scope="session")
def supabase_admin_client(supabase_url: str) -> Client:
    key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not key:
        pytest.skip("SUPABASE_SERVICE_ROLE_KEY must be set for integration tests")
    client = create_client(supabase_url, key)
    try:
        # 中文注释：session 级探测，网络不可达时统一 skip。
        client.table("audit_log").select("id").limit(1).execute()
    except Exception as e:
        pytest.skip(f"Supabase (admin) is not reachable in integration tests: {e}")
    return client
