import pytest

from chickenscratch.api.v1.common import get_failure_service
from chickenscratch.services.notification_service import NotificationFailureService
from main import app
from utils.api_client import API_PREFIX, auth_headers
from utils.factories import ADMIN_ID, OFFICER_ID, generate_test_token

URL = f"{API_PREFIX}/admin/notification-failures"


@pytest.fixture
def wired(patched_roles):
    db = patched_roles
    db.tables["notification_failures"] = [
        {"id": "f-1", "template_kind": "stale_task", "subject": "a", "created_at": "2026-01-01T00:00:00+00:00"},
        {"id": "f-2", "template_kind": "new_submission", "subject": "b", "created_at": "2026-01-02T00:00:00+00:00"},
    ]
    app.dependency_overrides[get_failure_service] = lambda: NotificationFailureService(client=db)
    return db


@pytest.mark.asyncio
async def test_only_site_admins(client, wired):
    resp = await client.get(URL, headers=auth_headers(generate_test_token(OFFICER_ID)))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_newest_first(client, wired):
    resp = await client.get(URL, params={"limit": 0}, headers=auth_headers(generate_test_token(ADMIN_ID)))
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()["data"]] == ["f-2"]


@pytest.mark.asyncio
async def test_delete_one_then_all(client, wired):
    headers = auth_headers(generate_test_token(ADMIN_ID))

    one = await client.request("DELETE", URL, json={"id": "f-1"}, headers=headers)
    assert one.status_code == 200
    assert [r["id"] for r in wired.rows("notification_failures")] == ["f-2"]

    everything = await client.request("DELETE", URL, json={"all": True}, headers=headers)
    assert everything.status_code == 200
    assert wired.rows("notification_failures") == []


@pytest.mark.asyncio
async def test_delete_needs_target(client, wired):
    resp = await client.request("DELETE", URL, json={}, headers=auth_headers(generate_test_token(ADMIN_ID)))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing id or all flag"
