from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from chickenscratch.models.audit import AuditLogEntry
from chickenscratch.services.audit_service import AuditTrail
from utils.fake_supabase import FakeSupabase


@pytest.mark.unit
def test_record_appends_row():
    db = FakeSupabase()
    audit = AuditTrail(client=db)

    assert audit.record(submission_id="s-1", actor_id="u-1", action="committee_review", details={"a": 1}) is True

    [row] = db.rows("audit_log")
    assert row["submission_id"] == "s-1"
    assert row["actor_id"] == "u-1"
    assert row["action"] == "committee_review"
    assert row["details"] == {"a": 1}


@pytest.mark.unit
def test_append_swallows_database_errors():
    db = FakeSupabase()
    db.fail_on.add(("audit_log", "insert"))
    audit = AuditTrail(client=db)

    assert audit.record(submission_id="s-1", actor_id=None, action="committee_review") is False


@pytest.mark.unit
def test_append_swallows_api_errors():
    client = MagicMock()
    client.table.return_value.insert.return_value.execute.side_effect = APIError(
        {"message": "duplicate key", "code": "23505", "details": None, "hint": None}
    )
    audit = AuditTrail(client=client)

    assert audit.append(AuditLogEntry(submission_id="s-1", action="committee_approve")) is False


@pytest.mark.unit
def test_query_by_submission_is_chronological_and_survives_deletion():
    db = FakeSupabase(
        {
            "audit_log": [
                {
                    "id": "00000000-0000-0000-0000-000000000002",
                    "submission_id": "s-1",
                    "action": "committee_approve",
                    "details": {},
                    "created_at": "2026-02-02T00:00:00+00:00",
                },
                {
                    "id": "00000000-0000-0000-0000-000000000001",
                    "submission_id": "s-1",
                    "action": "committee_review",
                    "details": {},
                    "created_at": "2026-02-01T00:00:00+00:00",
                },
                {
                    "id": "00000000-0000-0000-0000-000000000003",
                    "submission_id": "s-2",
                    "action": "committee_review",
                    "details": {},
                    "created_at": "2026-02-01T00:00:00+00:00",
                },
            ]
        }
    )
    # 稿件行已不存在，审计仍可查
    entries = AuditTrail(client=db).query_by_submission("s-1")

    assert [e.action for e in entries] == ["committee_review", "committee_approve"]
    assert all(isinstance(e, AuditLogEntry) for e in entries)


@pytest.mark.unit
def test_entries_are_immutable():
    entry = AuditLogEntry(submission_id="s-1", action="committee_review")
    with pytest.raises(Exception):
        entry.action = "tampered"  # type: ignore[misc]
    assert not hasattr(AuditTrail, "update") and not hasattr(AuditTrail, "delete")
