from datetime import datetime, timezone

import pytest
from fastapi import HTTPException

from chickenscratch.models.notification import TemplateKind
from chickenscratch.models.officer import (
    AnnouncementCreate,
    MeetingProposalCreate,
    MeetingProposalUpdate,
    OfficerTaskCreate,
    OfficerTaskUpdate,
)
from chickenscratch.services.member_directory import MemberDirectory
from chickenscratch.services.officer_service import OfficerService
from utils.factories import ADMIN_ID, OFFICER_ID, make_db


def _service(db) -> OfficerService:
    return OfficerService(client=db, directory=MemberDirectory(client=db))


@pytest.mark.unit
def test_create_task_defaults_to_todo():
    db = make_db()
    task = _service(db).create_task(
        creator_id=OFFICER_ID,
        payload=OfficerTaskCreate(title="  Book venue ", due_date=datetime(2026, 4, 1)),
    )
    assert task["title"] == "Book venue"
    assert task["status"] == "todo"
    assert task["priority"] == "medium"
    assert task["created_by"] == OFFICER_ID
    assert task["due_date"] == "2026-04-01T00:00:00+00:00"


@pytest.mark.unit
def test_update_task_only_touches_sent_fields():
    db = make_db(officer_tasks=[{"id": "t-1", "title": "Book venue", "status": "todo", "priority": "low"}])
    updated = _service(db).update_task("t-1", OfficerTaskUpdate(status="completed"))
    assert updated["status"] == "completed"
    assert updated["priority"] == "low"
    assert updated["updated_at"]


@pytest.mark.unit
def test_update_task_errors():
    db = make_db(officer_tasks=[])
    service = _service(db)
    with pytest.raises(HTTPException) as empty:
        service.update_task("t-1", OfficerTaskUpdate())
    assert empty.value.status_code == 400
    with pytest.raises(HTTPException) as missing:
        service.update_task("t-1", OfficerTaskUpdate(title="x"))
    assert missing.value.status_code == 404


@pytest.mark.unit
def test_delete_task():
    db = make_db(officer_tasks=[{"id": "t-1", "title": "x"}, {"id": "t-2", "title": "y"}])
    _service(db).delete_task("t-1")
    assert [t["id"] for t in db.rows("officer_tasks")] == ["t-2"]


@pytest.mark.unit
def test_create_meeting_notifies_other_officers():
    db = make_db()
    proposal, intent = _service(db).create_meeting(
        creator_id=OFFICER_ID,
        payload=MeetingProposalCreate(title="Zine night", proposed_dates=["2026-04-02T18:00:00Z", " "]),
    )
    assert proposal["proposed_dates"] == ["2026-04-02T18:00:00Z"]
    assert intent.kind is TemplateKind.OFFICER_MEETING
    assert intent.selector.all_officers is True
    assert intent.selector.exclude_user_id == OFFICER_ID
    assert intent.context["author_name"] == "Olive Officer"


@pytest.mark.unit
def test_meeting_availability_is_upserted_per_officer():
    db = make_db(meeting_proposals=[{"id": "m-1", "title": "Zine night", "created_at": "2026-03-01T00:00:00+00:00"}])
    service = _service(db)

    service.update_meeting("m-1", user_id=ADMIN_ID, payload=MeetingProposalUpdate(available_slots=["a"]))
    service.update_meeting("m-1", user_id=ADMIN_ID, payload=MeetingProposalUpdate(available_slots=["a", "b"]))

    [row] = db.rows("officer_availability")
    assert row["available_slots"] == ["a", "b"]

    [listed] = service.list_meetings()
    assert listed["availability"][0]["user_id"] == ADMIN_ID


@pytest.mark.unit
def test_finalize_meeting():
    db = make_db(meeting_proposals=[{"id": "m-1", "title": "Zine night"}])
    service = _service(db)

    out = service.update_meeting(
        "m-1", user_id=OFFICER_ID, payload=MeetingProposalUpdate(finalized_date=datetime(2026, 4, 2, tzinfo=timezone.utc))
    )
    assert out["proposal"]["finalized_date"] == "2026-04-02T00:00:00+00:00"

    with pytest.raises(HTTPException) as exc:
        service.update_meeting("m-1", user_id=OFFICER_ID, payload=MeetingProposalUpdate())
    assert exc.value.status_code == 400


@pytest.mark.unit
def test_announcement_creates_intent():
    db = make_db()
    announcement, intent = _service(db).create_announcement(
        author_id=ADMIN_ID, payload=AnnouncementCreate(message=" Meeting moved to Thursday ")
    )
    assert announcement["message"] == "Meeting moved to Thursday"
    assert intent.kind is TemplateKind.OFFICER_ANNOUNCEMENT
    assert intent.context == {"message": "Meeting moved to Thursday", "author_name": "Bea Admin"}
    assert _service(db).list_announcements()[0]["created_by"] == ADMIN_ID


@pytest.mark.unit
def test_blank_announcement_rejected():
    with pytest.raises(HTTPException) as exc:
        _service(make_db()).create_announcement(author_id=ADMIN_ID, payload=AnnouncementCreate(message="   "))
    assert exc.value.status_code == 400
