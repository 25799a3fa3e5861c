from chickenscratch.core.positions import Position
from chickenscratch.services.member_directory import MemberDirectory
from utils.factories import ADMIN_ID, AUTHOR_ID, OFFICER_ID, PROOFREADER_ID, make_db


def test_emails_for_positions():
    directory = MemberDirectory(client=make_db())
    assert directory.emails_for_positions([Position.PROOFREADER]) == ["proofreader@example.com"]
    assert directory.emails_for_positions([Position.PR_NIGHTMARE]) == []


def test_emails_skip_missing_profiles():
    db = make_db(profiles=[{"id": PROOFREADER_ID, "email": "proofreader@example.com"}, {"id": AUTHOR_ID, "email": ""}])
    directory = MemberDirectory(client=db)
    assert directory.emails_for_users([AUTHOR_ID, PROOFREADER_ID, "missing", ""]) == ["proofreader@example.com"]


def test_officers_by_role_or_position():
    db = make_db()
    db.tables["user_roles"].append({"user_id": "pos-only", "is_member": True, "roles": [], "positions": ["PR Nightmare"]})
    directory = MemberDirectory(client=db)
    assert set(directory.officer_user_ids()) == {OFFICER_ID, ADMIN_ID, "pos-only"}
    assert directory.officer_emails(exclude_user_id=ADMIN_ID) == ["officer@example.com"]


def test_display_name_fallbacks():
    db = make_db(profiles=[{"id": "u-1", "email": "x@example.com", "name": "Xan"}, {"id": "u-2", "email": "y@example.com"}])
    directory = MemberDirectory(client=db)
    assert directory.display_name("u-1") == "Xan"
    assert directory.display_name("u-2") == "y@example.com"
    assert directory.display_name("nobody") == "An officer"
    assert directory.email_for_user("") is None


def test_get_user_role():
    directory = MemberDirectory(client=make_db())
    assert directory.get_user_role(PROOFREADER_ID)["positions"] == ["Proofreader"]
    assert directory.get_user_role("nobody") is None
