from app.lending.constants import ROLE_ADMIN, ROLE_PROCESSOR
from app.lending.db import session_scope
from app.lending.models import AuditLog, User
from app.lending.modules.applications.service import create_draft
from app.lending.users import primary_role
from conftest import CSRF, get_user, make_user, submitted_application


def test_index_shows_status_counts(app, admin_client, processor):
    with session_scope(app) as s:
        proc = get_user(s, processor)
        submitted_application(s, proc)
        create_draft(s, proc)

    r = admin_client.get("/admin/")
    assert r.status_code == 200
    assert b"Submitted" in r.data
    assert b"Review queue" in r.data
    assert b"Audit trail" in r.data


def test_audit_filters(app, admin_client, processor):
    with session_scope(app) as s:
        create_draft(s, get_user(s, processor))

    r = admin_client.get("/admin/audit?action=create&user_email=PROCESSOR@")
    assert r.status_code == 200
    assert b"application.create" in r.data

    r = admin_client.get("/admin/audit?action=disburse")
    assert b"No events match." in r.data

    r = admin_client.get("/admin/audit?date_from=2024-13-01")
    assert b"date_from must be YYYY-MM-DD" in r.data

    r = admin_client.get("/admin/audit?date_from=2000-01-01&date_to=2000-01-31")
    assert b"No events match." in r.data


def test_users_list(admin_client):
    r = admin_client.get("/admin/users")
    assert r.status_code == 200
    assert b"admin@example.com" in r.data


def test_promote_and_deactivate_user(app, admin_client, processor):
    r = admin_client.post(
        f"/admin/users/{processor}/update",
        data={"csrf_token": CSRF, "role": ROLE_ADMIN},
        follow_redirects=True,
    )
    assert b"Account updated for processor@example.com." in r.data

    with session_scope(app) as s:
        u = s.get(User, processor)
        assert primary_role(u) == ROLE_ADMIN
        assert u.is_active is False
        descriptions = {e.description for e in s.query(AuditLog).filter(AuditLog.entity_id == str(processor))}
        assert {"user.role", "user.deactivate"} <= descriptions


def test_reactivate_keeps_role(app, admin_client):
    other = make_user(app, "dormant@example.com", active=False)
    admin_client.post(
        f"/admin/users/{other}/update",
        data={"csrf_token": CSRF, "role": ROLE_PROCESSOR, "is_active": "1"},
    )
    with session_scope(app) as s:
        u = s.get(User, other)
        assert u.is_active is True
        assert primary_role(u) == ROLE_PROCESSOR


def test_cannot_edit_self(app, admin_client, admin):
    r = admin_client.post(
        f"/admin/users/{admin}/update",
        data={"csrf_token": CSRF, "role": ROLE_PROCESSOR, "is_active": "1"},
        follow_redirects=True,
    )
    assert b"You cannot modify your own account from this page." in r.data
    with session_scope(app) as s:
        assert primary_role(s.get(User, admin)) == ROLE_ADMIN


def test_invalid_role(admin_client, processor):
    r = admin_client.post(
        f"/admin/users/{processor}/update",
        data={"csrf_token": CSRF, "role": "superuser", "is_active": "1"},
        follow_redirects=True,
    )
    assert b"Invalid role." in r.data


def test_unknown_user_404(admin_client):
    r = admin_client.post("/admin/users/9999/update", data={"csrf_token": CSRF, "role": ROLE_ADMIN})
    assert r.status_code == 404
