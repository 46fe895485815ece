import time
from datetime import datetime, timedelta

from app.lending.auth import _check_rate_limit, _login_attempts
from app.lending.db import session_scope
from app.lending.models import AuditLog, Role, User
from conftest import csrf, login_as, make_user


def _audit(app, description=None, action=None):
    with session_scope(app) as s:
        q = s.query(AuditLog)
        if description is not None:
            q = q.filter(AuditLog.description == description)
        if action is not None:
            q = q.filter(AuditLog.action == action)
        return [(e.action, e.description, e.user_email) for e in q.all()]


def test_login_mirrors_new_user_as_processor(app, client, identity):
    identity.add_account("new@example.com", "password123", first_name="Ana", last_name="Reyes")
    r = client.post("/auth/login", data={"email": "New@Example.com", "password": "password123"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new@example.com").one()
        assert [role.key for role in u.roles] == ["processor"]
        assert u.first_name == "Ana"
        assert u.last_login_at is not None

    assert _audit(app, description="user.sync")
    assert _audit(app, action="login")
    with client.session_transaction() as sess:
        assert sess["auth_access_token"].startswith("access-")


def test_login_respects_local_next(client, identity):
    identity.add_account("a@example.com")
    r = client.post("/auth/login", data={"email": "a@example.com", "password": "password123", "next": "/applications"})
    assert r.headers["Location"].endswith("/applications")


def test_login_rejects_offsite_next(client, identity):
    identity.add_account("a@example.com")
    r = client.post(
        "/auth/login", data={"email": "a@example.com", "password": "password123", "next": "//evil.example.com"}
    )
    assert r.headers["Location"].endswith("/dashboard")


def test_failed_login_is_audited(app, client, identity):
    identity.add_account("a@example.com")
    r = client.post("/auth/login", data={"email": "a@example.com", "password": "wrong"}, follow_redirects=True)
    assert b"Invalid login credentials" in r.data
    events = _audit(app, description="auth.login_failed")
    assert events == [("login", "auth.login_failed", None)]


def test_login_rate_limited_after_five_attempts(client, identity):
    identity.add_account("a@example.com")
    for _ in range(5):
        client.post("/auth/login", data={"email": "a@example.com", "password": "wrong"})
    r = client.post("/auth/login", data={"email": "a@example.com", "password": "password123"}, follow_redirects=True)
    assert b"Too many login attempts" in r.data
    with client.session_transaction() as sess:
        assert "user_id" not in sess


def test_rate_limiter_forgets_idle_addresses(app):
    _login_attempts["10.0.0.9"] = [datetime.now() - timedelta(hours=1)]
    _login_attempts["10.0.0.8"] = [datetime.now()]
    assert _check_rate_limit("10.0.0.1") is False
    assert "10.0.0.9" not in _login_attempts
    assert "10.0.0.1" not in _login_attempts
    assert len(_login_attempts["10.0.0.8"]) == 1


def test_repeat_login_refreshes_last_login(app, client, identity):
    identity.add_account("back@example.com")
    client.post("/auth/login", data={"email": "back@example.com", "password": "password123"})
    with session_scope(app) as s:
        s.query(User).filter(User.email == "back@example.com").one().last_login_at = datetime(2020, 1, 1)
    client.post("/auth/logout")

    client.post("/auth/login", data={"email": "back@example.com", "password": "password123"})
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "back@example.com").one()
        assert u.last_login_at > datetime(2020, 1, 1)
        assert s.query(User).count() == 1


def test_deactivated_user_cannot_sign_in(app, client, identity):
    auth_user = identity.add_account("gone@example.com")
    with session_scope(app) as s:
        u = User(auth_id=auth_user.id, email="gone@example.com", is_active=False)
        u.roles.append(s.query(Role).filter(Role.key == "processor").one())
        s.add(u)
    r = client.post("/auth/login", data={"email": "gone@example.com", "password": "password123"}, follow_redirects=True)
    assert b"deactivated" in r.data
    with client.session_transaction() as sess:
        assert "user_id" not in sess


def test_register_signs_in_immediately(app, client):
    r = client.post(
        "/auth/register",
        data={
            "email": "reg@example.com",
            "password": "password123",
            "password_confirm": "password123",
            "first_name": "Jose",
            "last_name": "Rizal",
        },
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "reg@example.com").one()
        assert u.display_name == "Jose Rizal"


def test_register_validates_passwords(client):
    r = client.post(
        "/auth/register",
        data={"email": "reg@example.com", "password": "short", "password_confirm": "short"},
        follow_redirects=True,
    )
    assert b"at least 8 characters" in r.data

    r = client.post(
        "/auth/register",
        data={"email": "reg@example.com", "password": "password123", "password_confirm": "password124"},
        follow_redirects=True,
    )
    assert b"Passwords do not match" in r.data


def test_register_with_email_confirmation_then_callback(app, client, identity):
    identity.confirm_email = True
    r = client.post(
        "/auth/register",
        data={"email": "confirm@example.com", "password": "password123", "password_confirm": "password123"},
        follow_redirects=True,
    )
    assert b"Check your email" in r.data
    with client.session_transaction() as sess:
        assert sess.get("pkce_verifier")
        assert "user_id" not in sess

    _password, auth_user = identity.accounts["confirm@example.com"]
    identity.codes["abc123"] = auth_user
    r = client.get("/auth/callback?code=abc123&next=/applications")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/applications")
    with client.session_transaction() as sess:
        assert sess.get("user_id")
        assert "pkce_verifier" not in sess
    assert _audit(app, description="auth.callback")


def test_callback_without_verifier_fails(client):
    r = client.get("/auth/callback?code=abc123")
    assert r.status_code == 302
    assert "error=auth_callback_failed" in r.headers["Location"]


def test_callback_with_bad_code_fails(client):
    with client.session_transaction() as sess:
        sess["pkce_verifier"] = "verifier"
    r = client.get("/auth/callback?code=unknown")
    assert "error=auth_callback_failed" in r.headers["Location"]


def test_logout_clears_session(app, client, identity, processor):
    login_as(client, processor)
    r = client.post("/auth/logout")
    assert r.status_code == 302
    assert identity.signed_out == ["access-test"]
    with client.session_transaction() as sess:
        assert "user_id" not in sess
    assert _audit(app, action="logout")
    assert client.get("/dashboard").status_code == 302


def test_signed_in_user_skips_login_page(processor_client):
    r = processor_client.get("/auth/login")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")


def test_expired_session_is_refreshed(app, client, identity):
    auth_user = identity.add_account("refresh@example.com")
    client.post("/auth/login", data={"email": "refresh@example.com", "password": "password123"})
    with client.session_transaction() as sess:
        sess["auth_expires_at"] = int(time.time()) - 10
        sess["auth_refresh_token"] = f"refresh-{auth_user.id}"
    r = client.get("/dashboard")
    assert r.status_code == 200
    with client.session_transaction() as sess:
        assert sess["auth_expires_at"] > int(time.time())


def test_failed_refresh_signs_out(client, processor):
    login_as(client, processor)
    with client.session_transaction() as sess:
        sess["auth_expires_at"] = int(time.time()) - 10
        sess["auth_refresh_token"] = "revoked"
    r = client.get("/dashboard")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_deactivated_mid_session_is_signed_out(app, client):
    uid = make_user(app, "later@example.com")
    login_as(client, uid)
    assert client.get("/dashboard").status_code == 200
    with session_scope(app) as s:
        s.get(User, uid).is_active = False
    assert client.get("/dashboard").status_code == 302


def test_reset_password_request(client, identity):
    r = client.post("/auth/reset-password", data={"email": "who@example.com"}, follow_redirects=True)
    assert b"reset link has been sent" in r.data
    assert identity.reset_requests == ["who@example.com"]
    with client.session_transaction() as sess:
        assert sess.get("pkce_verifier")


def test_update_password(app, client, identity):
    identity.add_account("pw@example.com", "password123")
    client.post("/auth/login", data={"email": "pw@example.com", "password": "password123"})
    token = csrf(client)
    r = client.post(
        "/auth/update-password",
        data={"password": "newpassword1", "password_confirm": "newpassword1", "csrf_token": token},
    )
    assert r.status_code == 302
    assert identity.accounts["pw@example.com"][0] == "newpassword1"
    assert _audit(app, description="auth.password_update")
