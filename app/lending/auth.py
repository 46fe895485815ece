from __future__ import annotations

import re
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from app.lending.audit import record_event
from app.lending.constants import PROTECTED_PREFIXES, PUBLIC_AUTH_PATHS, UNGUARDED_PREFIXES
from app.lending.db import db_session
from app.lending.identity import AuthSession, IdentityProviderError, get_identity_provider, pkce_pair
from app.lending.models import AuditAction, User
from app.lending.users import find_by_id, sync_user

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

_AUTH_SESSION_KEYS = ("user_id", "auth_access_token", "auth_refresh_token", "auth_expires_at")
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _check_rate_limit(ip: str) -> bool:
    now = datetime.now()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    # Sweep every address so idle ones do not accumulate.
    for key in list(_login_attempts):
        recent = [t for t in _login_attempts[key] if t > cutoff]
        if recent:
            _login_attempts[key] = recent
        else:
            del _login_attempts[key]
    return len(_login_attempts.get(ip, [])) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.now())


def _safe_next(nxt: str | None, default: str = "/dashboard") -> str:
    # Only local paths; avoids open redirects.
    nxt = (nxt or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return default


def _store_auth_session(auth: AuthSession, user: User) -> None:
    session["user_id"] = user.id
    session["auth_access_token"] = auth.access_token
    session["auth_refresh_token"] = auth.refresh_token
    session["auth_expires_at"] = auth.expires_at


def clear_auth_session() -> None:
    for key in _AUTH_SESSION_KEYS:
        session.pop(key, None)


def _callback_url(next_path: str) -> str:
    base = (current_app.config.get("SITE_URL") or request.host_url).rstrip("/")
    return f"{base}{url_for('auth.callback', next=next_path)}"


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Expired provider sessions are refreshed once; a failed refresh signs the user out.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(UNGUARDED_PREFIXES):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    expires_at = session.get("auth_expires_at")
    if expires_at and int(expires_at) <= int(time.time()):
        refresh_token = session.get("auth_refresh_token") or ""
        try:
            refreshed = get_identity_provider().refresh_session(refresh_token)
        except IdentityProviderError as e:
            current_app.logger.info("Session refresh failed for user_id=%s: %s", user_id, e.message)
            clear_auth_session()
            return
        session["auth_access_token"] = refreshed.access_token
        session["auth_refresh_token"] = refreshed.refresh_token
        session["auth_expires_at"] = refreshed.expires_at

    s = db_session()
    user = find_by_id(s, int(user_id))
    if not user or not user.is_active:
        clear_auth_session()
        return
    g.current_user = user


def guard_routes():
    """
    Coarse route gating ahead of per-view RBAC:
    anonymous users on protected paths go to login, signed-in users skip the auth forms.
    """
    path = request.path
    user = getattr(g, "current_user", None)
    if user is None and path.startswith(PROTECTED_PREFIXES):
        return redirect(url_for("auth.login_get", redirectTo=path))
    if user is not None and path in PUBLIC_AUTH_PATHS:
        return redirect(url_for("routes.dashboard"))
    return None


@bp.get("/login")
def login_get():
    nxt = (request.args.get("redirectTo") or "").strip()
    error = (request.args.get("error") or "").strip()
    if error == "auth_callback_failed":
        flash("Sign-in link could not be verified. Please sign in again.", "danger")
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = _safe_next(request.form.get("next"))
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    if not email or not password:
        flash("Email and password are required.", "danger")
        return redirect(url_for("auth.login_get", redirectTo=nxt))

    s = db_session()
    try:
        auth = get_identity_provider().sign_in_with_password(email, password)
    except IdentityProviderError as e:
        record_event(
            s,
            actor=None,
            action=AuditAction.LOGIN,
            entity_type="User",
            description="auth.login_failed",
            metadata={"email": email, "status": e.status},
        )
        s.commit()
        flash(e.message or "Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", redirectTo=nxt))

    user = sync_user(s, auth.user)
    if not user.is_active:
        s.commit()
        flash("Your account has been deactivated. Contact an administrator.", "danger")
        return redirect(url_for("auth.login_get"))

    _store_auth_session(auth, user)
    _login_attempts[ip].clear()
    record_event(s, actor=user, action=AuditAction.LOGIN, entity_type="User", entity_id=str(user.id))
    s.commit()
    return redirect(nxt)


@bp.get("/register")
def register_get():
    return render_template("auth/register.html")


@bp.post("/register")
def register_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    password_confirm = request.form.get("password_confirm") or ""
    first_name = (request.form.get("first_name") or "").strip() or None
    last_name = (request.form.get("last_name") or "").strip() or None

    errors = []
    if not email:
        errors.append("Email is required.")
    elif not _EMAIL_RE.match(email):
        errors.append("Invalid email format.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    elif password != password_confirm:
        errors.append("Passwords do not match.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("auth.register_get"))

    verifier, challenge = pkce_pair()
    try:
        auth_user, auth = get_identity_provider().sign_up(
            email,
            password,
            data={"first_name": first_name, "last_name": last_name},
            redirect_to=_callback_url("/dashboard"),
            code_challenge=challenge,
        )
    except IdentityProviderError as e:
        flash(e.message or "Registration failed.", "danger")
        return redirect(url_for("auth.register_get"))

    s = db_session()
    user = sync_user(s, auth_user, first_name=first_name, last_name=last_name)
    if auth is None:
        # Email confirmation pending; the callback finishes sign-in.
        session["pkce_verifier"] = verifier
        s.commit()
        flash("Check your email to confirm your account.", "success")
        return redirect(url_for("auth.login_get"))

    _store_auth_session(auth, user)
    record_event(s, actor=user, action=AuditAction.LOGIN, entity_type="User", entity_id=str(user.id), description="auth.register")
    s.commit()
    return redirect(url_for("routes.dashboard"))


@bp.get("/reset-password")
def reset_password_get():
    return render_template("auth/reset_password.html")


@bp.post("/reset-password")
def reset_password_post():
    email = (request.form.get("email") or "").strip().lower()
    if not email or not _EMAIL_RE.match(email):
        flash("Please enter a valid email address.", "danger")
        return redirect(url_for("auth.reset_password_get"))

    verifier, challenge = pkce_pair()
    try:
        get_identity_provider().reset_password_for_email(
            email,
            redirect_to=_callback_url(url_for("auth.update_password_get")),
            code_challenge=challenge,
        )
    except IdentityProviderError as e:
        flash(e.message or "Could not send reset email.", "danger")
        return redirect(url_for("auth.reset_password_get"))

    session["pkce_verifier"] = verifier
    flash("If an account exists for that email, a reset link has been sent.", "success")
    return redirect(url_for("auth.login_get"))


@bp.get("/update-password")
def update_password_get():
    if not getattr(g, "current_user", None):
        return redirect(url_for("auth.login_get"))
    return render_template("auth/update_password.html")


@bp.post("/update-password")
def update_password_post():
    user = getattr(g, "current_user", None)
    if not user:
        return redirect(url_for("auth.login_get"))
    password = request.form.get("password") or ""
    if len(password) < 8 or password != (request.form.get("password_confirm") or ""):
        flash("Passwords must match and be at least 8 characters.", "danger")
        return redirect(url_for("auth.update_password_get"))
    try:
        get_identity_provider().update_password(session.get("auth_access_token") or "", password)
    except IdentityProviderError as e:
        flash(e.message or "Could not update password.", "danger")
        return redirect(url_for("auth.update_password_get"))

    s = db_session()
    record_event(s, actor=user, action=AuditAction.UPDATE, entity_type="User", entity_id=str(user.id), description="auth.password_update")
    s.commit()
    flash("Password updated.", "success")
    return redirect(url_for("routes.dashboard"))


@bp.get("/callback")
def callback():
    code = (request.args.get("code") or "").strip()
    nxt = _safe_next(request.args.get("next"))
    if not code:
        return redirect(url_for("auth.login_get"))

    verifier = session.pop("pkce_verifier", None)
    if not verifier:
        current_app.logger.warning("Auth callback without PKCE verifier (request_id=%s)", getattr(g, "request_id", None))
        return redirect(url_for("auth.login_get", error="auth_callback_failed"))

    try:
        auth = get_identity_provider().exchange_code_for_session(code, verifier)
    except IdentityProviderError as e:
        current_app.logger.error("Error exchanging code for session: %s", e.message)
        return redirect(url_for("auth.login_get", error="auth_callback_failed"))

    s = db_session()
    user = sync_user(s, auth.user)
    if not user.is_active:
        s.commit()
        flash("Your account has been deactivated. Contact an administrator.", "danger")
        return redirect(url_for("auth.login_get"))
    _store_auth_session(auth, user)
    record_event(s, actor=user, action=AuditAction.LOGIN, entity_type="User", entity_id=str(user.id), description="auth.callback")
    s.commit()
    return redirect(nxt)


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    token = session.get("auth_access_token")
    if token:
        try:
            get_identity_provider().sign_out(token)
        except IdentityProviderError as e:
            current_app.logger.warning("Provider sign-out failed (continuing): %s", e.message)
    if user:
        s = db_session()
        record_event(s, actor=user, action=AuditAction.LOGOUT, entity_type="User", entity_id=str(user.id))
        s.commit()
    clear_auth_session()
    return redirect(url_for("auth.login_get"))
