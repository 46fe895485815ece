import hmac
import secrets

from flask import Request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def submitted_csrf_token(req: Request) -> str | None:
    """Token from header, form field, or (autosave) JSON body."""
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get(CSRF_SESSION_KEY)
    return token


def validate_csrf(req: Request) -> bool:
    expected = session.get(CSRF_SESSION_KEY)
    token = submitted_csrf_token(req)
    if not token or not expected:
        return False
    return hmac.compare_digest(str(token), str(expected))
