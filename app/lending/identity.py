"""
Client for the external identity provider (Supabase Auth / GoTrue REST API).

Passwords never touch this application: sign-in, sign-up, password recovery and
OAuth/email-link code exchange are delegated to the provider, and the returned
session tokens are kept in the signed Flask session cookie.
"""
from __future__ import annotations

import base64
import hashlib
import http.client
import json
import secrets
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Protocol

from flask import current_app


class IdentityProviderError(RuntimeError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    expires_at: int
    user: AuthUser


class IdentityProvider(Protocol):
    def sign_in_with_password(self, email: str, password: str) -> AuthSession: ...

    def sign_up(
        self,
        email: str,
        password: str,
        *,
        data: dict[str, Any] | None = None,
        redirect_to: str | None = None,
        code_challenge: str | None = None,
    ) -> tuple[AuthUser, AuthSession | None]: ...

    def exchange_code_for_session(self, code: str, code_verifier: str) -> AuthSession: ...

    def refresh_session(self, refresh_token: str) -> AuthSession: ...

    def get_user(self, access_token: str) -> AuthUser: ...

    def sign_out(self, access_token: str) -> None: ...

    def update_password(self, access_token: str, password: str) -> AuthUser: ...

    def reset_password_for_email(
        self, email: str, *, redirect_to: str | None = None, code_challenge: str | None = None
    ) -> None: ...


def pkce_pair() -> tuple[str, str]:
    """Return (code_verifier, code_challenge) for the S256 PKCE method."""
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


def _parse_user(j: dict[str, Any]) -> AuthUser:
    uid = j.get("id")
    if not uid:
        raise IdentityProviderError("Identity provider returned no user id")
    return AuthUser(
        id=str(uid),
        email=(j.get("email") or "").strip().lower(),
        user_metadata=j.get("user_metadata") or {},
    )


def _parse_session(j: dict[str, Any]) -> AuthSession:
    access = j.get("access_token")
    if not access:
        raise IdentityProviderError("Identity provider returned no session")
    expires_at = j.get("expires_at")
    if not expires_at:
        expires_at = int(time.time()) + int(j.get("expires_in") or 3600)
    return AuthSession(
        access_token=access,
        refresh_token=j.get("refresh_token") or "",
        expires_at=int(expires_at),
        user=_parse_user(j.get("user") or {}),
    )


def _error_message(body: str, default: str) -> str:
    try:
        j = json.loads(body)
    except ValueError:
        return default
    if not isinstance(j, dict):
        return default
    for key in ("error_description", "msg", "message", "error"):
        if j.get(key):
            return str(j[key])
    return default


@dataclass(frozen=True)
class SupabaseAuthClient:
    url: str
    anon_key: str
    timeout_seconds: int = 15

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
        retries: int = 1,
    ) -> dict[str, Any]:
        url = self.url.rstrip("/") + "/auth/v1" + path
        if params:
            url += "?" + urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})
        data = json.dumps(body).encode("utf-8") if body is not None else None

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            req = urllib.request.Request(url, data=data, method=method)
            req.add_header("apikey", self.anon_key)
            req.add_header("Authorization", f"Bearer {access_token or self.anon_key}")
            req.add_header("Accept", "application/json")
            if data is not None:
                req.add_header("Content-Type", "application/json")
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    if not raw:
                        return {}
                    try:
                        parsed = json.loads(raw.decode("utf-8"))
                    except ValueError as e:
                        raise IdentityProviderError(f"Invalid JSON from identity provider ({path})") from e
                    return parsed if isinstance(parsed, dict) else {}
            except urllib.error.HTTPError as e:
                try:
                    err_body = e.read().decode("utf-8", errors="ignore")
                except OSError:
                    err_body = ""
                raise IdentityProviderError(_error_message(err_body, f"HTTP {e.code} from identity provider"), e.code) from e
            except (OSError, http.client.HTTPException) as e:
                # URLError, read timeouts and dropped connections
                last_err = e
                time.sleep(min(0.5 * (attempt + 1), 2))
                continue
        raise IdentityProviderError(f"Identity provider unreachable: {last_err}")

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        j = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            body={"email": email, "password": password},
        )
        return _parse_session(j)

    def sign_up(
        self,
        email: str,
        password: str,
        *,
        data: dict[str, Any] | None = None,
        redirect_to: str | None = None,
        code_challenge: str | None = None,
    ) -> tuple[AuthUser, AuthSession | None]:
        body: dict[str, Any] = {"email": email, "password": password, "data": data or {}}
        if code_challenge:
            body["code_challenge"] = code_challenge
            body["code_challenge_method"] = "s256"
        j = self._request("POST", "/signup", params={"redirect_to": redirect_to}, body=body)
        # With email confirmation on, GoTrue returns the bare user; otherwise a full session.
        if j.get("access_token"):
            sess = _parse_session(j)
            return sess.user, sess
        return _parse_user(j.get("user") or j), None

    def exchange_code_for_session(self, code: str, code_verifier: str) -> AuthSession:
        j = self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            body={"auth_code": code, "code_verifier": code_verifier},
        )
        return _parse_session(j)

    def refresh_session(self, refresh_token: str) -> AuthSession:
        j = self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            body={"refresh_token": refresh_token},
        )
        return _parse_session(j)

    def get_user(self, access_token: str) -> AuthUser:
        return _parse_user(self._request("GET", "/user", access_token=access_token))

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", access_token=access_token, retries=0)

    def update_password(self, access_token: str, password: str) -> AuthUser:
        j = self._request("PUT", "/user", access_token=access_token, body={"password": password}, retries=0)
        return _parse_user(j)

    def reset_password_for_email(
        self, email: str, *, redirect_to: str | None = None, code_challenge: str | None = None
    ) -> None:
        body: dict[str, Any] = {"email": email}
        if code_challenge:
            body["code_challenge"] = code_challenge
            body["code_challenge_method"] = "s256"
        self._request("POST", "/recover", params={"redirect_to": redirect_to}, body=body)


def identity_provider_from_config(config: dict) -> SupabaseAuthClient:
    return SupabaseAuthClient(
        url=(config.get("SUPABASE_URL") or "").strip(),
        anon_key=(config.get("SUPABASE_ANON_KEY") or "").strip(),
        timeout_seconds=int(config.get("AUTH_TIMEOUT_SECONDS") or 15),
    )


def get_identity_provider() -> IdentityProvider:
    return current_app.extensions["identity_provider"]
