from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, flash, g, redirect, request, url_for

from app.lending.constants import ROLE_ADMIN, ROLE_PROCESSOR
from app.lending.models import User


class UnauthorizedError(Exception):
    def __init__(self, message: str = "Unauthorized access") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def user_has_role(user: User | None, *role_keys: str) -> bool:
    if not user or not user.is_active:
        return False
    return any(r.key in role_keys for r in user.roles)


def is_admin(user: User | None) -> bool:
    return user_has_role(user, ROLE_ADMIN)


def is_processor(user: User | None) -> bool:
    return user_has_role(user, ROLE_PROCESSOR) and not is_admin(user)


def require_roles(user: User | None, *role_keys: str) -> User:
    if not user or not user.is_active:
        raise UnauthorizedError()
    if not user_has_role(user, *role_keys):
        raise ForbiddenError(f"Access denied. Required roles: {', '.join(role_keys)}")
    return user


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", redirectTo=nxt))


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → login
            if not user or not user.is_active:
                return _login_redirect()
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_role(
    *role_keys: str, redirect_endpoint: str | None = None
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Gate a view on role membership. With `redirect_endpoint`, users lacking the
    role are bounced there instead of getting a 403.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            try:
                require_roles(user, *role_keys)
            except UnauthorizedError:
                return _login_redirect()
            except ForbiddenError as e:
                if redirect_endpoint:
                    flash(str(e), "danger")
                    return redirect(url_for(redirect_endpoint))
                g.missing_permission = "role:" + "|".join(role_keys)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
