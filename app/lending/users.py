from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.lending.audit import record_event
from app.lending.constants import ROLE_ADMIN, ROLE_PROCESSOR, ROLES
from app.lending.identity import AuthUser
from app.lending.models import AuditAction, Role, User, utcnow

logger = logging.getLogger(__name__)


def find_by_auth_id(s: Session, auth_id: str) -> User | None:
    return s.query(User).filter(User.auth_id == auth_id).one_or_none()


def find_by_id(s: Session, user_id: int) -> User | None:
    return s.get(User, user_id)


def _role(s: Session, key: str) -> Role:
    role = s.query(Role).filter(Role.key == key).one_or_none()
    if role is None:
        raise LookupError(f"Role '{key}' not seeded. Run python scripts/init_db.py first.")
    return role


def sync_user(
    s: Session,
    auth_user: AuthUser,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Mirror an identity-provider account into `users`.
    Existing rows get last_login_at refreshed; new rows start as processors.
    """
    now = utcnow()
    user = find_by_auth_id(s, auth_user.id)
    if user:
        update_last_login(s, user)
        if auth_user.email and auth_user.email != user.email:
            logger.info("Identity email changed for user id=%s", user.id)
            user.email = auth_user.email
        return user

    meta = auth_user.user_metadata or {}
    user = User(
        auth_id=auth_user.id,
        email=auth_user.email,
        first_name=(first_name or meta.get("first_name") or "").strip() or None,
        last_name=(last_name or meta.get("last_name") or "").strip() or None,
        is_active=True,
        last_login_at=now,
    )
    user.roles.append(_role(s, ROLE_PROCESSOR))
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=user,
        action=AuditAction.CREATE,
        entity_type="User",
        entity_id=str(user.id),
        new_values={"email": user.email, "role": ROLE_PROCESSOR},
        description="user.sync",
    )
    return user


def update_last_login(s: Session, user: User) -> None:
    user.last_login_at = utcnow()


def primary_role(user: User | None) -> str:
    if user and any(r.key == ROLE_ADMIN for r in user.roles or []):
        return ROLE_ADMIN
    return ROLE_PROCESSOR


def set_user_role(s: Session, user: User, role_key: str, actor: User) -> User:
    """Replace the user's role with a single admin/processor role."""
    if role_key not in ROLES:
        raise ValueError(f"Unknown role: {role_key}")
    before = primary_role(user)
    if before == role_key:
        return user
    user.roles.clear()
    user.roles.append(_role(s, role_key))
    record_event(
        s,
        actor=actor,
        action=AuditAction.UPDATE,
        entity_type="User",
        entity_id=str(user.id),
        old_values={"role": before},
        new_values={"role": role_key},
        description="user.role",
    )
    return user


def set_user_active(s: Session, user: User, is_active: bool, actor: User) -> User:
    if user.is_active == is_active:
        return user
    before = user.is_active
    user.is_active = is_active
    record_event(
        s,
        actor=actor,
        action=AuditAction.UPDATE,
        entity_type="User",
        entity_id=str(user.id),
        old_values={"is_active": before},
        new_values={"is_active": is_active},
        description="user.activate" if is_active else "user.deactivate",
    )
    return user
