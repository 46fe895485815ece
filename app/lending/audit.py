from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.lending.models import AuditAction, AuditLog, User


def to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: AuditAction | str,
    entity_type: str,
    entity_id: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """
    Append-only audit event helper.

    `action` must be one of AuditAction; finer-grained intent goes in `description`
    (e.g. action=update, description="application.step2").
    """
    rid = request_id
    ip_address = None
    user_agent = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")
    ev = AuditLog(
        request_id=rid,
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else None,
        action=AuditAction(action).value,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=to_jsonable(old_values) if old_values else None,
        new_values=to_jsonable(new_values) if new_values else None,
        ip_address=ip_address,
        user_agent=user_agent,
        description=description,
        metadata_json=to_jsonable(metadata) if metadata else None,
    )
    s.add(ev)
    return ev
