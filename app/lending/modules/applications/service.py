from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from sqlalchemy.exc import IntegrityError

from app.lending.audit import record_event, to_jsonable
from app.lending.errors import (
    ApplicationLocked,
    ApplicationNotFound,
    NumberAllocationError,
    StepIncomplete,
    WizardValidationError,
)
from app.lending.models import AuditAction, utcnow
from app.lending.modules.applications.models import Application, ApplicationStatus
from app.lending.modules.applications.numbering import MAX_ATTEMPTS, generate_application_number
from app.lending.modules.applications.pricing import DEFAULT_INTEREST_RATE, calculate_interest_rate
from app.lending.modules.applications.validation import CLEANERS
from app.lending.modules.locations.service import validate_location_chain
from app.lending.rbac import is_admin

if TYPE_CHECKING:
    from decimal import Decimal

    from sqlalchemy.orm import Session

    from app.lending.models import User

logger = logging.getLogger(__name__)

WIZARD_STEPS = (1, 2, 3, 4)
STEP_TITLES = {
    1: "Personal Information",
    2: "Address",
    3: "Loan Details",
    4: "Review & Submit",
}


# ---------- Queries ----------
def find_by_id(s: "Session", app_id: str) -> Application | None:
    return s.get(Application, app_id)


def find_by_id_and_user(s: "Session", app_id: str, user_id: int) -> Application | None:
    return (
        s.query(Application)
        .filter(Application.id == app_id, Application.created_by == user_id)
        .one_or_none()
    )


def find_drafts_by_user(s: "Session", user_id: int) -> list[Application]:
    return (
        s.query(Application)
        .filter(Application.created_by == user_id, Application.status == ApplicationStatus.DRAFT.value)
        .order_by(Application.updated_at.desc())
        .all()
    )


def find_by_user(s: "Session", user_id: int) -> list[Application]:
    return (
        s.query(Application)
        .filter(Application.created_by == user_id)
        .order_by(Application.created_at.desc())
        .all()
    )


def find_all(s: "Session", status: str | None = None) -> list[Application]:
    q = s.query(Application)
    if status:
        q = q.filter(Application.status == status)
    return q.order_by(Application.created_at.desc()).all()


def get_visible(s: "Session", app_id: str, user: "User") -> Application:
    """Admins see every application; everyone else only their own."""
    app = find_by_id(s, app_id) if is_admin(user) else find_by_id_and_user(s, app_id, user.id)
    if app is None:
        raise ApplicationNotFound()
    return app


# ---------- Mutations ----------
def _ensure_draft(app: Application) -> None:
    if not app.is_draft:
        raise ApplicationLocked()


def _merge_step_data(app: Application, updates: dict[str, Any]) -> None:
    # Reassign rather than mutate: plain JSON columns do not track in-place changes.
    app.step_data = {**(app.step_data or {}), **to_jsonable(updates)}
    app.last_saved_at = utcnow()


def create_draft(s: "Session", user: "User") -> Application:
    """
    New empty draft owned by `user`. A concurrent insert that wins the same
    number trips the unique constraint; roll back to the savepoint and retry.
    """
    last_error: IntegrityError | None = None
    for _attempt in range(MAX_ATTEMPTS):
        number = generate_application_number(s)
        app = Application(
            application_number=number,
            status=ApplicationStatus.DRAFT.value,
            borrower_name="",
            borrower_first_name="",
            borrower_last_name="",
            loan_amount=0,
            loan_term_months=12,
            interest_rate=DEFAULT_INTEREST_RATE,
            current_step=1,
            created_by=user.id,
        )
        try:
            with s.begin_nested():
                s.add(app)
        except IntegrityError as e:
            logger.warning("Application number collision on %s; retrying", number)
            last_error = e
            continue

        record_event(
            s,
            actor=user,
            action=AuditAction.CREATE,
            entity_type="Application",
            entity_id=app.id,
            new_values={"application_number": number, "status": app.status},
            description="application.create",
        )
        return app
    raise NumberAllocationError("Failed to generate unique application number") from last_error


def update_step1(s: "Session", app: Application, user: "User", data: Mapping[str, Any]) -> Application:
    _ensure_draft(app)
    first = data["borrower_first_name"]
    middle = data.get("borrower_middle_name") or None
    last = data["borrower_last_name"]
    app.borrower_first_name = first
    app.borrower_middle_name = middle
    app.borrower_last_name = last
    app.borrower_name = f"{first} {middle + ' ' if middle else ''}{last}"
    app.borrower_email = data["borrower_email"]
    app.borrower_phone = data["borrower_phone"]
    app.current_step = max(app.current_step or 1, 2)
    _merge_step_data(app, {"step1": dict(data)})
    record_event(
        s,
        actor=user,
        action=AuditAction.UPDATE,
        entity_type="Application",
        entity_id=app.id,
        new_values={"borrower_name": app.borrower_name, "current_step": app.current_step},
        description="application.step1",
    )
    return app


def update_step2(s: "Session", app: Application, user: "User", data: Mapping[str, Any]) -> Application:
    _ensure_draft(app)
    app.region_id = data["region_id"]
    app.province_id = data["province_id"]
    app.city_id = data["city_id"]
    app.borrower_address = data["borrower_address"]
    app.current_step = max(app.current_step or 1, 3)
    _merge_step_data(app, {"step2": dict(data)})
    record_event(
        s,
        actor=user,
        action=AuditAction.UPDATE,
        entity_type="Application",
        entity_id=app.id,
        new_values={"region_id": app.region_id, "province_id": app.province_id, "city_id": app.city_id},
        description="application.step2",
    )
    return app


def update_step3(s: "Session", app: Application, user: "User", data: Mapping[str, Any]) -> Application:
    _ensure_draft(app)
    amount: "Decimal" = data["loan_amount"]
    term = int(data["loan_term_months"])
    old = {"loan_amount": app.loan_amount, "loan_term_months": app.loan_term_months}
    app.loan_amount = amount
    app.loan_purpose = data["loan_purpose"]
    app.loan_term_months = term
    app.interest_rate = calculate_interest_rate(term)
    app.current_step = max(app.current_step or 1, 4)
    _merge_step_data(app, {"step3": dict(data)})
    record_event(
        s,
        actor=user,
        action=AuditAction.UPDATE,
        entity_type="Application",
        entity_id=app.id,
        old_values=old,
        new_values={"loan_amount": amount, "loan_term_months": term, "interest_rate": app.interest_rate},
        description="application.step3",
    )
    return app


def save_step(s: "Session", app: Application, user: "User", step: int, form: Mapping[str, Any]) -> Application:
    """
    Validate and persist one wizard step. Step 4 submits.
    Raises WizardValidationError with field errors.
    """
    _ensure_draft(app)
    data, errors = CLEANERS[step](form)
    if step == 2 and not errors:
        errors = validate_location_chain(s, data["region_id"], data["province_id"], data["city_id"])
    if errors:
        raise WizardValidationError(errors)
    if step == 1:
        return update_step1(s, app, user, data)
    if step == 2:
        return update_step2(s, app, user, data)
    if step == 3:
        return update_step3(s, app, user, data)
    return submit(s, app, user)


def save_partial_data(s: "Session", app: Application, user: "User", data: Mapping[str, Any]) -> Application:
    """Autosave: shallow-merge top-level keys into step_data. Never advances current_step."""
    _ensure_draft(app)
    if not isinstance(data, Mapping):
        raise WizardValidationError({"data": "Autosave payload must be an object"})
    _merge_step_data(app, dict(data))
    return app


def submit(s: "Session", app: Application, user: "User") -> Application:
    if not app.is_draft:
        raise ApplicationLocked("Only draft applications can be submitted")
    if (app.current_step or 1) < 4:
        raise StepIncomplete("All steps must be completed before submission")
    app.status = ApplicationStatus.SUBMITTED.value
    app.submitted_at = utcnow()
    record_event(
        s,
        actor=user,
        action=AuditAction.UPDATE,
        entity_type="Application",
        entity_id=app.id,
        old_values={"status": ApplicationStatus.DRAFT.value},
        new_values={"status": app.status},
        description="application.submit",
    )
    return app


def delete_draft(s: "Session", app: Application, user: "User") -> None:
    if not app.is_draft:
        raise ApplicationLocked("Only draft applications can be deleted")
    record_event(
        s,
        actor=user,
        action=AuditAction.DELETE,
        entity_type="Application",
        entity_id=app.id,
        old_values={"application_number": app.application_number},
        description="application.delete",
    )
    s.delete(app)


def form_values(app: Application, step: int) -> dict[str, Any]:
    """Prefill for a step form: saved columns first, autosaved step_data as fallback."""
    saved = (app.step_data or {}).get(f"step{step}") or {}
    if step == 1:
        cols = {
            "borrower_first_name": app.borrower_first_name,
            "borrower_middle_name": app.borrower_middle_name,
            "borrower_last_name": app.borrower_last_name,
            "borrower_email": app.borrower_email,
            "borrower_phone": app.borrower_phone,
        }
    elif step == 2:
        cols = {
            "region_id": app.region_id,
            "province_id": app.province_id,
            "city_id": app.city_id,
            "borrower_address": app.borrower_address,
        }
    elif step == 3:
        cols = {
            "loan_amount": app.loan_amount if app.loan_amount else None,
            "loan_purpose": app.loan_purpose,
            "loan_term_months": app.loan_term_months,
        }
    else:
        cols = {}
    out = {k: v for k, v in saved.items()}
    for k, v in cols.items():
        if v not in (None, ""):
            out[k] = v
    return out


def to_dto(app: Application) -> dict[str, Any]:
    return {
        "id": app.id,
        "application_number": app.application_number,
        "status": app.status,
        "borrower_name": app.borrower_name,
        "borrower_first_name": app.borrower_first_name,
        "borrower_middle_name": app.borrower_middle_name,
        "borrower_last_name": app.borrower_last_name,
        "borrower_email": app.borrower_email,
        "borrower_phone": app.borrower_phone,
        "borrower_address": app.borrower_address,
        "region_id": app.region_id,
        "province_id": app.province_id,
        "city_id": app.city_id,
        "loan_amount": app.loan_amount,
        "loan_purpose": app.loan_purpose,
        "loan_term_months": app.loan_term_months,
        "interest_rate": app.interest_rate,
        "current_step": app.current_step,
        "step_data": app.step_data,
        "last_saved_at": app.last_saved_at,
        "submitted_at": app.submitted_at,
        "created_by": app.created_by,
        "created_at": app.created_at,
        "updated_at": app.updated_at,
    }
