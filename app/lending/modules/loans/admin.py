from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.lending.constants import ROLE_ADMIN
from app.lending.db import db_session
from app.lending.errors import LoanError
from app.lending.models import User
from app.lending.modules.applications.models import Application, ApplicationStatus
from app.lending.modules.applications.pricing import amortization_summary
from app.lending.modules.loans.service import (
    TRANSITIONS,
    approve,
    close,
    disburse,
    loan_schedule,
    refresh_delinquency,
    reject,
    start_review,
)
from app.lending.modules.receipts.models import PaymentStatus, ReceiptType
from app.lending.modules.receipts.service import PAYMENT_METHODS
from app.lending.rbac import require_permission, require_role

bp = Blueprint("loans", __name__)

REVIEW_QUEUE_STATUSES = (ApplicationStatus.SUBMITTED.value, ApplicationStatus.UNDER_REVIEW.value)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_application(app_id: str) -> Application:
    app = db_session().get(Application, app_id)
    if app is None:
        abort(404)
    return app


def _parse_date(raw: str | None) -> date | None:
    raw = (raw or "").strip()
    if not raw:
        return None
    return date.fromisoformat(raw)


# ---------- Queue ----------
@bp.get("/")
@require_role(ROLE_ADMIN, redirect_endpoint="routes.dashboard")
def review_queue():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    q = s.query(Application)
    if status_filter:
        q = q.filter(Application.status == status_filter)
    else:
        q = q.filter(Application.status.in_(REVIEW_QUEUE_STATUSES))
    applications = q.order_by(Application.submitted_at.asc(), Application.created_at.asc()).all()
    return render_template(
        "admin/applications/queue.html",
        applications=applications,
        status_filter=status_filter,
        statuses=[st for st in ApplicationStatus if st is not ApplicationStatus.DRAFT],
    )


# ---------- Detail ----------
@bp.get("/<app_id>")
@require_role(ROLE_ADMIN, redirect_endpoint="routes.dashboard")
def review_detail(app_id: str):
    app = _get_application(app_id)
    summary = None
    if app.loan_amount and app.loan_term_months:
        summary = amortization_summary(app.loan_amount, app.interest_rate, app.loan_term_months)
    return render_template(
        "admin/applications/detail.html",
        application=app,
        summary=summary,
        next_statuses=TRANSITIONS.get(app.status, ()),
        receipt_types=list(ReceiptType),
        today=date.today(),
    )


def _run(app_id: str, action):
    s = db_session()
    u = _current_user()
    app = _get_application(app_id)
    try:
        message = action(s, app, u)
    except LoanError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("loans.review_detail", app_id=app_id))
    s.commit()
    flash(message, "success")
    return redirect(url_for("loans.review_detail", app_id=app_id))


@bp.post("/<app_id>/start-review")
@require_permission("applications.review")
def review_start(app_id: str):
    def action(s, app, u):
        start_review(s, app, u)
        return f"Application {app.application_number} is now under review."

    return _run(app_id, action)


@bp.post("/<app_id>/approve")
@require_permission("applications.review")
def review_approve(app_id: str):
    def action(s, app, u):
        approve(s, app, u)
        return f"Application {app.application_number} approved."

    return _run(app_id, action)


@bp.post("/<app_id>/reject")
@require_permission("applications.review")
def review_reject(app_id: str):
    reason = request.form.get("reason") or ""

    def action(s, app, u):
        reject(s, app, u, reason)
        return f"Application {app.application_number} rejected."

    return _run(app_id, action)


@bp.post("/<app_id>/disburse")
@require_permission("loans.manage")
def review_disburse(app_id: str):
    try:
        disbursed_on = _parse_date(request.form.get("disbursement_date"))
    except ValueError:
        flash("Invalid disbursement date (use YYYY-MM-DD).", "danger")
        return redirect(url_for("loans.review_detail", app_id=app_id))

    def action(s, app, u):
        loan = disburse(s, app, u, disbursed_on)
        return f"Loan {loan.loan_number} disbursed."

    return _run(app_id, action)


@bp.post("/<app_id>/close")
@require_permission("loans.manage")
def review_close(app_id: str):
    def action(s, app, u):
        close(s, app, u)
        return f"Application {app.application_number} closed."

    return _run(app_id, action)


# ---------- Loan ----------
@bp.get("/<app_id>/loan")
@require_role(ROLE_ADMIN, redirect_endpoint="routes.dashboard")
def loan_detail(app_id: str):
    s = db_session()
    app = _get_application(app_id)
    loan = app.loan
    if loan is None:
        flash("This application has not been disbursed.", "warning")
        return redirect(url_for("loans.review_detail", app_id=app_id))
    refresh_delinquency(loan)
    s.commit()
    return render_template(
        "admin/applications/loan.html",
        application=app,
        loan=loan,
        schedule=loan_schedule(loan),
        payment_methods=PAYMENT_METHODS,
        pending_status=PaymentStatus.PENDING.value,
        today=date.today(),
    )
