from datetime import date, datetime, time, timedelta
from decimal import Decimal

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from sqlalchemy import func

from app.lending.constants import ROLE_ADMIN, ROLE_NAMES, ROLES
from app.lending.db import db_session
from app.lending.models import AuditAction, AuditLog, User
from app.lending.modules.applications.models import Application, ApplicationStatus
from app.lending.modules.loans.models import Loan, LoanStatus
from app.lending.rbac import require_permission, require_role
from app.lending.users import primary_role, set_user_active, set_user_role

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_role(ROLE_ADMIN, redirect_endpoint="routes.dashboard")
def index():
    s = db_session()
    counts = dict(s.query(Application.status, func.count(Application.id)).group_by(Application.status).all())
    status_counts = [(st, counts.get(st.value, 0)) for st in ApplicationStatus]
    active_loans = s.query(func.count(Loan.id)).filter(Loan.status == LoanStatus.ACTIVE.value).scalar() or 0
    outstanding = (
        s.query(func.coalesce(func.sum(Loan.balance_remaining), 0))
        .filter(Loan.status == LoanStatus.ACTIVE.value)
        .scalar()
    )
    delinquent = (
        s.query(func.count(Loan.id))
        .filter(Loan.status == LoanStatus.ACTIVE.value, Loan.is_delinquent.is_(True))
        .scalar()
        or 0
    )
    return render_template(
        "admin/index.html",
        status_counts=status_counts,
        total_applications=sum(counts.values()),
        active_loans=active_loans,
        outstanding_balance=Decimal(str(outstanding or 0)),
        delinquent_loans=delinquent,
    )


@bp.get("/audit")
@require_permission("audit.view")
def audit_list():
    """
    Audit trail (last 200 rows) with simple filters:
    - action (exact match against the AuditAction vocabulary)
    - user_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    user_email = (request.args.get("user_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if user_email:
        like = f"%{user_email.lower()}%"
        q = q.filter(AuditLog.user_email.like(like))
    if date_from:
        q = q.filter(AuditLog.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditLog.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditLog.created_at.desc()).limit(200).all()
    return render_template(
        "admin/audit/list.html",
        events=events,
        actions=[a.value for a in AuditAction],
        action=action,
        user_email=user_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )


# ============================================================================
# USER MANAGEMENT
# ============================================================================

@bp.get("/users")
@require_permission("users.manage")
def users_list():
    s = db_session()
    users = s.query(User).order_by(User.email.asc()).all()
    return render_template(
        "admin/users/list.html",
        users=users,
        roles=[(key, ROLE_NAMES[key]) for key in ROLES],
        primary_role=primary_role,
    )


@bp.post("/users/<int:user_id>/update")
@require_permission("users.manage")
def users_update(user_id: int):
    s = db_session()
    u = _current_user()
    user = s.get(User, user_id)
    if not user:
        abort(404)

    if user.id == u.id:
        flash("You cannot modify your own account from this page.", "danger")
        return redirect(url_for("admin.users_list"))

    role_key = (request.form.get("role") or "").strip()
    if role_key not in ROLES:
        flash("Invalid role.", "danger")
        return redirect(url_for("admin.users_list"))

    set_user_role(s, user, role_key, u)
    set_user_active(s, user, request.form.get("is_active") == "1", u)
    s.commit()
    flash(f"Account updated for {user.email}.", "success")
    return redirect(url_for("admin.users_list"))
