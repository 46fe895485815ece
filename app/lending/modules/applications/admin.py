from __future__ import annotations

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, url_for

from app.lending.db import db_session
from app.lending.errors import ApplicationError, ApplicationLocked, ApplicationNotFound, WizardValidationError
from app.lending.models import User
from app.lending.modules.applications.models import Application
from app.lending.modules.applications.pricing import LOAN_TERM_OPTIONS, amortization_summary, calculate_interest_rate
from app.lending.modules.applications.service import (
    STEP_TITLES,
    WIZARD_STEPS,
    create_draft,
    delete_draft,
    find_all,
    find_by_user,
    find_drafts_by_user,
    form_values,
    get_visible,
    save_partial_data,
    save_step,
)
from app.lending.modules.locations.service import get_cities_by_province, get_provinces_by_region, get_regions
from app.lending.rbac import is_admin, require_permission

bp = Blueprint("applications", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _load_or_redirect(app_id: str):
    s = db_session()
    try:
        return get_visible(s, app_id, _current_user()), None
    except ApplicationNotFound as e:
        flash(e.message, "danger")
        return None, redirect(url_for("applications.applications_list"))


def _summary(app: Application):
    if not app.loan_amount or not app.loan_term_months:
        return None
    return amortization_summary(app.loan_amount, app.interest_rate, app.loan_term_months)


# ---------- List ----------
@bp.get("")
@require_permission("applications.view")
def applications_list():
    s = db_session()
    u = _current_user()
    status_filter = (request.args.get("status") or "").strip()
    if is_admin(u):
        applications = find_all(s, status=status_filter or None)
    else:
        applications = find_by_user(s, u.id)
        if status_filter:
            applications = [a for a in applications if a.status == status_filter]
    drafts = find_drafts_by_user(s, u.id)
    return render_template(
        "applications/list.html",
        applications=applications,
        drafts=drafts,
        status_filter=status_filter,
    )


# ---------- New ----------
@bp.post("/new")
@require_permission("applications.create")
def applications_new():
    s = db_session()
    u = _current_user()
    try:
        app = create_draft(s, u)
    except ApplicationError as e:
        s.rollback()
        current_app.logger.error("Draft creation failed for user_id=%s: %s", u.id, e.message)
        flash("Failed to create application. Please try again.", "danger")
        return redirect(url_for("applications.applications_list"))
    s.commit()
    flash(f"Draft {app.application_number} created.", "success")
    return redirect(url_for("applications.wizard_step_get", app_id=app.id, step=1))


# ---------- Detail ----------
@bp.get("/<app_id>")
@require_permission("applications.view")
def application_detail(app_id: str):
    app, resp = _load_or_redirect(app_id)
    if resp:
        return resp
    return render_template(
        "applications/detail.html",
        application=app,
        summary=_summary(app),
        step_titles=STEP_TITLES,
    )


# ---------- Wizard ----------
@bp.get("/<app_id>/edit")
@require_permission("applications.edit")
def application_edit(app_id: str):
    app, resp = _load_or_redirect(app_id)
    if resp:
        return resp
    if not app.is_draft:
        return redirect(url_for("applications.application_detail", app_id=app.id))
    return redirect(url_for("applications.wizard_step_get", app_id=app.id, step=app.current_step or 1))


def _render_step(app: Application, step: int, values: dict, errors: dict | None = None, status: int = 200):
    s = db_session()
    ctx = {
        "application": app,
        "step": step,
        "steps": WIZARD_STEPS,
        "step_titles": STEP_TITLES,
        "values": values,
        "errors": errors or {},
        "autosave_debounce_ms": current_app.config.get("AUTOSAVE_DEBOUNCE_MS", 2000),
    }
    if step == 2:
        ctx["regions"] = get_regions(s)
        ctx["provinces"] = get_provinces_by_region(s, values.get("region_id"))
        ctx["cities"] = get_cities_by_province(s, values.get("province_id"))
    elif step == 3:
        ctx["term_options"] = [(t, calculate_interest_rate(t)) for t in LOAN_TERM_OPTIONS]
    elif step == 4:
        ctx["summary"] = _summary(app)
    return render_template(f"applications/wizard/step{step}.html", **ctx), status


@bp.get("/<app_id>/edit/step-<int:step>")
@require_permission("applications.edit")
def wizard_step_get(app_id: str, step: int):
    app, resp = _load_or_redirect(app_id)
    if resp:
        return resp
    if not app.is_draft:
        flash("Only draft applications can be edited.", "warning")
        return redirect(url_for("applications.application_detail", app_id=app.id))
    if step not in WIZARD_STEPS:
        return redirect(url_for("applications.application_edit", app_id=app.id))
    if step > (app.current_step or 1):
        # Steps unlock in order.
        return redirect(url_for("applications.wizard_step_get", app_id=app.id, step=app.current_step or 1))
    return _render_step(app, step, form_values(app, step))


@bp.post("/<app_id>/edit/step-<int:step>")
@require_permission("applications.edit")
def wizard_step_post(app_id: str, step: int):
    s = db_session()
    u = _current_user()
    app, resp = _load_or_redirect(app_id)
    if resp:
        return resp
    if step not in WIZARD_STEPS or step > (app.current_step or 1):
        return redirect(url_for("applications.application_edit", app_id=app.id))

    try:
        save_step(s, app, u, step, request.form)
    except WizardValidationError as e:
        s.rollback()
        return _render_step(app, step, request.form.to_dict(), errors=e.errors)
    except ApplicationLocked as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("applications.application_detail", app_id=app.id))
    except ApplicationError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("applications.wizard_step_get", app_id=app.id, step=step))
    s.commit()

    if step == 4:
        flash(f"Application {app.application_number} submitted successfully.", "success")
        return redirect(url_for("applications.applications_list"))
    return redirect(url_for("applications.wizard_step_get", app_id=app.id, step=step + 1))


@bp.post("/<app_id>/autosave")
@require_permission("applications.edit")
def application_autosave(app_id: str):
    s = db_session()
    u = _current_user()
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
        return jsonify({"success": False, "message": "Invalid autosave payload"}), 400
    try:
        app = get_visible(s, app_id, u)
        save_partial_data(s, app, u, body["data"])
    except ApplicationNotFound as e:
        return jsonify({"success": False, "message": e.message}), 404
    except ApplicationLocked as e:
        return jsonify({"success": False, "message": e.message}), 409
    except WizardValidationError as e:
        return jsonify({"success": False, "message": e.message, "errors": e.errors}), 400
    s.commit()
    return jsonify(
        {
            "success": True,
            "message": "Saved",
            "lastSavedAt": app.last_saved_at.isoformat() + "Z" if app.last_saved_at else None,
        }
    )


@bp.post("/<app_id>/delete")
@require_permission("applications.delete")
def application_delete(app_id: str):
    s = db_session()
    u = _current_user()
    app, resp = _load_or_redirect(app_id)
    if resp:
        return resp
    number = app.application_number
    try:
        delete_draft(s, app, u)
    except ApplicationLocked as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("applications.application_detail", app_id=app.id))
    s.commit()
    flash(f"Draft {number} deleted.", "success")
    return redirect(url_for("applications.applications_list"))
