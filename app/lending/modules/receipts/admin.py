from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, g, redirect, request, url_for

from app.lending.db import db_session
from app.lending.errors import ReceiptError
from app.lending.models import User
from app.lending.modules.applications.models import Application
from app.lending.modules.receipts.models import CollectionReceipt, OfficialReceipt
from app.lending.modules.receipts.service import (
    issue_official_receipt,
    record_collection,
    update_collection_status,
    void_collection_receipt,
    void_official_receipt,
)
from app.lending.rbac import require_permission

bp = Blueprint("receipts", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _form_date(key: str) -> date | None:
    raw = (request.form.get(key) or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ReceiptError("Invalid date (use YYYY-MM-DD).") from None


@bp.post("/applications/<app_id>/official-receipts")
@require_permission("receipts.manage")
def official_receipt_issue(app_id: str):
    s = db_session()
    u = _current_user()
    app = s.get(Application, app_id)
    if app is None:
        abort(404)
    try:
        receipt = issue_official_receipt(
            s,
            app,
            u,
            amount=request.form.get("amount"),
            receipt_type=request.form.get("receipt_type") or "",
            payor_name=request.form.get("payor_name"),
            receipt_date=_form_date("receipt_date"),
            payment_method=request.form.get("payment_method"),
            reference_number=request.form.get("reference_number"),
            remarks=request.form.get("remarks"),
        )
    except ReceiptError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("loans.review_detail", app_id=app_id))
    s.commit()
    flash(f"Official receipt {receipt.or_number} issued.", "success")
    return redirect(url_for("loans.review_detail", app_id=app_id))


@bp.post("/official-receipts/<receipt_id>/void")
@require_permission("receipts.manage")
def official_receipt_void(receipt_id: str):
    s = db_session()
    u = _current_user()
    receipt = s.get(OfficialReceipt, receipt_id)
    if receipt is None:
        abort(404)
    try:
        void_official_receipt(s, receipt, u, request.form.get("reason") or "")
    except ReceiptError as e:
        s.rollback()
        flash(e.message, "danger")
    else:
        s.commit()
        flash(f"Official receipt {receipt.or_number} voided.", "success")
    return redirect(url_for("loans.review_detail", app_id=receipt.application_id))


@bp.post("/applications/<app_id>/collections")
@require_permission("receipts.manage")
def collection_record(app_id: str):
    s = db_session()
    u = _current_user()
    app = s.get(Application, app_id)
    if app is None:
        abort(404)
    if app.loan is None:
        flash("This application has no disbursed loan.", "danger")
        return redirect(url_for("loans.review_detail", app_id=app_id))
    try:
        receipt = record_collection(
            s,
            app.loan,
            u,
            amount=request.form.get("amount"),
            payment_method=request.form.get("payment_method") or "",
            payor_name=request.form.get("payor_name"),
            payment_date=_form_date("payment_date"),
            penalty_amount=request.form.get("penalty_amount"),
            reference_number=request.form.get("reference_number"),
            remarks=request.form.get("remarks"),
        )
    except ReceiptError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("loans.loan_detail", app_id=app_id))
    s.commit()
    flash(f"Collection receipt {receipt.cr_number} recorded.", "success")
    return redirect(url_for("loans.loan_detail", app_id=app_id))


@bp.post("/collections/<receipt_id>/void")
@require_permission("receipts.manage")
def collection_void(receipt_id: str):
    s = db_session()
    u = _current_user()
    receipt = s.get(CollectionReceipt, receipt_id)
    if receipt is None:
        abort(404)
    try:
        void_collection_receipt(s, receipt, u, request.form.get("reason") or "")
    except ReceiptError as e:
        s.rollback()
        flash(e.message, "danger")
    else:
        s.commit()
        flash(f"Collection receipt {receipt.cr_number} voided.", "success")
    return redirect(url_for("loans.loan_detail", app_id=receipt.application_id))


@bp.post("/collections/<receipt_id>/status")
@require_permission("receipts.manage")
def collection_status(receipt_id: str):
    s = db_session()
    u = _current_user()
    receipt = s.get(CollectionReceipt, receipt_id)
    if receipt is None:
        abort(404)
    status = (request.form.get("status") or "").strip()
    try:
        update_collection_status(s, receipt, u, status)
    except ReceiptError as e:
        s.rollback()
        flash(e.message, "danger")
    else:
        s.commit()
        flash(f"Collection receipt {receipt.cr_number} marked {status}.", "success")
    return redirect(url_for("loans.loan_detail", app_id=receipt.application_id))
