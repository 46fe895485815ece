from datetime import date
from decimal import Decimal

import pytest

from app.lending.db import session_scope
from app.lending.errors import ReceiptError
from app.lending.modules.applications.models import Application
from app.lending.modules.applications.service import create_draft
from app.lending.modules.loans.models import LoanStatus
from app.lending.modules.loans.service import approve, close, disburse, start_review
from app.lending.modules.receipts.models import CollectionReceipt, PaymentStatus
from app.lending.modules.receipts.service import (
    allocate_payment,
    issue_official_receipt,
    outstanding_principal,
    record_collection,
    update_collection_status,
    void_collection_receipt,
    void_official_receipt,
)
from conftest import CSRF, get_user, submitted_application


@pytest.fixture()
def users(db, processor, admin):
    return get_user(db, processor), get_user(db, admin)


@pytest.fixture()
def loan(db, users):
    proc, adm = users
    app = submitted_application(db, proc)
    start_review(db, app, adm)
    approve(db, app, adm)
    loan = disburse(db, app, adm, date(2024, 1, 15))
    db.commit()
    return loan


# ---------- Official receipts ----------
def test_issue_official_receipt(db, users):
    proc, adm = users
    app = submitted_application(db, proc)
    receipt = issue_official_receipt(db, app, adm, amount="1,500", receipt_date=date(2024, 5, 2))
    db.commit()
    assert receipt.or_number == "OR-2024-000001"
    assert receipt.amount == Decimal("1500.00")
    assert receipt.receipt_type == "processing_fee"
    assert receipt.payor_name == "Maria Santos Dela-Cruz"
    assert receipt.issued_by == adm.id


def test_official_receipt_rules(db, users):
    proc, adm = users
    draft = create_draft(db, proc)
    with pytest.raises(ReceiptError, match="only be issued for submitted applications"):
        issue_official_receipt(db, draft, adm, amount="100")

    app = submitted_application(db, proc)
    with pytest.raises(ReceiptError, match="Amount must be greater than zero"):
        issue_official_receipt(db, app, adm, amount="0")
    with pytest.raises(ReceiptError, match="Unknown receipt type"):
        issue_official_receipt(db, app, adm, amount="100", receipt_type="bribe")


def test_void_official_receipt(db, users):
    proc, adm = users
    app = submitted_application(db, proc)
    receipt = issue_official_receipt(db, app, adm, amount="500", receipt_type="service_fee")
    with pytest.raises(ReceiptError, match="void reason is required"):
        void_official_receipt(db, receipt, adm, "")
    void_official_receipt(db, receipt, adm, "Issued in error")
    assert receipt.is_void is True
    assert receipt.void_reason == "Issued in error"
    with pytest.raises(ReceiptError, match="already void"):
        void_official_receipt(db, receipt, adm, "again")


# ---------- Collections ----------
def test_allocation_order_penalty_interest_principal(loan):
    # One month's interest on 50,000 at 9% p.a. is 375.00.
    penalty, interest, principal = allocate_payment(loan, Decimal("5000.00"), Decimal("100"))
    assert penalty == Decimal("100.00")
    assert interest == Decimal("375.00")
    assert principal == Decimal("4525.00")

    penalty, interest, principal = allocate_payment(loan, Decimal("300.00"))
    assert (penalty, interest, principal) == (Decimal("0.00"), Decimal("300.00"), Decimal("0.00"))


def test_record_collection_updates_loan(db, users, loan):
    _, adm = users
    total = loan.balance_remaining
    receipt = record_collection(
        db, loan, adm, amount=loan.monthly_payment, payment_method="cash", payment_date=date(2024, 2, 15)
    )
    db.commit()
    assert receipt.cr_number == "CR-2024-000001"
    assert receipt.payment_status == PaymentStatus.PENDING.value
    assert receipt.interest_amount == Decimal("375.00")
    assert receipt.principal_amount == loan.monthly_payment - Decimal("375.00")
    assert loan.amount_paid == loan.monthly_payment
    assert loan.balance_remaining == total - loan.monthly_payment
    assert loan.last_payment_date == date(2024, 2, 15)
    assert outstanding_principal(loan) == Decimal("50000.00") - receipt.principal_amount


def test_collection_rules(db, users, loan):
    _, adm = users
    with pytest.raises(ReceiptError, match="Invalid payment method"):
        record_collection(db, loan, adm, amount="100", payment_method="crypto")
    with pytest.raises(ReceiptError, match="exceeds the remaining balance"):
        record_collection(db, loan, adm, amount=loan.balance_remaining + 1, payment_method="cash")
    with pytest.raises(ReceiptError, match="Amount must be greater than zero"):
        record_collection(db, loan, adm, amount="-5", payment_method="cash")


def test_full_payoff_marks_loan_paid(db, users, loan):
    _, adm = users
    record_collection(db, loan, adm, amount=loan.balance_remaining, payment_method="bank_transfer")
    assert loan.status == LoanStatus.PAID.value
    assert loan.balance_remaining == Decimal("0.00")
    with pytest.raises(ReceiptError, match="is not active"):
        record_collection(db, loan, adm, amount="100", payment_method="cash")


def test_void_collection_reverses_payment(db, users, loan):
    _, adm = users
    total = loan.balance_remaining
    receipt = record_collection(db, loan, adm, amount=loan.balance_remaining, payment_method="cash")
    assert loan.status == LoanStatus.PAID.value

    void_collection_receipt(db, receipt, adm, "Duplicate entry")
    assert receipt.is_void is True
    assert receipt.payment_status == PaymentStatus.REVERSED.value
    assert loan.status == LoanStatus.ACTIVE.value
    assert loan.balance_remaining == total
    assert loan.amount_paid == Decimal("0.00")
    assert loan.last_payment_date is None


def test_bounced_check_reverses_once(db, users, loan):
    _, adm = users
    total = loan.balance_remaining
    receipt = record_collection(db, loan, adm, amount="10000", payment_method="check", penalty_amount="0")
    update_collection_status(db, receipt, adm, "bounced")
    assert receipt.payment_status == PaymentStatus.BOUNCED.value
    assert loan.balance_remaining == total

    # Voiding a bounced payment must not reverse it a second time.
    void_collection_receipt(db, receipt, adm, "Bounced check")
    assert receipt.payment_status == PaymentStatus.BOUNCED.value
    assert loan.balance_remaining == total

    with pytest.raises(ReceiptError):
        update_collection_status(db, receipt, adm, "cleared")


def test_cleared_status(db, users, loan):
    _, adm = users
    receipt = record_collection(db, loan, adm, amount="5000", payment_method="gcash")
    update_collection_status(db, receipt, adm, "cleared")
    assert receipt.payment_status == PaymentStatus.CLEARED.value
    with pytest.raises(ReceiptError, match="Only pending payments"):
        update_collection_status(db, receipt, adm, "bounced")


def test_penalty_is_not_applied_to_balance(db, users, loan):
    _, adm = users
    total = loan.balance_remaining
    receipt = record_collection(db, loan, adm, amount="1000", penalty_amount="250", payment_method="cash")
    assert receipt.penalty_amount == Decimal("250.00")
    assert loan.balance_remaining == total - Decimal("750.00")


def test_closed_application_collections_are_final(db, users, loan):
    _, adm = users
    receipt = record_collection(db, loan, adm, amount=loan.balance_remaining, payment_method="check")
    close(db, loan.application, adm)
    assert loan.application.status == "closed"

    with pytest.raises(ReceiptError, match="is closed"):
        void_collection_receipt(db, receipt, adm, "Late correction")
    with pytest.raises(ReceiptError, match="is closed"):
        update_collection_status(db, receipt, adm, "bounced")
    assert loan.status == LoanStatus.PAID.value
    assert loan.balance_remaining == Decimal("0.00")
    assert receipt.is_void is False


# ---------- Routes ----------
def _loan_app_id(app, processor, admin) -> str:
    with session_scope(app) as s:
        proc, adm = get_user(s, processor), get_user(s, admin)
        a = submitted_application(s, proc)
        start_review(s, a, adm)
        approve(s, a, adm)
        disburse(s, a, adm, date(2024, 1, 15))
        return a.id


def test_receipt_routes(app, admin_client, processor, admin):
    app_id = _loan_app_id(app, processor, admin)

    r = admin_client.post(
        f"/admin/applications/{app_id}/official-receipts",
        data={"csrf_token": CSRF, "amount": "750", "receipt_type": "documentation_fee", "receipt_date": "2024-01-15"},
        follow_redirects=True,
    )
    assert b"Official receipt OR-2024-000001 issued." in r.data

    r = admin_client.post(
        f"/admin/applications/{app_id}/collections",
        data={"csrf_token": CSRF, "amount": "5000", "payment_method": "cash", "payment_date": "2024-02-15"},
        follow_redirects=True,
    )
    assert b"Collection receipt CR-2024-000001 recorded." in r.data

    with session_scope(app) as s:
        cr = s.query(CollectionReceipt).filter(CollectionReceipt.application_id == app_id).one()
        cr_id = cr.id

    r = admin_client.post(
        f"/admin/collections/{cr_id}/status", data={"csrf_token": CSRF, "status": "cleared"}, follow_redirects=True
    )
    assert b"marked cleared" in r.data

    r = admin_client.post(
        f"/admin/collections/{cr_id}/void", data={"csrf_token": CSRF, "reason": "Wrong loan"}, follow_redirects=True
    )
    assert b"voided" in r.data
    with session_scope(app) as s:
        a = s.get(Application, app_id)
        assert a.loan.amount_paid == Decimal("0.00")


def test_collection_route_errors_are_flashed(app, admin_client, processor, admin):
    app_id = _loan_app_id(app, processor, admin)
    r = admin_client.post(
        f"/admin/applications/{app_id}/collections",
        data={"csrf_token": CSRF, "amount": "5000", "payment_method": "cash", "payment_date": "15-02-2024"},
        follow_redirects=True,
    )
    assert b"Invalid date (use YYYY-MM-DD)." in r.data


def test_processor_cannot_issue_receipts(app, processor_client, processor, admin):
    app_id = _loan_app_id(app, processor, admin)
    r = processor_client.post(
        f"/admin/applications/{app_id}/official-receipts", data={"csrf_token": CSRF, "amount": "100"}
    )
    assert r.status_code == 403
