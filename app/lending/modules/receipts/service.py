from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from app.lending.audit import record_event
from app.lending.errors import ReceiptError
from app.lending.models import AuditAction, utcnow
from app.lending.modules.applications.models import Application, ApplicationStatus
from app.lending.modules.applications.numbering import next_sequence_number
from app.lending.modules.applications.pricing import monthly_rate, to_money
from app.lending.modules.applications.validation import parse_amount
from app.lending.modules.loans.models import Loan, LoanStatus
from app.lending.modules.receipts.models import CollectionReceipt, OfficialReceipt, PaymentStatus, ReceiptType

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.lending.models import User

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "check", "bank_transfer", "gcash", "other")
ZERO = Decimal("0.00")

# Collections that no longer count against the loan.
_INEFFECTIVE_STATUSES = (PaymentStatus.BOUNCED.value, PaymentStatus.REVERSED.value)


def _positive_amount(raw, label: str = "Amount") -> Decimal:
    amount = raw if isinstance(raw, Decimal) else parse_amount(raw)
    if amount is None or amount <= 0:
        raise ReceiptError(f"{label} must be greater than zero")
    return to_money(amount)


def _effective(receipt: CollectionReceipt) -> bool:
    return not receipt.is_void and receipt.payment_status not in _INEFFECTIVE_STATUSES


def _ensure_not_closed(receipt: CollectionReceipt) -> None:
    app = receipt.application
    if app is not None and app.status == ApplicationStatus.CLOSED.value:
        raise ReceiptError(f"Application {app.application_number} is closed; its collections cannot be reversed")


# ---------- Official receipts ----------
def issue_official_receipt(
    s: "Session",
    app: Application,
    actor: "User",
    *,
    amount,
    receipt_type: str = ReceiptType.PROCESSING_FEE.value,
    payor_name: str | None = None,
    receipt_date: date | None = None,
    payment_method: str | None = None,
    reference_number: str | None = None,
    remarks: str | None = None,
) -> OfficialReceipt:
    if app.is_draft:
        raise ReceiptError("Receipts can only be issued for submitted applications")
    value = _positive_amount(amount)
    try:
        rtype = ReceiptType(receipt_type or ReceiptType.PROCESSING_FEE.value)
    except ValueError as e:
        raise ReceiptError(f"Unknown receipt type: {receipt_type}") from e
    issued_on = receipt_date or date.today()
    receipt = OfficialReceipt(
        or_number=next_sequence_number(s, OfficialReceipt.or_number, "OR", year=issued_on.year),
        application_id=app.id,
        receipt_type=rtype.value,
        amount=value,
        receipt_date=issued_on,
        payor_name=(payor_name or "").strip() or app.borrower_name,
        payment_method=(payment_method or "").strip() or None,
        reference_number=(reference_number or "").strip() or None,
        remarks=(remarks or "").strip() or None,
        issued_by=actor.id,
    )
    s.add(receipt)
    s.flush()
    record_event(
        s,
        actor=actor,
        action=AuditAction.PAYMENT,
        entity_type="OfficialReceipt",
        entity_id=receipt.id,
        new_values={"or_number": receipt.or_number, "amount": value, "receipt_type": rtype.value},
        metadata={"application_id": app.id},
        description="receipt.issue",
    )
    return receipt


def void_official_receipt(s: "Session", receipt: OfficialReceipt, actor: "User", reason: str) -> OfficialReceipt:
    reason = (reason or "").strip()
    if not reason:
        raise ReceiptError("A void reason is required")
    if receipt.is_void:
        raise ReceiptError(f"Receipt {receipt.or_number} is already void")
    receipt.is_void = True
    receipt.voided_at = utcnow()
    receipt.void_reason = reason
    record_event(
        s,
        actor=actor,
        action=AuditAction.VOID,
        entity_type="OfficialReceipt",
        entity_id=receipt.id,
        old_values={"is_void": False},
        new_values={"is_void": True, "void_reason": reason},
    )
    return receipt


# ---------- Collections ----------
def outstanding_principal(loan: Loan) -> Decimal:
    repaid = sum((r.principal_amount for r in loan.collection_receipts if _effective(r)), ZERO)
    return to_money(loan.principal_amount - repaid)


def allocate_payment(loan: Loan, amount: Decimal, penalty: Decimal = ZERO) -> tuple[Decimal, Decimal, Decimal]:
    """
    Split a payment into (penalty, interest, principal), in that order.
    Interest is one period's interest on outstanding principal.
    """
    penalty_part = min(to_money(penalty), amount)
    remaining = amount - penalty_part
    owed_principal = outstanding_principal(loan)
    period_interest = to_money(owed_principal * monthly_rate(loan.interest_rate))
    interest_part = min(period_interest, remaining)
    principal_part = remaining - interest_part
    if principal_part > owed_principal:
        # Overflow past principal is interest accrued in earlier periods.
        interest_part += principal_part - owed_principal
        principal_part = owed_principal
    return to_money(penalty_part), to_money(interest_part), to_money(principal_part)


def _apply_to_loan(loan: Loan, applied: Decimal) -> None:
    loan.amount_paid = to_money(loan.amount_paid + applied)
    loan.balance_remaining = to_money(loan.balance_remaining - applied)
    if loan.balance_remaining <= 0:
        loan.balance_remaining = ZERO
        loan.status = LoanStatus.PAID.value
        loan.is_delinquent = False
        loan.days_past_due = 0


def _reverse_on_loan(loan: Loan, receipt: CollectionReceipt) -> None:
    applied = to_money(receipt.amount - receipt.penalty_amount)
    loan.amount_paid = to_money(loan.amount_paid - applied)
    loan.balance_remaining = to_money(loan.balance_remaining + applied)
    if loan.status == LoanStatus.PAID.value and loan.balance_remaining > 0:
        loan.status = LoanStatus.ACTIVE.value
    remaining_dates = [r.payment_date for r in loan.collection_receipts if r.id != receipt.id and _effective(r)]
    loan.last_payment_date = max(remaining_dates) if remaining_dates else None


def record_collection(
    s: "Session",
    loan: Loan,
    actor: "User",
    *,
    amount,
    payment_method: str,
    payor_name: str | None = None,
    payment_date: date | None = None,
    penalty_amount=ZERO,
    reference_number: str | None = None,
    remarks: str | None = None,
) -> CollectionReceipt:
    if loan.status != LoanStatus.ACTIVE.value:
        raise ReceiptError(f"Loan {loan.loan_number} is not active")
    value = _positive_amount(amount)
    if not isinstance(penalty_amount, Decimal):
        penalty_amount = parse_amount(penalty_amount) or ZERO
    penalty = to_money(penalty_amount)
    if penalty < 0:
        raise ReceiptError("Penalty cannot be negative")
    method = (payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ReceiptError(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")

    penalty_part, interest_part, principal_part = allocate_payment(loan, value, penalty)
    applied = interest_part + principal_part
    if applied > loan.balance_remaining:
        raise ReceiptError(f"Payment exceeds the remaining balance of {loan.balance_remaining:,.2f}")

    paid_on = payment_date or date.today()
    app = loan.application
    receipt = CollectionReceipt(
        cr_number=next_sequence_number(s, CollectionReceipt.cr_number, "CR", year=paid_on.year),
        application_id=loan.application_id,
        loan_id=loan.id,
        payment_date=paid_on,
        amount=value,
        principal_amount=principal_part,
        interest_amount=interest_part,
        penalty_amount=penalty_part,
        payment_method=method,
        reference_number=(reference_number or "").strip() or None,
        payment_status=PaymentStatus.PENDING.value,
        payor_name=(payor_name or "").strip() or (app.borrower_name if app else ""),
        remarks=(remarks or "").strip() or None,
        collected_by=actor.id,
    )
    s.add(receipt)
    loan.collection_receipts.append(receipt)
    _apply_to_loan(loan, applied)
    if loan.last_payment_date is None or paid_on > loan.last_payment_date:
        loan.last_payment_date = paid_on
    s.flush()
    record_event(
        s,
        actor=actor,
        action=AuditAction.PAYMENT,
        entity_type="CollectionReceipt",
        entity_id=receipt.id,
        new_values={
            "cr_number": receipt.cr_number,
            "amount": value,
            "principal_amount": principal_part,
            "interest_amount": interest_part,
            "penalty_amount": penalty_part,
            "balance_remaining": loan.balance_remaining,
        },
        metadata={"loan_id": loan.id},
        description="collection.record",
    )
    if loan.status == LoanStatus.PAID.value:
        logger.info("Loan %s fully paid", loan.loan_number)
    return receipt


def void_collection_receipt(s: "Session", receipt: CollectionReceipt, actor: "User", reason: str) -> CollectionReceipt:
    reason = (reason or "").strip()
    if not reason:
        raise ReceiptError("A void reason is required")
    if receipt.is_void:
        raise ReceiptError(f"Receipt {receipt.cr_number} is already void")
    _ensure_not_closed(receipt)
    loan = receipt.loan
    before = receipt.payment_status
    if _effective(receipt):
        _reverse_on_loan(loan, receipt)
    receipt.is_void = True
    receipt.voided_at = utcnow()
    receipt.void_reason = reason
    if before != PaymentStatus.BOUNCED.value:
        receipt.payment_status = PaymentStatus.REVERSED.value
    record_event(
        s,
        actor=actor,
        action=AuditAction.VOID,
        entity_type="CollectionReceipt",
        entity_id=receipt.id,
        old_values={"is_void": False, "payment_status": before},
        new_values={"is_void": True, "payment_status": receipt.payment_status, "void_reason": reason},
        metadata={"loan_id": loan.id, "balance_remaining": loan.balance_remaining},
    )
    return receipt


def update_collection_status(s: "Session", receipt: CollectionReceipt, actor: "User", status: str) -> CollectionReceipt:
    """Pending payments clear or bounce; a bounce reverses the payment like a void."""
    if receipt.is_void:
        raise ReceiptError(f"Receipt {receipt.cr_number} is void")
    _ensure_not_closed(receipt)
    if receipt.payment_status != PaymentStatus.PENDING.value:
        raise ReceiptError("Only pending payments can be cleared or bounced")
    if status not in (PaymentStatus.CLEARED.value, PaymentStatus.BOUNCED.value):
        raise ReceiptError(f"Invalid payment status: {status}")
    before = receipt.payment_status
    if status == PaymentStatus.BOUNCED.value:
        _reverse_on_loan(receipt.loan, receipt)
    receipt.payment_status = status
    record_event(
        s,
        actor=actor,
        action=AuditAction.UPDATE,
        entity_type="CollectionReceipt",
        entity_id=receipt.id,
        old_values={"payment_status": before},
        new_values={"payment_status": status},
        description="collection.status",
    )
    return receipt
