from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from app.lending.audit import record_event
from app.lending.errors import LoanError
from app.lending.models import AuditAction, utcnow
from app.lending.modules.applications.models import Application, ApplicationStatus
from app.lending.modules.applications.numbering import next_sequence_number
from app.lending.modules.applications.pricing import (
    ScheduleRow,
    add_months,
    amortization_schedule,
    monthly_payment,
    to_money,
)
from app.lending.modules.loans.models import Loan, LoanStatus

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.lending.models import User

logger = logging.getLogger(__name__)

# Review workflow: status -> statuses it may move to.
TRANSITIONS: dict[str, tuple[str, ...]] = {
    ApplicationStatus.SUBMITTED.value: (ApplicationStatus.UNDER_REVIEW.value,),
    ApplicationStatus.UNDER_REVIEW.value: (ApplicationStatus.APPROVED.value, ApplicationStatus.REJECTED.value),
    ApplicationStatus.APPROVED.value: (ApplicationStatus.DISBURSED.value,),
    ApplicationStatus.DISBURSED.value: (ApplicationStatus.CLOSED.value,),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


def _transition(app: Application, target: ApplicationStatus) -> str:
    before = app.status
    if not can_transition(before, target.value):
        raise LoanError(
            f"Cannot move application {app.application_number} from "
            f"{ApplicationStatus(before).label} to {target.label}"
        )
    app.status = target.value
    return before


def start_review(s: "Session", app: Application, actor: "User") -> Application:
    before = _transition(app, ApplicationStatus.UNDER_REVIEW)
    record_event(
        s,
        actor=actor,
        action=AuditAction.UPDATE,
        entity_type="Application",
        entity_id=app.id,
        old_values={"status": before},
        new_values={"status": app.status},
        description="application.review",
    )
    return app


def approve(s: "Session", app: Application, actor: "User") -> Application:
    before = _transition(app, ApplicationStatus.APPROVED)
    app.approved_at = utcnow()
    app.approved_by = actor.id
    record_event(
        s,
        actor=actor,
        action=AuditAction.APPROVE,
        entity_type="Application",
        entity_id=app.id,
        old_values={"status": before},
        new_values={"status": app.status, "approved_by": actor.id},
    )
    return app


def reject(s: "Session", app: Application, actor: "User", reason: str) -> Application:
    reason = (reason or "").strip()
    if not reason:
        raise LoanError("A rejection reason is required")
    before = _transition(app, ApplicationStatus.REJECTED)
    app.rejected_at = utcnow()
    app.rejection_reason = reason
    record_event(
        s,
        actor=actor,
        action=AuditAction.REJECT,
        entity_type="Application",
        entity_id=app.id,
        old_values={"status": before},
        new_values={"status": app.status, "rejection_reason": reason},
    )
    return app


def disburse(s: "Session", app: Application, actor: "User", disbursement_date: date | None = None) -> Loan:
    """
    Release an approved application's funds and snapshot its amortization into a Loan.
    """
    if app.loan is not None:
        raise LoanError(f"Application {app.application_number} already has a loan")
    principal = to_money(app.loan_amount or 0)
    term = int(app.loan_term_months or 0)
    if principal <= 0 or term <= 0:
        raise LoanError("Loan amount and term must be set before disbursement")
    before = _transition(app, ApplicationStatus.DISBURSED)

    disbursed_on = disbursement_date or date.today()
    monthly = monthly_payment(principal, app.interest_rate, term)
    total = to_money(monthly * term)
    loan = Loan(
        loan_number=next_sequence_number(s, Loan.loan_number, "LN", year=disbursed_on.year),
        application_id=app.id,
        status=LoanStatus.ACTIVE.value,
        principal_amount=principal,
        interest_rate=Decimal(str(app.interest_rate)),
        term_months=term,
        monthly_payment=monthly,
        total_amount_due=total,
        amount_paid=Decimal("0.00"),
        balance_remaining=total,
        disbursement_date=disbursed_on,
        first_payment_date=add_months(disbursed_on, 1),
        maturity_date=add_months(disbursed_on, term),
        days_past_due=0,
        is_delinquent=False,
    )
    s.add(loan)
    app.loan = loan
    app.disbursed_at = utcnow()
    s.flush()
    record_event(
        s,
        actor=actor,
        action=AuditAction.DISBURSE,
        entity_type="Loan",
        entity_id=loan.id,
        old_values={"status": before},
        new_values={
            "loan_number": loan.loan_number,
            "principal_amount": principal,
            "monthly_payment": monthly,
            "total_amount_due": total,
        },
        metadata={"application_id": app.id},
    )
    logger.info("Disbursed %s as %s", app.application_number, loan.loan_number)
    return loan


def close(s: "Session", app: Application, actor: "User") -> Application:
    loan = app.loan
    if loan is None or loan.status != LoanStatus.PAID.value:
        raise LoanError("Only fully paid loans can be closed")
    before = _transition(app, ApplicationStatus.CLOSED)
    record_event(
        s,
        actor=actor,
        action=AuditAction.UPDATE,
        entity_type="Application",
        entity_id=app.id,
        old_values={"status": before},
        new_values={"status": app.status},
        description="application.close",
    )
    return app


def loan_schedule(loan: Loan) -> list[ScheduleRow]:
    return amortization_schedule(loan.principal_amount, loan.interest_rate, loan.term_months, loan.disbursement_date)


def refresh_delinquency(loan: Loan, as_of: date | None = None) -> Loan:
    """
    Recompute days_past_due/is_delinquent: the oldest installment not covered by
    amount_paid (installments are covered in order) sets the days past due.
    """
    as_of = as_of or date.today()
    if loan.status == LoanStatus.PAID.value or to_money(loan.balance_remaining) <= 0:
        loan.days_past_due = 0
        loan.is_delinquent = False
        return loan

    paid = to_money(loan.amount_paid or 0)
    covered = Decimal("0.00")
    days = 0
    for row in loan_schedule(loan):
        covered += row.payment
        if covered <= paid:
            continue
        if row.due_date is not None and row.due_date < as_of:
            days = (as_of - row.due_date).days
        break
    loan.days_past_due = days
    loan.is_delinquent = days > 0
    return loan


def loan_for_application(s: "Session", app_id: str) -> Loan | None:
    return s.query(Loan).filter(Loan.application_id == app_id).one_or_none()
