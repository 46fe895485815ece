from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")

# Annual rate (percent) by term in months.
INTEREST_RATES: dict[int, Decimal] = {
    6: Decimal("8.5"),
    12: Decimal("9.0"),
    24: Decimal("9.5"),
    36: Decimal("10.0"),
    48: Decimal("10.5"),
    60: Decimal("11.0"),
}
DEFAULT_INTEREST_RATE = Decimal("9.0")

LOAN_TERM_OPTIONS = tuple(INTEREST_RATES.keys())


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_interest_rate(term_months: int | None) -> Decimal:
    return INTEREST_RATES.get(int(term_months or 0), DEFAULT_INTEREST_RATE)


def monthly_rate(annual_rate: Decimal | int | float | str) -> Decimal:
    return Decimal(str(annual_rate)) / Decimal(100) / Decimal(12)


def monthly_payment(principal: Decimal | int | float | str, annual_rate: Decimal | int | float | str, term_months: int) -> Decimal:
    """
    Level installment for a fully amortizing loan, rounded to centavos.
    Zero rate degrades to straight-line principal / term.
    """
    if term_months <= 0:
        raise ValueError("term_months must be positive")
    p = Decimal(str(principal))
    r = monthly_rate(annual_rate)
    if r == 0:
        return to_money(p / term_months)
    factor = (1 + r) ** term_months
    return to_money(p * r * factor / (factor - 1))


@dataclass(frozen=True)
class AmortizationSummary:
    principal: Decimal
    annual_rate: Decimal
    term_months: int
    monthly_payment: Decimal
    total_payment: Decimal
    total_interest: Decimal


@dataclass(frozen=True)
class ScheduleRow:
    period: int
    due_date: date | None
    payment: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


def amortization_summary(principal, annual_rate, term_months: int) -> AmortizationSummary:
    p = to_money(principal)
    rate = Decimal(str(annual_rate))
    monthly = monthly_payment(p, rate, term_months)
    total = to_money(monthly * term_months)
    return AmortizationSummary(
        principal=p,
        annual_rate=rate,
        term_months=term_months,
        monthly_payment=monthly,
        total_payment=total,
        total_interest=to_money(total - p),
    )


def add_months(d: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the end of shorter months."""
    idx = d.month - 1 + months
    year = d.year + idx // 12
    month = idx % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def amortization_schedule(principal, annual_rate, term_months: int, start_date: date | None = None) -> list[ScheduleRow]:
    """
    Per-period breakdown. Period k is due k months after `start_date` (when given).
    The final row absorbs rounding so the closing balance is exactly 0.00.
    """
    p = to_money(principal)
    r = monthly_rate(annual_rate)
    payment = monthly_payment(p, annual_rate, term_months)
    balance = p
    rows: list[ScheduleRow] = []
    for period in range(1, term_months + 1):
        interest = to_money(balance * r)
        if period == term_months:
            principal_part = balance
            pay = to_money(principal_part + interest)
        else:
            principal_part = to_money(payment - interest)
            if principal_part > balance:
                principal_part = balance
            pay = to_money(principal_part + interest)
        balance = to_money(balance - principal_part)
        rows.append(
            ScheduleRow(
                period=period,
                due_date=add_months(start_date, period) if start_date else None,
                payment=pay,
                principal=principal_part,
                interest=interest,
                balance=balance,
            )
        )
    return rows
