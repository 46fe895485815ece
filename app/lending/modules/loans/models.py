from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lending.models import Base, JSONType, new_uuid, utcnow

if TYPE_CHECKING:
    from app.lending.modules.applications.models import Application
    from app.lending.modules.receipts.models import CollectionReceipt


class LoanStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"
    DEFAULTED = "defaulted"
    RESTRUCTURED = "restructured"
    WRITTEN_OFF = "written_off"


class Loan(Base):
    """
    Amortization snapshot taken when an approved application is disbursed.
    """

    __tablename__ = "loans"
    __table_args__ = (
        Index("idx_loans_loan_number", "loan_number"),
        Index("idx_loans_status", "status"),
        Index("idx_loans_is_delinquent", "is_delinquent"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    loan_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    application_id: Mapped[str] = mapped_column(
        ForeignKey("applications.id", ondelete="RESTRICT"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=LoanStatus.ACTIVE.value)

    principal_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_payment: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_amount_due: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    balance_remaining: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    disbursement_date: Mapped[date] = mapped_column(Date, nullable=False)
    first_payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    maturity_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    days_past_due: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_delinquent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    application: Mapped["Application"] = relationship("Application", back_populates="loan", lazy="selectin")
    collection_receipts: Mapped[list["CollectionReceipt"]] = relationship(
        "CollectionReceipt",
        back_populates="loan",
        order_by="CollectionReceipt.payment_date",
    )
