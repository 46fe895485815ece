from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lending.models import Base, JSONType, new_uuid, utcnow

if TYPE_CHECKING:
    from app.lending.modules.applications.models import Application
    from app.lending.modules.loans.models import Loan


class ReceiptType(str, Enum):
    PROCESSING_FEE = "processing_fee"
    SERVICE_FEE = "service_fee"
    DOCUMENTATION_FEE = "documentation_fee"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CLEARED = "cleared"
    BOUNCED = "bounced"
    REVERSED = "reversed"


class OfficialReceipt(Base):
    """Fee receipt issued against an application."""

    __tablename__ = "official_receipts"
    __table_args__ = (
        Index("idx_official_receipts_or_number", "or_number"),
        Index("idx_official_receipts_application_id", "application_id"),
        Index("idx_official_receipts_receipt_date", "receipt_date"),
        Index("idx_official_receipts_is_void", "is_void"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    or_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    application_id: Mapped[str] = mapped_column(ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    receipt_type: Mapped[str] = mapped_column(String(32), nullable=False, default=ReceiptType.PROCESSING_FEE.value)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    receipt_date: Mapped[date] = mapped_column(Date, nullable=False)
    payor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    issued_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_void: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    application: Mapped["Application"] = relationship("Application", back_populates="official_receipts")


class CollectionReceipt(Base):
    """Loan repayment record."""

    __tablename__ = "collection_receipts"
    __table_args__ = (
        Index("idx_collection_receipts_cr_number", "cr_number"),
        Index("idx_collection_receipts_application_id", "application_id"),
        Index("idx_collection_receipts_loan_id", "loan_id"),
        Index("idx_collection_receipts_payment_date", "payment_date"),
        Index("idx_collection_receipts_payment_status", "payment_status"),
        Index("idx_collection_receipts_is_void", "is_void"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    cr_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    application_id: Mapped[str] = mapped_column(ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    loan_id: Mapped[str] = mapped_column(ForeignKey("loans.id", ondelete="CASCADE"), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    principal_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, default=PaymentStatus.PENDING.value)
    payor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    collected_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_void: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    application: Mapped["Application"] = relationship("Application", back_populates="collection_receipts")
    loan: Mapped["Loan"] = relationship("Loan", back_populates="collection_receipts")
