from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lending.models import Base, JSONType, new_uuid, utcnow

if TYPE_CHECKING:
    from app.lending.models import User
    from app.lending.modules.locations.models import RefCity, RefProvince, RefRegion
    from app.lending.modules.loans.models import Loan
    from app.lending.modules.receipts.models import CollectionReceipt, OfficialReceipt


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    CLOSED = "closed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        Index("idx_applications_application_number", "application_number"),
        Index("idx_applications_status", "status"),
        Index("idx_applications_borrower_name", "borrower_name"),
        Index("idx_applications_created_by", "created_by"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ApplicationStatus.DRAFT.value)

    # Borrower
    borrower_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    borrower_first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    borrower_middle_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    borrower_last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    borrower_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    borrower_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    borrower_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # PSGC location
    region_id: Mapped[str | None] = mapped_column(ForeignKey("ref_region.id", ondelete="SET NULL"), nullable=True)
    province_id: Mapped[str | None] = mapped_column(ForeignKey("ref_province.id", ondelete="SET NULL"), nullable=True)
    city_id: Mapped[str | None] = mapped_column(ForeignKey("ref_city.id", ondelete="SET NULL"), nullable=True)

    # Loan terms
    loan_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    loan_purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    loan_term_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("9.00"))

    # Review outcome
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disbursed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    # Wizard state
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    step_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    last_saved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    created_by_user: Mapped["User"] = relationship(
        "User",
        back_populates="applications",
        foreign_keys=[created_by],
        lazy="selectin",
    )
    approved_by_user: Mapped["User | None"] = relationship("User", foreign_keys=[approved_by], lazy="selectin")
    region: Mapped["RefRegion | None"] = relationship("RefRegion", lazy="selectin")
    province: Mapped["RefProvince | None"] = relationship("RefProvince", lazy="selectin")
    city: Mapped["RefCity | None"] = relationship("RefCity", lazy="selectin")

    loan: Mapped["Loan | None"] = relationship("Loan", back_populates="application", uselist=False)
    official_receipts: Mapped[list["OfficialReceipt"]] = relationship(
        "OfficialReceipt",
        back_populates="application",
        cascade="all, delete-orphan",
    )
    collection_receipts: Mapped[list["CollectionReceipt"]] = relationship(
        "CollectionReceipt",
        back_populates="application",
        cascade="all, delete-orphan",
    )

    @property
    def status_enum(self) -> ApplicationStatus:
        return ApplicationStatus(self.status)

    @property
    def is_draft(self) -> bool:
        return self.status == ApplicationStatus.DRAFT.value
