from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lending.models import Base, new_uuid, utcnow


class RefRegion(Base):
    __tablename__ = "ref_region"
    __table_args__ = (
        Index("idx_ref_region_region_code", "region_code"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    psgc_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    region_name: Mapped[str] = mapped_column(String(255), nullable=False)
    region_code: Mapped[str] = mapped_column(String(10), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    provinces: Mapped[list["RefProvince"]] = relationship(
        "RefProvince",
        back_populates="region",
        cascade="all, delete-orphan",
    )


class RefProvince(Base):
    __tablename__ = "ref_province"
    __table_args__ = (
        Index("idx_ref_province_province_code", "province_code"),
        Index("idx_ref_province_region_id", "region_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    psgc_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    province_name: Mapped[str] = mapped_column(String(255), nullable=False)
    province_code: Mapped[str] = mapped_column(String(10), nullable=False)
    region_id: Mapped[str] = mapped_column(ForeignKey("ref_region.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    region: Mapped[RefRegion] = relationship("RefRegion", back_populates="provinces")
    cities: Mapped[list["RefCity"]] = relationship(
        "RefCity",
        back_populates="province",
        cascade="all, delete-orphan",
    )


class RefCity(Base):
    __tablename__ = "ref_city"
    __table_args__ = (
        Index("idx_ref_city_city_code", "city_code"),
        Index("idx_ref_city_province_id", "province_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    psgc_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    city_name: Mapped[str] = mapped_column(String(255), nullable=False)
    city_code: Mapped[str] = mapped_column(String(10), nullable=False)
    province_id: Mapped[str] = mapped_column(ForeignKey("ref_province.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_municipality: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    province: Mapped[RefProvince] = relationship("RefProvince", back_populates="cities")
