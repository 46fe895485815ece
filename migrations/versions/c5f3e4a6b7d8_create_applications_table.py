"""create applications table

Revision ID: c5f3e4a6b7d8
Revises: b4e2d3f5a6c7
Create Date: 2026-01-06 09:20:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "c5f3e4a6b7d8"
down_revision: Union[str, Sequence[str], None] = "b4e2d3f5a6c7"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    dialect = bind.dialect.name if bind else ""
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import JSONB
        json_type = JSONB
    else:
        json_type = sa.JSON

    op.create_table(
        "applications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("application_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("borrower_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("borrower_first_name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("borrower_middle_name", sa.String(length=100), nullable=True),
        sa.Column("borrower_last_name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("borrower_email", sa.String(length=255), nullable=True),
        sa.Column("borrower_phone", sa.String(length=20), nullable=True),
        sa.Column("borrower_address", sa.Text(), nullable=True),
        sa.Column("region_id", sa.String(length=36), sa.ForeignKey("ref_region.id", ondelete="SET NULL"), nullable=True),
        sa.Column("province_id", sa.String(length=36), sa.ForeignKey("ref_province.id", ondelete="SET NULL"), nullable=True),
        sa.Column("city_id", sa.String(length=36), sa.ForeignKey("ref_city.id", ondelete="SET NULL"), nullable=True),
        sa.Column("loan_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("loan_purpose", sa.Text(), nullable=True),
        sa.Column("loan_term_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("interest_rate", sa.Numeric(5, 2), nullable=False, server_default="9.00"),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("disbursed_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_applications_application_number", "applications", ["application_number"])
    op.create_index("idx_applications_status", "applications", ["status"])
    op.create_index("idx_applications_borrower_name", "applications", ["borrower_name"])
    op.create_index("idx_applications_created_by", "applications", ["created_by"])


def downgrade() -> None:
    op.drop_index("idx_applications_created_by", table_name="applications")
    op.drop_index("idx_applications_borrower_name", table_name="applications")
    op.drop_index("idx_applications_status", table_name="applications")
    op.drop_index("idx_applications_application_number", table_name="applications")
    op.drop_table("applications")
