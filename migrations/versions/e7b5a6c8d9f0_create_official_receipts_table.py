"""create official receipts table

Revision ID: e7b5a6c8d9f0
Revises: d6a4f5b7c8e9
Create Date: 2026-01-06 09:40:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "e7b5a6c8d9f0"
down_revision: Union[str, Sequence[str], None] = "d6a4f5b7c8e9"
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
        "official_receipts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("or_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("application_id", sa.String(length=36), sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("receipt_type", sa.String(length=32), nullable=False, server_default="processing_fee"),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("receipt_date", sa.Date(), nullable=False),
        sa.Column("payor_name", sa.String(length=255), nullable=False),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("reference_number", sa.String(length=100), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("issued_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_void", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voided_at", sa.DateTime(), nullable=True),
        sa.Column("void_reason", sa.Text(), nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_official_receipts_or_number", "official_receipts", ["or_number"])
    op.create_index("idx_official_receipts_application_id", "official_receipts", ["application_id"])
    op.create_index("idx_official_receipts_receipt_date", "official_receipts", ["receipt_date"])
    op.create_index("idx_official_receipts_is_void", "official_receipts", ["is_void"])


def downgrade() -> None:
    op.drop_index("idx_official_receipts_is_void", table_name="official_receipts")
    op.drop_index("idx_official_receipts_receipt_date", table_name="official_receipts")
    op.drop_index("idx_official_receipts_application_id", table_name="official_receipts")
    op.drop_index("idx_official_receipts_or_number", table_name="official_receipts")
    op.drop_table("official_receipts")
