"""create collection receipts table

Revision ID: f8c6b7d9e0a1
Revises: e7b5a6c8d9f0
Create Date: 2026-01-06 09:50:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "f8c6b7d9e0a1"
down_revision: Union[str, Sequence[str], None] = "e7b5a6c8d9f0"
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
        "collection_receipts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("cr_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("application_id", sa.String(length=36), sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("loan_id", sa.String(length=36), sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("principal_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("interest_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("penalty_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=50), nullable=False),
        sa.Column("reference_number", sa.String(length=100), nullable=True),
        sa.Column("payment_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("payor_name", sa.String(length=255), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("collected_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_void", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voided_at", sa.DateTime(), nullable=True),
        sa.Column("void_reason", sa.Text(), nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_collection_receipts_cr_number", "collection_receipts", ["cr_number"])
    op.create_index("idx_collection_receipts_application_id", "collection_receipts", ["application_id"])
    op.create_index("idx_collection_receipts_loan_id", "collection_receipts", ["loan_id"])
    op.create_index("idx_collection_receipts_payment_date", "collection_receipts", ["payment_date"])
    op.create_index("idx_collection_receipts_payment_status", "collection_receipts", ["payment_status"])
    op.create_index("idx_collection_receipts_is_void", "collection_receipts", ["is_void"])


def downgrade() -> None:
    for name in (
        "idx_collection_receipts_is_void",
        "idx_collection_receipts_payment_status",
        "idx_collection_receipts_payment_date",
        "idx_collection_receipts_loan_id",
        "idx_collection_receipts_application_id",
        "idx_collection_receipts_cr_number",
    ):
        op.drop_index(name, table_name="collection_receipts")
    op.drop_table("collection_receipts")
