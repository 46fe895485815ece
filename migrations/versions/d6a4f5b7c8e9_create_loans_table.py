"""create loans table

Revision ID: d6a4f5b7c8e9
Revises: c5f3e4a6b7d8
Create Date: 2026-01-06 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "d6a4f5b7c8e9"
down_revision: Union[str, Sequence[str], None] = "c5f3e4a6b7d8"
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
        "loans",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("loan_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column(
            "application_id",
            sa.String(length=36),
            sa.ForeignKey("applications.id", ondelete="RESTRICT"),
            nullable=False,
            unique=True,
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("principal_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("interest_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("monthly_payment", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_amount_due", sa.Numeric(15, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("balance_remaining", sa.Numeric(15, 2), nullable=False),
        sa.Column("disbursement_date", sa.Date(), nullable=False),
        sa.Column("first_payment_date", sa.Date(), nullable=False),
        sa.Column("maturity_date", sa.Date(), nullable=False),
        sa.Column("last_payment_date", sa.Date(), nullable=True),
        sa.Column("days_past_due", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_delinquent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_loans_loan_number", "loans", ["loan_number"])
    op.create_index("idx_loans_status", "loans", ["status"])
    op.create_index("idx_loans_is_delinquent", "loans", ["is_delinquent"])


def downgrade() -> None:
    op.drop_index("idx_loans_is_delinquent", table_name="loans")
    op.drop_index("idx_loans_status", table_name="loans")
    op.drop_index("idx_loans_loan_number", table_name="loans")
    op.drop_table("loans")
