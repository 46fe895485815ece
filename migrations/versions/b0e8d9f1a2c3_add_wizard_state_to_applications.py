"""add wizard state to applications

Revision ID: b0e8d9f1a2c3
Revises: a9d7c8e0f1b2
Create Date: 2026-01-06 10:10:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b0e8d9f1a2c3"
down_revision: Union[str, Sequence[str], None] = "a9d7c8e0f1b2"
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

    with op.batch_alter_table("applications") as batch:
        batch.add_column(sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"))
        batch.add_column(sa.Column("step_data", json_type, nullable=True))
        batch.add_column(sa.Column("last_saved_at", sa.DateTime(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("applications") as batch:
        batch.drop_column("last_saved_at")
        batch.drop_column("step_data")
        batch.drop_column("current_step")
