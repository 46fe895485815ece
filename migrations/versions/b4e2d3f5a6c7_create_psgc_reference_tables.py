"""create PSGC reference tables

Revision ID: b4e2d3f5a6c7
Revises: a3f1c2d4e5b6
Create Date: 2026-01-06 09:10:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b4e2d3f5a6c7"
down_revision: Union[str, Sequence[str], None] = "a3f1c2d4e5b6"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "ref_region",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("psgc_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("region_name", sa.String(length=255), nullable=False),
        sa.Column("region_code", sa.String(length=10), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("idx_ref_region_region_code", "ref_region", ["region_code"])

    op.create_table(
        "ref_province",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("psgc_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("province_name", sa.String(length=255), nullable=False),
        sa.Column("province_code", sa.String(length=10), nullable=False),
        sa.Column("region_id", sa.String(length=36), sa.ForeignKey("ref_region.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("idx_ref_province_province_code", "ref_province", ["province_code"])
    op.create_index("idx_ref_province_region_id", "ref_province", ["region_id"])

    op.create_table(
        "ref_city",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("psgc_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("city_name", sa.String(length=255), nullable=False),
        sa.Column("city_code", sa.String(length=10), nullable=False),
        sa.Column("province_id", sa.String(length=36), sa.ForeignKey("ref_province.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_municipality", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("idx_ref_city_city_code", "ref_city", ["city_code"])
    op.create_index("idx_ref_city_province_id", "ref_city", ["province_id"])


def downgrade() -> None:
    op.drop_index("idx_ref_city_province_id", table_name="ref_city")
    op.drop_index("idx_ref_city_city_code", table_name="ref_city")
    op.drop_table("ref_city")
    op.drop_index("idx_ref_province_region_id", table_name="ref_province")
    op.drop_index("idx_ref_province_province_code", table_name="ref_province")
    op.drop_table("ref_province")
    op.drop_index("idx_ref_region_region_code", table_name="ref_region")
    op.drop_table("ref_region")
