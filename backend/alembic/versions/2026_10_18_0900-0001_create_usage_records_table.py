"""create usage_records table

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Per-client song quota ledger: one row per client identity.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "usage_records",
        sa.Column("client_id", sa.String(255), nullable=False),
        sa.Column("song_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("window_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("client_id"),
        sa.CheckConstraint("song_count >= 0", name="ck_song_count_non_neg"),
    )
    # Supports the expired-record sweep
    op.create_index("ix_usage_records_window_start", "usage_records", ["window_start"])


def downgrade() -> None:
    op.drop_index("ix_usage_records_window_start", table_name="usage_records")
    op.drop_table("usage_records")
