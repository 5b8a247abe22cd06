"""request rate limits

Revision ID: 5a2e91c47b0d
Revises: 0f3b7c2a91de
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "5a2e91c47b0d"
down_revision = "0f3b7c2a91de"
branch_labels = None
depends_on = None


def upgrade() -> None:
    _ = op.create_table(
        "request_rate_limits",
        sa.Column("key", sa.String(length=512), nullable=False),
        sa.Column("hits", sa.Integer(), nullable=False),
        sa.Column("reset_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("hits >= 0", name="ck_request_rate_limits_hits_ge_0"),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index(
        "ix_request_rate_limits_reset_at",
        "request_rate_limits",
        ["reset_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_request_rate_limits_reset_at", table_name="request_rate_limits")
    op.drop_table("request_rate_limits")
