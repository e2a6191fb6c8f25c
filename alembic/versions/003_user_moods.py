"""Add user_moods for mood tracking.

Revision ID: 003_user_moods
Revises: 002_manual_premium
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "003_user_moods"
down_revision: Union[str, None] = "002_manual_premium"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user_moods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("mood", sa.String(32), nullable=False),
        sa.Column("dream_id", sa.Integer(), sa.ForeignKey("dreams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_user_moods_id", "user_moods", ["id"])
    op.create_index("ix_user_moods_user_id", "user_moods", ["user_id"])
    op.create_index("ix_user_moods_created_at", "user_moods", ["created_at"])


def downgrade() -> None:
    op.drop_table("user_moods")
