"""Add users.manual_premium for open-ended manual premium grants.

Revision ID: 002_manual_premium
Revises: 001_initial
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002_manual_premium"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "users",
        sa.Column("manual_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    # Premium users with no trial and no provider row were granted by hand
    op.execute(
        """
        UPDATE users SET manual_premium = TRUE
        WHERE plan = 'premium'
          AND trial_end IS NULL
          AND id NOT IN (
              SELECT user_id FROM user_subscriptions
              WHERE stripe_subscription_id IS NOT NULL OR apple_expires_at IS NOT NULL
          )
        """
    )


def downgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("manual_premium")
