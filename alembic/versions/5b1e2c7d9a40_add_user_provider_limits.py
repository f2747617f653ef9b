"""add user provider limits

Revision ID: 5b1e2c7d9a40
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5b1e2c7d9a40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_provider_limits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=200), nullable=False),
        sa.Column("provider", sa.String(length=100), nullable=False),
        sa.Column("requests_per_minute", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "provider", name="uq_user_provider_limits_user_provider"),
    )
    op.create_index("ix_user_provider_limits_user_id", "user_provider_limits", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_provider_limits_user_id", table_name="user_provider_limits")
    op.drop_table("user_provider_limits")
