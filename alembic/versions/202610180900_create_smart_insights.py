"""create smart insights

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "smart_insights",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "type",
            sa.Enum(
                "budget_alert",
                "spending_pattern",
                "anomaly",
                "recommendation",
                "forecast",
                "health_score",
                name="insighttype",
            ),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="2"),
        sa.Column(
            "is_actionable", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("related_category_id", sa.String(length=64), nullable=True),
        sa.Column("related_period_id", sa.String(length=64), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "is_dismissed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("unique_key", sa.String(length=400), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("user_id", "unique_key", name="uq_smart_insight_user_key"),
    )
    op.create_index(
        "ix_smart_insights_user_dismissed_created",
        "smart_insights",
        ["user_id", "is_dismissed", "created_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_smart_insights_user_dismissed_created", table_name="smart_insights"
    )
    op.drop_table("smart_insights")
