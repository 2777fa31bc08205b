"""subscribers

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    # enums
    status_create = postgresql.ENUM("free", "active", "expired", "canceled", name="subscription_status")
    plan_create = postgresql.ENUM("pro_monthly", "pro_annual", "pro_lifetime", name="subscription_plan")
    status_create.create(op.get_bind(), checkfirst=True)
    plan_create.create(op.get_bind(), checkfirst=True)

    subscription_status = postgresql.ENUM(
        "free", "active", "expired", "canceled", name="subscription_status", create_type=False
    )
    subscription_plan = postgresql.ENUM(
        "pro_monthly", "pro_annual", "pro_lifetime", name="subscription_plan", create_type=False
    )

    op.create_table(
        "subscribers",
        sa.Column("id", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("subscription_status", subscription_status, nullable=False, server_default="free"),
        sa.Column("subscription_plan", subscription_plan, nullable=True),
        sa.Column("subscription_renew_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_updated_at", sa.DateTime(timezone=True), nullable=True),
    )

def downgrade() -> None:
    op.drop_table("subscribers")

    postgresql.ENUM(name="subscription_plan").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="subscription_status").drop(op.get_bind(), checkfirst=True)
