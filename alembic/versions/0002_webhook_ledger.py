"""webhook ledger, retry queue, failure metrics

Revision ID: 0002_webhook_ledger
Revises: 0001_init
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0002_webhook_ledger"
down_revision: Union[str, None] = "0001_init"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("dedup_key", sa.String(length=255), nullable=False),
        sa.Column("provider_event_id", sa.String(length=255), nullable=True),
        sa.Column("app_user_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("entitlement_id", sa.String(length=255), nullable=True),
        sa.Column("original_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("transaction_at_ms", sa.BigInteger(), nullable=True),
        sa.Column("expiration_at_ms", sa.BigInteger(), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("dedup_key", name="uq_webhook_events_dedup_key"),
    )
    op.create_index("ix_webhook_events_app_user_id", "webhook_events", ["app_user_id"])

    op.create_table(
        "webhook_retry_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "webhook_event_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("webhook_events.id"),
            nullable=False,
        ),
        sa.Column("app_user_id", sa.String(length=255), nullable=False),
        sa.Column("event_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_dead_lettered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dead_lettered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("webhook_event_id", name="uq_webhook_retry_queue_webhook_event_id"),
    )
    op.create_index(
        "ix_webhook_retry_queue_due",
        "webhook_retry_queue",
        ["next_retry_at"],
        postgresql_where=sa.text("NOT is_dead_lettered AND resolved_at IS NULL"),
    )

    op.create_table(
        "webhook_metrics",
        sa.Column("metric_name", sa.String(length=100), primary_key=True, nullable=False),
        sa.Column("window_start_at", sa.DateTime(timezone=True), primary_key=True, nullable=False),
        sa.Column("window_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
    )

def downgrade() -> None:
    op.drop_table("webhook_metrics")
    op.drop_index("ix_webhook_retry_queue_due", table_name="webhook_retry_queue")
    op.drop_table("webhook_retry_queue")
    op.drop_index("ix_webhook_events_app_user_id", table_name="webhook_events")
    op.drop_table("webhook_events")
