"""barcode cache

Revision ID: 0003_barcode_cache
Revises: 0002_webhook_ledger
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0003_barcode_cache"
down_revision = "0002_webhook_ledger"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

def upgrade() -> None:
    op.create_table(
        "barcode_cache",
        sa.Column("upc", sa.String(length=32), primary_key=True, nullable=False),
        sa.Column("product_name", sa.String(length=500), nullable=False),
        sa.Column("brand", sa.String(length=500), nullable=True),
        sa.Column("category", sa.String(length=255), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("size", sa.String(length=255), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("product", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("cached_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_barcode_cache_cached_at", "barcode_cache", ["cached_at"])

def downgrade() -> None:
    op.drop_index("ix_barcode_cache_cached_at", table_name="barcode_cache")
    op.drop_table("barcode_cache")
