from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from homeinv.models.base import Base

class RetryQueueEntry(Base):
    __tablename__ = "webhook_retry_queue"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # at most one queue entry per ledgered event
    webhook_event_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        sa.ForeignKey("webhook_events.id"),
        nullable=False,
        unique=True,
    )
    app_user_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    event_payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
    error_message: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    attempt_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="1")
    next_retry_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)

    is_dead_lettered: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false())
    dead_lettered_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
        onupdate=sa.func.now(),
    )

    __table_args__ = (
        sa.Index(
            "ix_webhook_retry_queue_due",
            "next_retry_at",
            postgresql_where=sa.text("NOT is_dead_lettered AND resolved_at IS NULL"),
        ),
    )
