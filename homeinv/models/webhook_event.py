from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from homeinv.models.base import Base

class WebhookEvent(Base):
    """Append-only ledger of delivered billing events."""

    __tablename__ = "webhook_events"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    provider: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    dedup_key: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    provider_event_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    app_user_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    product_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    entitlement_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    original_transaction_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    transaction_at_ms: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True)
    expiration_at_ms: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True)

    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    received_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )
