from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from homeinv.models.base import Base

class BarcodeCacheEntry(Base):
    __tablename__ = "barcode_cache"

    upc: Mapped[str] = mapped_column(sa.String(32), primary_key=True)

    product_name: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    brand: Mapped[str | None] = mapped_column(sa.String(500), nullable=True)
    category: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    size: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    source: Mapped[str] = mapped_column(sa.String(32), nullable=False)

    # normalized product as returned to callers, plus the provider's own payload
    product: Mapped[dict] = mapped_column(JSONB, nullable=False)
    raw_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    cached_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False, index=True)
