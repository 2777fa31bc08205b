from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homeinv.models.barcode_cache import BarcodeCacheEntry
from homeinv.models.enums import ProductSource
from homeinv.schemas.barcode import ProductInfo

logger = structlog.get_logger(__name__)

DEFAULT_TTL = timedelta(days=30)

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

class BarcodeCache:
    """Barcode cache rows; staleness is checked on read, rows are never evicted."""

    def __init__(self, db: Session, ttl: timedelta = DEFAULT_TTL):
        self.db = db
        self.ttl = ttl

    def get_fresh(self, upc: str, now: datetime | None = None) -> ProductInfo | None:
        now = now or _now_utc()
        row = self.db.scalar(
            select(BarcodeCacheEntry).where(
                BarcodeCacheEntry.upc == upc,
                BarcodeCacheEntry.cached_at > now - self.ttl,
            )
        )
        if row is None:
            return None

        product = ProductInfo.model_validate({**row.product, "upc": upc})
        return product.model_copy(update={"source": ProductSource.cache.value})

    def put(
        self,
        product: ProductInfo,
        raw: dict[str, Any] | None,
        overwrite: bool = True,
        now: datetime | None = None,
    ) -> bool:
        """Upsert (or insert-if-absent) a provider hit. Failures are logged, never raised."""
        now = now or _now_utc()
        values = {
            "upc": product.upc,
            "product_name": product.name[:500],
            "brand": product.brand,
            "category": product.category,
            "image_url": product.image_url,
            "size": product.size,
            "source": product.source,
            "product": product.model_dump(mode="json"),
            "raw_data": raw,
            "cached_at": now,
        }
        stmt = insert(BarcodeCacheEntry).values(**values)
        if overwrite:
            stmt = stmt.on_conflict_do_update(
                index_elements=[BarcodeCacheEntry.upc],
                set_={k: stmt.excluded[k] for k in values if k != "upc"},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[BarcodeCacheEntry.upc])

        try:
            with self.db.begin_nested():
                self.db.execute(stmt)
        except SQLAlchemyError as e:
            self._log_write_failure(product, e)
            return False

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._log_write_failure(product, e)
            return False
        return True

    def _log_write_failure(self, product: ProductInfo, exc: Exception) -> None:
        logger.warning(
            "barcode_cache_write_failed",
            upc=product.upc,
            source=product.source,
            error=f"{type(exc).__name__}: {exc}",
        )
