"""Cache-aside barcode/ISBN resolution over an ordered provider chain."""
from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog
from sqlalchemy.orm import Session

from homeinv.errors import NotFoundError, ProviderUnavailable, ValidationError
from homeinv.lookup.cache import DEFAULT_TTL, BarcodeCache
from homeinv.lookup.providers import ProductProvider, ProviderRejected
from homeinv.schemas.barcode import ProductInfo

logger = structlog.get_logger(__name__)

_UPC_PATTERN = re.compile(r"^\d{6,14}$")

def normalize_upc(raw: str) -> str:
    upc = re.sub(r"[\s-]", "", raw or "")
    if not _UPC_PATTERN.match(upc):
        raise ValidationError("barcode must be 6-14 digits")
    return upc

class LookupEngine:
    def __init__(
        self,
        db: Session,
        providers: Sequence[ProductProvider],
        cache_ttl: timedelta = DEFAULT_TTL,
    ):
        self.cache = BarcodeCache(db, ttl=cache_ttl)
        self.providers = list(providers)

    def lookup(self, raw_upc: str, now: datetime | None = None) -> ProductInfo:
        upc = normalize_upc(raw_upc)

        # cache first for every key, books included
        cached = self.cache.get_fresh(upc, now=now)
        if cached is not None:
            logger.info("barcode_cache_hit", upc=upc)
            return cached

        applicable = [p for p in self.providers if p.applies_to(upc)]
        if not applicable:
            raise ProviderUnavailable("no barcode provider configured")

        rejected: list[str] = []
        for provider in applicable:
            try:
                hit = provider.try_lookup(upc)
            except ProviderRejected as e:
                logger.warning(
                    "barcode_provider_rejected",
                    provider=e.provider,
                    upc=upc,
                    status_code=e.status_code,
                )
                rejected.append(e.provider)
                continue

            if hit is None:
                continue

            self.cache.put(hit.product, hit.raw, overwrite=provider.overwrite_cache, now=now)
            logger.info("barcode_resolved", upc=upc, source=hit.product.source)
            return hit.product

        if rejected:
            raise ProviderUnavailable("barcode lookup temporarily unavailable")
        raise NotFoundError("Item not found for that barcode.")
