from collections.abc import Generator
from datetime import timedelta

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homeinv.auth.deps import get_current_subscriber
from homeinv.config import settings
from homeinv.db import get_db
from homeinv.lookup.providers import build_default_providers
from homeinv.lookup.service import LookupEngine
from homeinv.ratelimit import rate_limit
from homeinv.schemas.barcode import ProductInfo

router = APIRouter(prefix="/items", tags=["items"])

def get_lookup_engine(db: Session = Depends(get_db)) -> Generator[LookupEngine, None, None]:
    with httpx.Client(timeout=settings.provider_timeout_seconds, follow_redirects=True) as client:
        yield LookupEngine(
            db,
            build_default_providers(client),
            cache_ttl=timedelta(days=settings.barcode_cache_ttl_days),
        )

# sync handler: runs in the threadpool, so a dropped client does not cancel
# an in-flight provider call or the cache write that follows it
@router.get("/barcode/{upc}", response_model=ProductInfo)
def lookup_barcode(
    upc: str,
    _subscriber: str = Depends(get_current_subscriber),
    engine: LookupEngine = Depends(get_lookup_engine),
    _: None = Depends(
        rate_limit(
            "items:barcode",
            limit_per_window=settings.rate_limit_barcode_per_min,
            window_seconds=60,
        )
    ),
) -> ProductInfo:
    return engine.lookup(upc)
