from __future__ import annotations

import hashlib

from homeinv.config import settings
from homeinv.schemas.webhooks import BillingEventIn

def _part(value: object | None) -> str:
    return "" if value is None else str(value)

def build_dedup_key(event: BillingEventIn, prefix: str | None = None) -> str:
    """Stable ledger key for one delivered event.

    Provider-assigned ids win. Without one, the key is a sha256 over the
    fields that identify a billing transition, so identical retransmissions
    collapse while distinct events for the same subscriber do not.
    """
    prefix = prefix or settings.webhook_key_prefix

    if event.id and event.id.strip():
        return f"{prefix}_evt_{event.id.strip()}"

    fingerprint = "|".join(
        [
            _part(event.app_user_id),
            _part(event.type),
            _part(event.product_id),
            _part(event.original_transaction_id),
            _part(event.transaction_at_ms),
            _part(event.expiration_at_ms),
        ]
    )
    digest = hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()
    return f"{prefix}_fp_{digest}"
