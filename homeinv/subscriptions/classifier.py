from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from homeinv.config import Settings, settings as default_settings
from homeinv.models.enums import Plan, SubscriptionStatus
from homeinv.schemas.webhooks import BillingEventIn

logger = structlog.get_logger(__name__)

_ACTIVE_TYPES = {
    "INITIAL_PURCHASE",
    "RENEWAL",
    "NON_RENEWING_PURCHASE",
    "UNCANCELLATION",
    "PRODUCT_CHANGE",
    "SUBSCRIPTION_EXTENDED",
}
_EXPIRED_TYPES = {"EXPIRATION", "BILLING_ISSUE"}
_CANCELED_TYPES = {"CANCELLATION", "SUBSCRIPTION_PAUSED", "TRANSFER"}

def classify_status(event_type: str) -> SubscriptionStatus:
    normalized = event_type.strip().upper()
    if normalized in _ACTIVE_TYPES:
        return SubscriptionStatus.active
    if normalized in _EXPIRED_TYPES:
        return SubscriptionStatus.expired
    if normalized in _CANCELED_TYPES:
        return SubscriptionStatus.canceled
    # unknown/new provider event types
    return SubscriptionStatus.free

def epoch_ms_to_datetime(epoch_ms: int | None) -> datetime | None:
    if not epoch_ms:
        return None
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)

@dataclass(frozen=True)
class Transition:
    status: SubscriptionStatus
    plan: Plan | None
    renew_date: datetime | None

class EventClassifier:
    """Maps a billing event onto the subscriber state it implies."""

    def __init__(self, cfg: Settings | None = None):
        cfg = cfg or default_settings
        self.plan_by_sku: dict[str, Plan] = {
            cfg.product_pro_monthly: Plan.pro_monthly,
            cfg.product_pro_annual: Plan.pro_annual,
            cfg.product_pro_lifetime: Plan.pro_lifetime,
        }

    def plan_for_product(self, product_id: str | None) -> Plan | None:
        if not product_id or not product_id.strip():
            return None

        plan = self.plan_by_sku.get(product_id.strip())
        if plan is None:
            logger.warning("unknown_product_sku", product_id=product_id)
        return plan

    def classify(self, event: BillingEventIn) -> Transition:
        return Transition(
            status=classify_status(event.type),
            plan=self.plan_for_product(event.product_id),
            renew_date=epoch_ms_to_datetime(event.expiration_at_ms),
        )
