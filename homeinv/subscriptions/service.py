# every event is ledgered under its dedup key first; the unique index is the
# only concurrency control between racing deliveries
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homeinv.auth.tokens import strip_bearer, tokens_match
from homeinv.config import settings
from homeinv.errors import AuthError, ProcessingError, ValidationError
from homeinv.models.enums import SubscriptionStatus
from homeinv.models.retry_queue import RetryQueueEntry
from homeinv.models.subscriber import Subscriber
from homeinv.models.webhook_event import WebhookEvent
from homeinv.schemas.webhooks import BillingEventIn, WebhookEnvelopeIn
from homeinv.subscriptions import alerts
from homeinv.subscriptions.classifier import EventClassifier, Transition
from homeinv.subscriptions.event_keys import build_dedup_key
from homeinv.subscriptions.retry import RetryScheduler

logger = structlog.get_logger(__name__)

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

@dataclass(frozen=True)
class IngestResult:
    accepted: bool
    dedup_key: str
    duplicate: bool = False
    ignored: bool = False
    queued_for_retry: bool = False

class ReconciliationEngine:
    def __init__(
        self,
        db: Session,
        classifier: EventClassifier | None = None,
        retries: RetryScheduler | None = None,
    ):
        self.db = db
        self.classifier = classifier or EventClassifier()
        self.retries = retries or RetryScheduler(db)

    # ingestion

    def ingest(self, payload: Any, authorization: str | None = None) -> IngestResult:
        self._check_auth(payload, authorization)
        event = self._parse(payload)

        dedup_key = build_dedup_key(event)
        event_id = self._ledger(event, dedup_key)
        if event_id is None:
            logger.info(
                "webhook_duplicate_ignored",
                dedup_key=dedup_key,
                app_user_id=event.app_user_id,
                event_type=event.type,
            )
            return IngestResult(accepted=True, dedup_key=dedup_key, duplicate=True)

        tracked = settings.tracked_entitlement_id
        if tracked and event.entitlement_id and event.entitlement_id != tracked:
            logger.info(
                "webhook_unrelated_entitlement_ignored",
                event_type=event.type,
                entitlement_id=event.entitlement_id,
            )
            return IngestResult(accepted=True, dedup_key=dedup_key, ignored=True)

        try:
            self.apply(event)
            self.db.commit()
        except ProcessingError as e:
            error = e.detail
        except SQLAlchemyError as e:
            self.db.rollback()
            error = f"{type(e).__name__}: {e}"
        else:
            return IngestResult(accepted=True, dedup_key=dedup_key)

        # already ledgered, so a redelivery would be a duplicate: queue it here
        logger.error(
            "webhook_processing_failed",
            dedup_key=dedup_key,
            app_user_id=event.app_user_id,
            error=error,
        )
        self.retries.schedule_retry(
            event_id,
            event.app_user_id,
            event.model_dump(mode="json"),
            error,
            attempt_count=1,
        )
        self.db.commit()
        return IngestResult(accepted=True, dedup_key=dedup_key, queued_for_retry=True)

    def _check_auth(self, payload: Any, authorization: str | None) -> None:
        expected = settings.webhook_auth_token
        if not expected:
            return

        received = strip_bearer(authorization)
        if received is None and isinstance(payload, dict) and isinstance(payload.get("authorization"), str):
            received = strip_bearer(payload["authorization"])

        if not tokens_match(expected, received):
            self._count_failure(alerts.AUTH_FAILED, reason="invalid_token")
            raise AuthError("invalid webhook token")

    def _parse(self, payload: Any) -> BillingEventIn:
        if not isinstance(payload, dict) or not isinstance(payload.get("event"), dict):
            self._count_failure(alerts.VALIDATION_FAILED, reason="missing_event")
            raise ValidationError("missing billing event payload")

        try:
            return WebhookEnvelopeIn.model_validate(payload).event
        except PydanticValidationError:
            self._count_failure(alerts.VALIDATION_FAILED, reason="invalid_payload")
            raise ValidationError("invalid billing event payload")

    def _count_failure(self, metric_name: str, reason: str) -> None:
        logger.warning(metric_name, reason=reason)
        alerts.record_failure(self.db, metric_name)
        self.db.commit()

    def _ledger(self, event: BillingEventIn, dedup_key: str) -> UUID | None:
        stmt = (
            insert(WebhookEvent)
            .values(
                provider=settings.webhook_provider,
                dedup_key=dedup_key,
                provider_event_id=event.id,
                app_user_id=event.app_user_id,
                event_type=event.type,
                product_id=event.product_id,
                entitlement_id=event.entitlement_id,
                original_transaction_id=event.original_transaction_id,
                transaction_at_ms=event.transaction_at_ms,
                expiration_at_ms=event.expiration_at_ms,
                payload=event.model_dump(mode="json"),
            )
            .on_conflict_do_nothing(index_elements=[WebhookEvent.dedup_key])
            .returning(WebhookEvent.id)
        )
        event_id = self.db.scalar(stmt)
        self.db.commit()
        return event_id

    # state application

    def apply(self, event: BillingEventIn) -> Transition:
        """Classify and upsert inside a savepoint; failures surface as ProcessingError."""
        try:
            with self.db.begin_nested():
                transition = self.classifier.classify(event)
                self._upsert_subscriber(event.app_user_id, transition)
        except Exception as e:
            raise ProcessingError(f"{type(e).__name__}: {e}") from e

        logger.info(
            "webhook_event_processed",
            event_type=event.type,
            app_user_id=event.app_user_id,
            product_id=event.product_id,
            entitlement_id=event.entitlement_id,
            status=transition.status.value,
            plan=transition.plan.value if transition.plan else "none",
            transaction_id=event.original_transaction_id,
            expiration_at_ms=event.expiration_at_ms,
        )
        return transition

    def _upsert_subscriber(self, subscriber_id: str, transition: Transition) -> None:
        now = _now_utc()
        plan = transition.plan.value if transition.plan else None

        # last processed event wins
        stmt = insert(Subscriber).values(
            id=subscriber_id,
            subscription_status=transition.status.value,
            subscription_plan=plan,
            subscription_renew_date=transition.renew_date,
            subscription_updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Subscriber.id],
            set_={
                "subscription_status": stmt.excluded.subscription_status,
                "subscription_plan": stmt.excluded.subscription_plan,
                "subscription_renew_date": stmt.excluded.subscription_renew_date,
                "subscription_updated_at": now,
            },
        )
        self.db.execute(stmt)

    # retry sweep

    def process_due_retries(self, now: datetime | None = None, limit: int = 100) -> dict[str, int]:
        now = now or _now_utc()
        entries = self.retries.claim_due(now=now, limit=limit)

        counts = {"due": len(entries), "succeeded": 0, "rescheduled": 0, "dead_lettered": 0}

        for entry in entries:
            try:
                event = BillingEventIn.model_validate(entry.event_payload)
                self.apply(event)
            except (ProcessingError, PydanticValidationError) as e:
                detail = e.detail if isinstance(e, ProcessingError) else f"invalid payload snapshot: {e}"
                decision = self.retries.schedule_retry(
                    entry.webhook_event_id,
                    entry.app_user_id,
                    entry.event_payload,
                    detail,
                    attempt_count=entry.attempt_count + 1,
                    now=now,
                )
                if decision.dead_lettered:
                    counts["dead_lettered"] += 1
                else:
                    counts["rescheduled"] += 1
                continue

            self.retries.mark_resolved(entry, now=now)
            counts["succeeded"] += 1
            logger.info(
                "webhook_retry_succeeded",
                event_id=str(entry.webhook_event_id),
                app_user_id=entry.app_user_id,
                attempt=entry.attempt_count,
            )

        self.db.commit()
        logger.info("webhook_retry_sweep_finished", **counts)
        return counts

    # read side

    def get_status(self, subscriber_id: str) -> Subscriber:
        sub = self.db.get(Subscriber, subscriber_id)
        if sub is not None:
            return sub

        # authenticated caller that no webhook has mentioned yet
        self.db.execute(
            insert(Subscriber)
            .values(id=subscriber_id, subscription_status=SubscriptionStatus.free.value)
            .on_conflict_do_nothing(index_elements=[Subscriber.id])
        )
        self.db.commit()

        sub = self.db.get(Subscriber, subscriber_id)
        if sub is None:
            raise ProcessingError("subscriber row missing after insert")
        return sub

    def subscription_stats(self) -> dict[str, Any]:
        status = Subscriber.subscription_status
        row = self.db.execute(
            select(
                func.count().label("total"),
                func.count().filter(status == "active").label("active"),
                func.count().filter(status == "expired").label("expired"),
                func.count().filter(status == "canceled").label("canceled"),
                func.count().filter((status == "free") | status.is_(None)).label("free"),
            ).select_from(Subscriber)
        ).one()

        plans = self.db.execute(
            select(Subscriber.subscription_plan, func.count())
            .where(Subscriber.subscription_plan.is_not(None))
            .group_by(Subscriber.subscription_plan)
        ).all()

        return {
            "total": row.total or 0,
            "active": row.active or 0,
            "expired": row.expired or 0,
            "canceled": row.canceled or 0,
            "free": row.free or 0,
            "by_plan": {plan or "none": count for plan, count in plans},
        }

    def dead_letters(self, limit: int = 100) -> list[RetryQueueEntry]:
        return self.retries.dead_letters(limit=limit)
