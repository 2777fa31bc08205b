# one queue row per ledgered event; dead-lettered after MAX_ATTEMPTS
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from homeinv.models.retry_queue import RetryQueueEntry

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 5

BACKOFF_SCHEDULE = (
    timedelta(seconds=30),
    timedelta(minutes=2),
    timedelta(minutes=5),
    timedelta(minutes=15),
    timedelta(minutes=30),
)
FALLBACK_BACKOFF = timedelta(minutes=60)

_ERROR_MAX_LEN = 1000

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)

def backoff_delay(attempt_count: int) -> timedelta:
    if 1 <= attempt_count <= len(BACKOFF_SCHEDULE):
        return BACKOFF_SCHEDULE[attempt_count - 1]
    return FALLBACK_BACKOFF

@dataclass(frozen=True)
class RetryDecision:
    attempt_count: int
    dead_lettered: bool
    next_retry_at: datetime | None = None

class RetryScheduler:
    def __init__(self, db: Session):
        self.db = db

    def schedule_retry(
        self,
        event_id: UUID,
        app_user_id: str,
        payload: dict[str, Any],
        error_message: str,
        attempt_count: int = 1,
        now: datetime | None = None,
    ) -> RetryDecision:
        """Queue (or re-queue) a failed event. The caller owns the commit."""
        now = now or _now_utc()
        error_message = error_message[:_ERROR_MAX_LEN]

        if attempt_count > MAX_ATTEMPTS:
            self._dead_letter(event_id, app_user_id, payload, error_message, attempt_count, now)
            return RetryDecision(attempt_count=attempt_count, dead_lettered=True)

        next_retry_at = now + backoff_delay(attempt_count)

        stmt = insert(RetryQueueEntry).values(
            webhook_event_id=event_id,
            app_user_id=app_user_id,
            event_payload=payload,
            error_message=error_message,
            attempt_count=attempt_count,
            next_retry_at=next_retry_at,
        )
        # attempt count only ever moves forward, and dead letters stay terminal
        stmt = stmt.on_conflict_do_update(
            index_elements=[RetryQueueEntry.webhook_event_id],
            set_={
                "attempt_count": stmt.excluded.attempt_count,
                "next_retry_at": stmt.excluded.next_retry_at,
                "error_message": stmt.excluded.error_message,
                "updated_at": now,
            },
            where=(RetryQueueEntry.attempt_count < stmt.excluded.attempt_count)
            & RetryQueueEntry.is_dead_lettered.is_(False),
        )
        self.db.execute(stmt)

        logger.warning(
            "webhook_retry_scheduled",
            event_id=str(event_id),
            app_user_id=app_user_id,
            attempt=attempt_count,
            next_retry_at=next_retry_at.isoformat(),
            error=error_message,
        )
        return RetryDecision(attempt_count=attempt_count, dead_lettered=False, next_retry_at=next_retry_at)

    def _dead_letter(
        self,
        event_id: UUID,
        app_user_id: str,
        payload: dict[str, Any],
        error_message: str,
        attempt_count: int,
        now: datetime,
    ) -> None:
        stmt = insert(RetryQueueEntry).values(
            webhook_event_id=event_id,
            app_user_id=app_user_id,
            event_payload=payload,
            error_message=error_message,
            attempt_count=MAX_ATTEMPTS,
            next_retry_at=now,
            is_dead_lettered=True,
            dead_lettered_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RetryQueueEntry.webhook_event_id],
            set_={
                "is_dead_lettered": True,
                "dead_lettered_at": now,
                "error_message": stmt.excluded.error_message,
                "updated_at": now,
            },
            where=RetryQueueEntry.is_dead_lettered.is_(False),
        )
        self.db.execute(stmt)

        logger.error(
            "webhook_dead_lettered",
            message="Webhook moved to dead-letter queue",
            event_id=str(event_id),
            app_user_id=app_user_id,
            attempts=attempt_count,
            error=error_message,
        )

    def claim_due(self, now: datetime | None = None, limit: int = 100) -> list[RetryQueueEntry]:
        """Lock due entries; concurrent sweepers skip each other's rows."""
        now = now or _now_utc()
        q = (
            select(RetryQueueEntry)
            .where(
                RetryQueueEntry.next_retry_at <= now,
                RetryQueueEntry.is_dead_lettered.is_(False),
                RetryQueueEntry.resolved_at.is_(None),
            )
            .order_by(RetryQueueEntry.next_retry_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(self.db.scalars(q).all())

    def mark_resolved(self, entry: RetryQueueEntry, now: datetime | None = None) -> None:
        entry.resolved_at = now or _now_utc()
        self.db.add(entry)

    def dead_letters(self, limit: int = 100) -> list[RetryQueueEntry]:
        q = (
            select(RetryQueueEntry)
            .where(RetryQueueEntry.is_dead_lettered.is_(True))
            .order_by(RetryQueueEntry.dead_lettered_at.desc())
            .limit(limit)
        )
        return list(self.db.scalars(q).all())
