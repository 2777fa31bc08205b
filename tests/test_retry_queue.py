from datetime import datetime, timedelta, timezone
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from homeinv.models.retry_queue import RetryQueueEntry
from homeinv.models.subscriber import Subscriber
from homeinv.models.webhook_event import WebhookEvent
from homeinv.subscriptions.classifier import EventClassifier
from homeinv.subscriptions.retry import MAX_ATTEMPTS, RetryScheduler, backoff_delay
from homeinv.subscriptions.service import ReconciliationEngine

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

class FlakyClassifier(EventClassifier):
    """Fails the first ``failures`` classifications."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def classify(self, event):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("store unavailable")
        return super().classify(event)

def ledger_event(db: Session, app_user_id: str) -> WebhookEvent:
    ev = WebhookEvent(
        provider="revenuecat",
        dedup_key=f"rc_evt_{uuid.uuid4().hex}",
        app_user_id=app_user_id,
        event_type="RENEWAL",
    )
    db.add(ev)
    db.commit()
    return ev

def queue_entry(db: Session, event_id) -> RetryQueueEntry:
    db.expire_all()
    return db.scalar(select(RetryQueueEntry).where(RetryQueueEntry.webhook_event_id == event_id))

@pytest.mark.parametrize(
    "attempt,seconds",
    [(1, 30), (2, 120), (3, 300), (4, 900), (5, 1800), (6, 3600), (9, 3600)],
)
def test_backoff_schedule(attempt, seconds):
    assert backoff_delay(attempt) == timedelta(seconds=seconds)

def test_schedule_retry_advances_then_dead_letters(db_session: Session, subscriber_id):
    ev = ledger_event(db_session, subscriber_id)
    retries = RetryScheduler(db_session)
    payload = {"type": "RENEWAL", "app_user_id": subscriber_id}

    expected = [30, 120, 300, 900, 1800]
    for attempt, seconds in enumerate(expected, start=1):
        decision = retries.schedule_retry(ev.id, subscriber_id, payload, f"boom {attempt}", attempt, now=NOW)
        db_session.commit()

        assert decision.dead_lettered is False
        assert decision.next_retry_at == NOW + timedelta(seconds=seconds)

        entry = queue_entry(db_session, ev.id)
        assert entry.attempt_count == attempt
        assert entry.next_retry_at == NOW + timedelta(seconds=seconds)
        assert entry.error_message == f"boom {attempt}"
        assert entry.is_dead_lettered is False

    decision = retries.schedule_retry(ev.id, subscriber_id, payload, "boom 6", MAX_ATTEMPTS + 1, now=NOW)
    db_session.commit()
    assert decision.dead_lettered is True
    assert decision.next_retry_at is None

    entry = queue_entry(db_session, ev.id)
    assert entry.is_dead_lettered is True
    assert entry.dead_lettered_at == NOW
    assert entry.attempt_count == MAX_ATTEMPTS

    rows = db_session.scalars(select(RetryQueueEntry).where(RetryQueueEntry.webhook_event_id == ev.id)).all()
    assert len(rows) == 1

def test_attempt_count_never_moves_backwards(db_session: Session, subscriber_id):
    ev = ledger_event(db_session, subscriber_id)
    retries = RetryScheduler(db_session)

    retries.schedule_retry(ev.id, subscriber_id, {}, "first", 3, now=NOW)
    retries.schedule_retry(ev.id, subscriber_id, {}, "stale", 2, now=NOW)
    db_session.commit()

    entry = queue_entry(db_session, ev.id)
    assert entry.attempt_count == 3
    assert entry.error_message == "first"

def test_dead_letter_is_terminal(db_session: Session, subscriber_id):
    ev = ledger_event(db_session, subscriber_id)
    retries = RetryScheduler(db_session)

    retries.schedule_retry(ev.id, subscriber_id, {}, "gone", MAX_ATTEMPTS + 1, now=NOW)
    retries.schedule_retry(ev.id, subscriber_id, {}, "again", MAX_ATTEMPTS + 2, now=NOW)
    db_session.commit()

    entry = queue_entry(db_session, ev.id)
    assert entry.is_dead_lettered is True
    assert entry.error_message == "gone"
    assert retries.claim_due(now=NOW + timedelta(days=1)) == []

def test_processing_failure_is_absorbed_and_queued(client, db_session: Session, subscriber_id, monkeypatch):
    flaky = FlakyClassifier(failures=1)
    monkeypatch.setattr("homeinv.subscriptions.service.EventClassifier", lambda: flaky)

    r = client.post(
        "/webhooks/subscriptions",
        json={"event": {"id": "evt-flaky", "type": "INITIAL_PURCHASE", "app_user_id": subscriber_id}},
    )
    assert r.status_code == 200
    assert r.json() == {"success": True}

    assert db_session.get(Subscriber, subscriber_id) is None

    ev = db_session.scalar(select(WebhookEvent).where(WebhookEvent.dedup_key == "rc_evt_evt-flaky"))
    assert ev is not None
    entry = queue_entry(db_session, ev.id)
    assert entry is not None
    assert entry.attempt_count == 1
    assert "store unavailable" in entry.error_message
    assert entry.event_payload["app_user_id"] == subscriber_id

    # provider redelivery is a duplicate, not a second queue entry
    r = client.post(
        "/webhooks/subscriptions",
        json={"event": {"id": "evt-flaky", "type": "INITIAL_PURCHASE", "app_user_id": subscriber_id}},
    )
    assert r.status_code == 200
    assert flaky.calls == 1

def test_sweep_reapplies_due_entries(db_session: Session, subscriber_id):
    flaky = FlakyClassifier(failures=1)
    engine = ReconciliationEngine(db_session, classifier=flaky)

    result = engine.ingest({"event": {"id": f"evt-{subscriber_id}", "type": "RENEWAL", "app_user_id": subscriber_id}})
    assert result.queued_for_retry is True

    ev = db_session.scalar(select(WebhookEvent).where(WebhookEvent.dedup_key == result.dedup_key))
    entry = queue_entry(db_session, ev.id)

    # not due yet
    engine.process_due_retries(now=entry.next_retry_at - timedelta(seconds=1))
    entry = queue_entry(db_session, ev.id)
    assert entry.resolved_at is None
    assert db_session.get(Subscriber, subscriber_id) is None

    counts = engine.process_due_retries(now=entry.next_retry_at + timedelta(seconds=1))
    assert counts["succeeded"] >= 1

    entry = queue_entry(db_session, ev.id)
    assert entry.resolved_at is not None
    assert entry.is_dead_lettered is False

    sub = db_session.get(Subscriber, subscriber_id)
    assert sub is not None
    assert sub.subscription_status == "active"

def test_sweep_reschedules_then_dead_letters(db_session: Session, subscriber_id):
    flaky = FlakyClassifier(failures=100)
    engine = ReconciliationEngine(db_session, classifier=flaky)

    result = engine.ingest({"event": {"id": f"evt-{subscriber_id}", "type": "RENEWAL", "app_user_id": subscriber_id}})
    ev = db_session.scalar(select(WebhookEvent).where(WebhookEvent.dedup_key == result.dedup_key))

    for expected_attempt in range(2, MAX_ATTEMPTS + 1):
        entry = queue_entry(db_session, ev.id)
        engine.process_due_retries(now=entry.next_retry_at)
        entry = queue_entry(db_session, ev.id)
        assert entry.attempt_count == expected_attempt
        assert entry.is_dead_lettered is False

    entry = queue_entry(db_session, ev.id)
    engine.process_due_retries(now=entry.next_retry_at)

    entry = queue_entry(db_session, ev.id)
    assert entry.is_dead_lettered is True
    assert entry.attempt_count == MAX_ATTEMPTS
    assert db_session.get(Subscriber, subscriber_id) is None

def test_admin_dead_letters(client, db_session: Session, subscriber_id):
    ev = ledger_event(db_session, subscriber_id)
    RetryScheduler(db_session).schedule_retry(
        ev.id, subscriber_id, {"type": "RENEWAL", "app_user_id": subscriber_id}, "kaput", MAX_ATTEMPTS + 1
    )
    db_session.commit()

    r = client.get("/admin/webhook-dead-letters")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["count"] == len(body["deadLetters"])
    mine = [d for d in body["deadLetters"] if d["appUserId"] == subscriber_id]
    assert len(mine) == 1
    assert mine[0]["errorMessage"] == "kaput"
    assert mine[0]["attemptCount"] == MAX_ATTEMPTS
    assert mine[0]["eventPayload"]["type"] == "RENEWAL"
    assert mine[0]["deadLetteredAt"] is not None

def test_commit_failure_after_apply_is_queued(db_session: Session, subscriber_id, monkeypatch):
    engine = ReconciliationEngine(db_session)
    payload = {"event": {"id": f"evt-commit-{subscriber_id}", "type": "RENEWAL", "app_user_id": subscriber_id}}

    real_commit = db_session.commit
    commits = []

    def flaky_commit():
        commits.append(1)
        # ledger insert commits first; the state commit after apply is second
        if len(commits) == 2:
            raise OperationalError("COMMIT", {}, Exception("connection reset"))
        real_commit()

    with monkeypatch.context() as m:
        m.setattr(db_session, "commit", flaky_commit)
        result = engine.ingest(payload)

    assert result.accepted is True
    assert result.queued_for_retry is True
    assert db_session.get(Subscriber, subscriber_id) is None

    ev = db_session.scalar(select(WebhookEvent).where(WebhookEvent.dedup_key == result.dedup_key))
    entry = queue_entry(db_session, ev.id)
    assert entry is not None
    assert entry.attempt_count == 1
    assert "OperationalError" in entry.error_message

    # redelivery is a duplicate, the sweep is what applies it
    assert engine.ingest(payload).duplicate is True
    engine.process_due_retries(now=entry.next_retry_at)

    entry = queue_entry(db_session, ev.id)
    assert entry.resolved_at is not None
    assert db_session.get(Subscriber, subscriber_id).subscription_status == "active"
