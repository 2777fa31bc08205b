from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from homeinv.models.failure_metric import FailureMetricWindow

logger = structlog.get_logger(__name__)

WINDOW = timedelta(minutes=5)
AUTH_FAILED = "webhook_auth_failed"
VALIDATION_FAILED = "webhook_validation_failed"

_THRESHOLDS = {AUTH_FAILED: 3}
_DEFAULT_THRESHOLD = 5

def threshold_for(metric_name: str) -> int:
    return _THRESHOLDS.get(metric_name, _DEFAULT_THRESHOLD)

def window_start(at: datetime) -> datetime:
    seconds = int(WINDOW.total_seconds())
    epoch = int(at.timestamp())
    return datetime.fromtimestamp(epoch - epoch % seconds, tz=timezone.utc)

def record_failure(db: Session, metric_name: str, now: datetime | None = None) -> bool:
    """Count one failure in the current 5 minute window.

    Returns True when the window is over its threshold; the alert itself is
    only logged. The caller owns the commit.
    """
    now = now or datetime.now(timezone.utc)
    start = window_start(now)

    stmt = insert(FailureMetricWindow).values(
        metric_name=metric_name,
        window_start_at=start,
        window_end_at=start + WINDOW,
        failure_count=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[FailureMetricWindow.metric_name, FailureMetricWindow.window_start_at],
        set_={"failure_count": FailureMetricWindow.failure_count + 1},
    ).returning(FailureMetricWindow.failure_count)

    count = int(db.scalar(stmt) or 0)
    threshold = threshold_for(metric_name)

    if count > threshold:
        logger.error(
            "threshold_exceeded",
            alert="THRESHOLD_EXCEEDED",
            metric=metric_name,
            count=count,
            threshold=threshold,
            window="5m",
            window_start_at=start.isoformat(),
        )
        return True
    return False
