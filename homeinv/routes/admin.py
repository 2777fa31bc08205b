from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homeinv.auth.deps import require_admin
from homeinv.db import get_db
from homeinv.schemas.subscription import DeadLetterOut, DeadLettersOut, SubscriptionStatsOut
from homeinv.subscriptions.service import ReconciliationEngine

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

@router.get("/subscription-stats", response_model=SubscriptionStatsOut)
def subscription_stats(db: Session = Depends(get_db)) -> SubscriptionStatsOut:
    return SubscriptionStatsOut(**ReconciliationEngine(db).subscription_stats())

@router.get("/webhook-dead-letters", response_model=DeadLettersOut)
def webhook_dead_letters(db: Session = Depends(get_db)) -> DeadLettersOut:
    rows = ReconciliationEngine(db).dead_letters(limit=100)
    return DeadLettersOut(
        count=len(rows),
        dead_letters=[
            DeadLetterOut(
                id=r.id,
                app_user_id=r.app_user_id,
                event_payload=r.event_payload,
                error_message=r.error_message,
                attempt_count=r.attempt_count,
                dead_lettered_at=r.dead_lettered_at,
            )
            for r in rows
        ],
    )
