from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homeinv.auth.deps import get_current_subscriber
from homeinv.db import get_db
from homeinv.schemas.subscription import SubscriptionStatusOut
from homeinv.subscriptions.service import ReconciliationEngine

router = APIRouter(prefix="/subscription", tags=["subscription"])

@router.get("/me", response_model=SubscriptionStatusOut, response_model_exclude_none=True)
def get_subscription_status(
    subscriber_id: str = Depends(get_current_subscriber),
    db: Session = Depends(get_db),
) -> SubscriptionStatusOut:
    sub = ReconciliationEngine(db).get_status(subscriber_id)
    return SubscriptionStatusOut(
        status=sub.subscription_status or "free",
        plan=sub.subscription_plan,
        renew_date=sub.subscription_renew_date,
        created_at=sub.created_at,
    )
