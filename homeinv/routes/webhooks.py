from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from homeinv.config import settings
from homeinv.db import get_db
from homeinv.ratelimit import rate_limit
from homeinv.schemas.webhooks import WebhookAckOut
from homeinv.subscriptions.service import ReconciliationEngine

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

@router.post("/subscriptions", response_model=WebhookAckOut)
async def subscription_webhook(
    request: Request,
    db: Session = Depends(get_db),
    authorization: str | None = Header(default=None),
    _: None = Depends(
        rate_limit(
            "webhooks:subscriptions",
            limit_per_window=settings.rate_limit_webhooks_per_min,
            window_seconds=60,
        )
    ),
) -> WebhookAckOut:
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8"))
    except ValueError:
        # counted as a validation failure by the engine
        payload = None

    engine = ReconciliationEngine(db)
    # 2xx once the event is ledgered; processing failures retry internally
    result = await run_in_threadpool(engine.ingest, payload, authorization)
    return WebhookAckOut(success=result.accepted)
