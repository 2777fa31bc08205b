from fastapi import APIRouter
from fastapi.responses import JSONResponse

from homeinv.config import settings
from homeinv.db import db_ping
from homeinv.redis_client import redis_ping

router = APIRouter(tags=["health"])

@router.get("/health")
def health() -> dict:
    return {"status": "ok"}

@router.get("/ready")
def ready() -> JSONResponse:
    # postgres holds the ledger, queue and cache: without it nothing can be served
    database = db_ping()

    # redis only backs the rate limiter, which fails open
    limiter = redis_ping() if settings.rate_limit_enabled else None

    if not database:
        status = "unready"
    elif limiter is False:
        status = "degraded"
    else:
        status = "ok"

    return JSONResponse(
        status_code=503 if status == "unready" else 200,
        content={"status": status, "checks": {"database": database, "rate_limiter": limiter}},
    )
