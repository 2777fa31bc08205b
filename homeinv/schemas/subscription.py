from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

class SubscriptionStatusOut(BaseModel):
    status: str
    plan: str | None = None
    renew_date: datetime | None = Field(default=None, serialization_alias="renewDate")
    created_at: datetime = Field(serialization_alias="createdAt")

class SubscriptionStatsOut(BaseModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    canceled: int = 0
    free: int = 0
    by_plan: dict[str, int] = Field(default_factory=dict, serialization_alias="byPlan")

class DeadLetterOut(BaseModel):
    id: UUID
    app_user_id: str = Field(serialization_alias="appUserId")
    event_payload: dict[str, Any] = Field(serialization_alias="eventPayload")
    error_message: str | None = Field(default=None, serialization_alias="errorMessage")
    attempt_count: int = Field(serialization_alias="attemptCount")
    dead_lettered_at: datetime | None = Field(default=None, serialization_alias="deadLetteredAt")

class DeadLettersOut(BaseModel):
    count: int
    dead_letters: list[DeadLetterOut] = Field(serialization_alias="deadLetters")
