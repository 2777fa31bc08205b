from pydantic import BaseModel, ConfigDict, Field, field_validator

class BillingEventIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    # bounded by the ledger columns; the id also has to fit inside dedup_key
    id: str | None = Field(default=None, max_length=200)
    type: str = Field(min_length=1, max_length=100)
    app_user_id: str = Field(min_length=1, max_length=255)
    product_id: str | None = Field(default=None, max_length=255)
    entitlement_id: str | None = Field(default=None, max_length=255)
    original_transaction_id: str | None = Field(default=None, max_length=255)
    transaction_at_ms: int | None = None
    expiration_at_ms: int | None = None

    @field_validator("type", "app_user_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

class WebhookEnvelopeIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    authorization: str | None = None
    event: BillingEventIn

class WebhookAckOut(BaseModel):
    success: bool = True
