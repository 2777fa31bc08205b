from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    database_url: str = "postgresql+psycopg://app:app@db:5432/app"
    redis_url: str = "redis://redis:6379/0"

    log_level: str = "INFO"
    log_json: bool = True

    # caller auth (jwt sub = subscriber identity)
    jwt_secret: str = "dev-secret-change-me"
    jwt_issuer: str = "homeinv"
    jwt_audience: str = "homeinv"
    jwt_expires_minutes: int = 60

    admin_api_token: str | None = None

    # billing provider webhooks
    webhook_auth_token: str | None = None
    webhook_provider: str = "revenuecat"
    webhook_key_prefix: str = "rc"
    tracked_entitlement_id: str | None = None

    product_pro_monthly: str = "rc_pro_monthly"
    product_pro_annual: str = "rc_pro_annual"
    product_pro_lifetime: str = "rc_pro_lifetime"

    # rate limiting (redis)
    rate_limit_enabled: bool = True
    rate_limit_webhooks_per_min: int = 120
    rate_limit_barcode_per_min: int = 60

    # barcode lookup
    barcode_cache_ttl_days: int = 30
    provider_timeout_seconds: float = 20.0
    provider_max_attempts: int = 3
    provider_backoff_seconds: float = 0.75

    google_books_api_key: str | None = None
    upcitemdb_api_key: str | None = None
    openfoodfacts_user_agent: str = "homeinv/0.1 (inventory barcode lookup)"

settings = Settings()
