from fastapi import FastAPI

from homeinv.config import settings
from homeinv.errors import AppError, app_error_handler
from homeinv.logging_config import configure_logging
from homeinv.routes.admin import router as admin_router
from homeinv.routes.health import router as health_router
from homeinv.routes.items import router as items_router
from homeinv.routes.subscriptions import router as subscriptions_router
from homeinv.routes.webhooks import router as webhooks_router

def create_app() -> FastAPI:
    configure_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(title="homeinv-core", version="0.1.0")
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(health_router)
    app.include_router(webhooks_router)
    app.include_router(subscriptions_router)
    app.include_router(admin_router)
    app.include_router(items_router)
    return app

app = create_app()
