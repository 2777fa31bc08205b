from fastapi import Request, status
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)

class AppError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content={"detail": self.detail})

class ValidationError(AppError):
    """Malformed request payload."""

class AuthError(AppError):
    """Missing or wrong webhook token."""

    status_code = status.HTTP_403_FORBIDDEN

class ProcessingError(AppError):
    """Classification or persistence failed after the event was ledgered.

    Absorbed by the ingestion path and handed to the retry queue, never
    rendered to a caller.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

class ProviderUnavailable(AppError):
    """No lookup provider could answer (none configured, rejected key, quota)."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        detail=exc.detail,
        status_code=exc.status_code,
    )
    return exc.to_response()
