"""FastAPI exception handlers for converting settlement errors to HTTP responses.

Domain errors (SettlementError) become JSON bodies with the ErrorResponse
shape. The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: Unverifiable webhooks, missing parameters
- 401 Unauthorized: Payout trigger without the configured token
- 409 Conflict: A payout batch is already running
- 500 Internal Server Error: Configuration, storage and provider failures

Usage:
    from studio_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from studio_shared.models.errors import (
    ErrorCode,
    ErrorResponse,
    PayoutBatchInProgressError,
    SettlementError,
)
from studio_shared.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Client errors
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.ACCOUNT_ID_REQUIRED: HTTP_400_BAD_REQUEST,
    ErrorCode.PAYOUT_TRIGGER_UNAUTHORIZED: HTTP_401_UNAUTHORIZED,
    # Concurrency
    ErrorCode.PAYOUT_BATCH_IN_PROGRESS: HTTP_409_CONFLICT,
    # Server-side failures
    ErrorCode.BOOKINGS_FETCH_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STRIPE_API_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STRIPE_NOT_CONFIGURED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.WEBHOOK_HANDLER_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 500."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_500_INTERNAL_SERVER_ERROR)


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    """Handle SettlementError exceptions and convert to JSON response."""
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=exc.to_error_response().model_dump(mode="json"),
    )


async def batch_in_progress_handler(
    request: Request, exc: PayoutBatchInProgressError
) -> JSONResponse:
    """Reject a payout trigger while another batch holds the lock."""
    details = {"lock_id": exc.lock_id}
    if exc.expires_at is not None:
        details["expires_at"] = str(exc.expires_at)
    body = ErrorResponse.from_code(ErrorCode.PAYOUT_BATCH_IN_PROGRESS, details)
    return JSONResponse(
        status_code=HTTP_409_CONFLICT,
        content=body.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(SettlementError, settlement_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PayoutBatchInProgressError, batch_in_progress_handler)  # type: ignore[arg-type]
