"""Standard error codes for the settlement service.

Every error surfaced over HTTP carries one of these codes together with a
human-readable message and an operator recovery hint.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Settlement error codes."""

    # Payout trigger (ERR_PAYOUT_001-ERR_PAYOUT_003)
    PAYOUT_TRIGGER_UNAUTHORIZED = "ERR_PAYOUT_001"
    PAYOUT_BATCH_IN_PROGRESS = "ERR_PAYOUT_002"
    BOOKINGS_FETCH_FAILED = "ERR_PAYOUT_003"

    # Stripe / webhook (ERR_STRIPE_001-ERR_STRIPE_005)
    INVALID_WEBHOOK_SIGNATURE = "ERR_STRIPE_001"
    STRIPE_API_ERROR = "ERR_STRIPE_002"
    STRIPE_NOT_CONFIGURED = "ERR_STRIPE_003"
    WEBHOOK_HANDLER_FAILED = "ERR_STRIPE_004"
    ACCOUNT_ID_REQUIRED = "ERR_STRIPE_005"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.PAYOUT_TRIGGER_UNAUTHORIZED: "Payout trigger is not authorized",
    ErrorCode.PAYOUT_BATCH_IN_PROGRESS: "A payout batch is already running",
    ErrorCode.BOOKINGS_FETCH_FAILED: "Failed to fetch bookings for payout",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Webhook signature verification failed",
    ErrorCode.STRIPE_API_ERROR: "Stripe API error occurred",
    ErrorCode.STRIPE_NOT_CONFIGURED: "Stripe not configured",
    ErrorCode.WEBHOOK_HANDLER_FAILED: "Webhook handler failed",
    ErrorCode.ACCOUNT_ID_REQUIRED: "Account ID is required",
}

ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.PAYOUT_TRIGGER_UNAUTHORIZED: "Send the configured payout trigger token",
    ErrorCode.PAYOUT_BATCH_IN_PROGRESS: "Wait for the running batch to finish and re-run",
    ErrorCode.BOOKINGS_FETCH_FAILED: "Check database availability and re-run the batch",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.STRIPE_API_ERROR: "Try again or contact support",
    ErrorCode.STRIPE_NOT_CONFIGURED: "Set the Stripe secret key and webhook secret",
    ErrorCode.WEBHOOK_HANDLER_FAILED: "Stripe will retry delivery; inspect logs for the cause",
    ErrorCode.ACCOUNT_ID_REQUIRED: "Pass account_id as a query parameter",
}


class ErrorResponse(BaseModel):
    """Standard JSON error body returned by the API."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class SettlementError(Exception):
    """Exception raised by settlement operations.

    Converted to an ErrorResponse by the API exception handlers.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


class PayoutBatchInProgressError(Exception):
    """Raised when another payout batch holds the single-flight lock."""

    def __init__(self, lock_id: str, expires_at: int | None = None) -> None:
        super().__init__(f"Payout lock {lock_id} is held")
        self.lock_id = lock_id
        self.expires_at = expires_at


# Stripe error codes that indicate a retry may succeed
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable.

    Args:
        stripe_error_code: The Stripe error code.

    Returns:
        True if the error may be resolved by retrying.
    """
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
