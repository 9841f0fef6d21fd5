"""Pydantic models for studio payout settlement."""

from .booking import Booking, Payee
from .enums import (
    BookingStatus,
    PaymentType,
    PayoutHistoryStatus,
    PayoutResultStatus,
    PayoutStatus,
    ProcessingResult,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    STRIPE_RETRYABLE_ERRORS,
    ErrorCode,
    ErrorResponse,
    PayoutBatchInProgressError,
    SettlementError,
    is_stripe_error_retryable,
)
from .payout import (
    BatchReport,
    PayoutBatch,
    PayoutHistoryRecord,
    PayoutResult,
    quantize_money,
    to_minor_units,
)
from .records import PaymentEvent, StripeAccountStatus, TransferRecord, minor_to_major
from .stripe_webhook import (
    HANDLED_EVENT_TYPES,
    UnrecognizedEvent,
    WebhookEvent,
    WebhookOutcome,
    parse_webhook_event,
)

__all__ = [
    # Enums
    "BookingStatus",
    "PaymentType",
    "PayoutHistoryStatus",
    "PayoutResultStatus",
    "PayoutStatus",
    "ProcessingResult",
    # Bookings
    "Booking",
    "Payee",
    # Payouts
    "BatchReport",
    "PayoutBatch",
    "PayoutHistoryRecord",
    "PayoutResult",
    "quantize_money",
    "to_minor_units",
    # Records
    "PaymentEvent",
    "StripeAccountStatus",
    "TransferRecord",
    "minor_to_major",
    # Webhooks
    "HANDLED_EVENT_TYPES",
    "UnrecognizedEvent",
    "WebhookEvent",
    "WebhookOutcome",
    "parse_webhook_event",
    # Errors
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "STRIPE_RETRYABLE_ERRORS",
    "ErrorCode",
    "ErrorResponse",
    "PayoutBatchInProgressError",
    "SettlementError",
    "is_stripe_error_retryable",
]
