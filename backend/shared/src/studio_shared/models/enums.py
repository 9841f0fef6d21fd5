"""Enumeration types for settlement data models."""

from enum import Enum


class PaymentType(str, Enum):
    """How a booking was paid for."""

    CREDITS = "credits"
    CASH = "cash"
    CARD = "card"
    FREE = "free"


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"


class PayoutStatus(str, Enum):
    """Payout status of a booking.

    PROCESSING marks a booking claimed by a running payout batch.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class PayoutHistoryStatus(str, Enum):
    """Outcome recorded in the payout history ledger."""

    COMPLETED = "completed"
    FAILED = "failed"


class PayoutResultStatus(str, Enum):
    """Per-payee outcome reported by a payout batch."""

    SUCCESS = "success"
    FAILED = "failed"


class ProcessingResult(str, Enum):
    """Outcome of reconciling one webhook event."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
