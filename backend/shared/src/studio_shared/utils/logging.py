"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- A formatter that prefixes every line with the correlation ID
- Helpers for payout and webhook logging

Usage:
    from studio_shared.utils.logging import get_logger, set_correlation_id

    # In middleware:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    log_payout_operation(logger, "transfer_created", instructor_id="inst-1")
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

NO_CORRELATION_ID = "no-correlation-id"


def generate_correlation_id() -> str:
    """Generate a new UUID-based correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter that prefixes each line with the correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        base = super().format(record)
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def _emit(logger: logging.Logger, message: str, context: dict[str, Any], result: str | None) -> None:
    if result in ("error", "failed"):
        logger.error(message, extra=context)
    elif result in ("duplicate", "ignored", "skipped"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_payout_operation(
    logger: logging.Logger,
    operation: str,
    *,
    instructor_id: str | None = None,
    payout_id: str | None = None,
    amount_cents: int | None = None,
    booking_count: int | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payout operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g. "transfer_created", "booking_skipped")
        instructor_id: Payee ID if available
        payout_id: Payout attempt ID if available
        amount_cents: Transfer amount in cents if relevant
        booking_count: Number of bookings covered
        result: Outcome (success, failed, skipped)
        error: Error message if the operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}
    if instructor_id:
        context["instructor_id"] = instructor_id
    if payout_id:
        context["payout_id"] = payout_id
    if amount_cents is not None:
        context["amount_cents"] = amount_cents
    if booking_count is not None:
        context["booking_count"] = booking_count
    if result:
        context["result"] = result
    if error:
        context["error"] = error
    context.update(extra)

    msg_parts = [f"Payout operation: {operation}"]
    for key, value in context.items():
        if key != "operation":
            msg_parts.append(f"{key}={value}")

    _emit(logger, " | ".join(msg_parts), context, "failed" if error else result)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str | None,
    *,
    booking_id: str | None = None,
    account_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook event with structured context.

    Args:
        logger: Logger instance
        event_type: Stripe event type (e.g. "payment_intent.succeeded")
        event_id: Stripe event ID or derived idempotency key
        booking_id: Associated booking ID if available
        account_id: Associated connected account if available
        result: Processing result (processed, duplicate, ignored, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"event_type": event_type, "event_id": event_id}
    if booking_id:
        context["booking_id"] = booking_id
    if account_id:
        context["account_id"] = account_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error
    context.update(extra)

    msg_parts = [f"Webhook event: {event_type} ({event_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if booking_id:
        msg_parts.append(f"booking={booking_id}")
    if account_id:
        msg_parts.append(f"account={account_id}")
    if error:
        msg_parts.append(f"error={error}")

    _emit(logger, " | ".join(msg_parts), context, result)
