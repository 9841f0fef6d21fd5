"""Scheduled payout Lambda.

Invoked by an EventBridge cron rule. Runs the same aggregation batch as
POST /api/payouts, without the HTTP layer.
"""

from typing import Any

from studio_api.dependencies import get_payout_aggregator
from studio_shared.models import PayoutBatchInProgressError
from studio_shared.utils.logging import (
    clear_correlation_id,
    configure_logging,
    get_logger,
    set_correlation_id,
)

configure_logging()
logger = get_logger(__name__)


def payout_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Run one payout batch.

    Args:
        event: EventBridge scheduled event
        context: Lambda context (aws_request_id is used as correlation ID)

    Returns:
        The batch report, with per-payee results keyed as in the HTTP response.
        A batch that finds the lock held returns ``{"skipped": true}``.

    Raises:
        SettlementError: If bookings cannot be read; the invocation fails.
    """
    set_correlation_id(getattr(context, "aws_request_id", None))
    logger.info("Scheduled payout invoked by %s", event.get("source", "unknown"))
    try:
        report = get_payout_aggregator().run_payout_batch()
    except PayoutBatchInProgressError as e:
        logger.warning("Scheduled payout skipped: %s", e)
        return {"skipped": True, "message": str(e)}
    finally:
        clear_correlation_id()

    return report.model_dump(mode="json", by_alias=True, exclude_none=True)
