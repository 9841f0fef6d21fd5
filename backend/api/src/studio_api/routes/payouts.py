"""Payout trigger endpoint.

Runs one aggregation batch synchronously. The same batch also runs from the
scheduled Lambda (studio_api.scheduled).
"""

import hmac

from fastapi import APIRouter, Depends, Header

from studio_api.dependencies import get_config, get_payout_aggregator
from studio_api.models.payouts import PayoutTriggerResponse
from studio_shared.config import SettlementConfig
from studio_shared.models import ErrorCode, ErrorResponse, SettlementError
from studio_shared.services.payout_service import PayoutAggregator
from studio_shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["payouts"])


def _check_trigger_token(authorization: str | None, expected: str | None) -> None:
    if expected is None:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning("Rejected payout trigger without a valid token")
        raise SettlementError(ErrorCode.PAYOUT_TRIGGER_UNAUTHORIZED)


@router.post(
    "/payouts",
    summary="Run a payout batch",
    description="""
Pays every completed booking with payout_status 'pending' to its instructor or
studio, one Stripe transfer per payee, net of the platform commission.

Per-payee failures are reported in `results` and leave those bookings pending
for the next batch.
""",
    response_model=PayoutTriggerResponse,
    response_model_exclude_none=True,
    responses={
        401: {"description": "Missing or wrong trigger token", "model": ErrorResponse},
        409: {"description": "A batch is already running", "model": ErrorResponse},
        500: {"description": "Bookings could not be read", "model": ErrorResponse},
    },
)
def trigger_payouts(
    authorization: str | None = Header(default=None),
    config: SettlementConfig = Depends(get_config),
    aggregator: PayoutAggregator = Depends(get_payout_aggregator),
) -> PayoutTriggerResponse:
    """Run one payout batch and report per-payee results."""
    _check_trigger_token(authorization, config.payout_trigger_token)
    report = aggregator.run_payout_batch()
    return PayoutTriggerResponse.from_report(report)

