"""Stripe webhook endpoint.

Receives signed payloads from Stripe, so it does not require a bearer token.
Verification and reconciliation happen in WebhookReconciler.
"""

from fastapi import APIRouter, Depends, Header, Request

from studio_api.dependencies import get_webhook_reconciler
from studio_api.models.webhooks import WebhookResponse
from studio_shared.models import ErrorCode, ErrorResponse, SettlementError
from studio_shared.services.webhook_handler import WebhookReconciler
from studio_shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks",
    summary="Receive Stripe webhook events",
    description="""
Handles account.updated, account.application.deauthorized,
payment_intent.succeeded, payment_intent.payment_failed, transfer.created,
payout.paid, payout.failed, charge.refunded and charge.dispute.created.
Other event types are acknowledged and ignored.

**Idempotent**: redelivered events return 200 with a 'duplicate' result.
""",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Invalid signature or missing header", "model": ErrorResponse},
        500: {"description": "Handler failed; Stripe will retry", "model": ErrorResponse},
    },
)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> WebhookResponse:
    """Verify and reconcile one Stripe event delivery."""
    payload = await request.body()

    try:
        outcome = reconciler.handle_webhook(payload, stripe_signature)
    except SettlementError:
        raise
    except Exception as e:
        logger.exception("Webhook handler failed: %s", e)
        raise SettlementError(
            ErrorCode.WEBHOOK_HANDLER_FAILED,
            details={"reason": type(e).__name__},
        ) from e

    return WebhookResponse.from_outcome(outcome)
