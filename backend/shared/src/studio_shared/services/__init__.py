"""Backend services for studio payout settlement."""

from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .payout_service import PayoutAggregator, compute_payout_batches, transfer_idempotency_key
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import (
    StripeService,
    StripeServiceError,
    WebhookSignatureError,
    get_stripe_service,
)
from .webhook_handler import WebhookReconciler, best_effort_mirror

__all__ = [
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "PayoutAggregator",
    "compute_payout_batches",
    "transfer_idempotency_key",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "StripeService",
    "StripeServiceError",
    "WebhookSignatureError",
    "get_stripe_service",
    "WebhookReconciler",
    "best_effort_mirror",
]
