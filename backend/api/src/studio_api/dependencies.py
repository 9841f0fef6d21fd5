"""FastAPI dependency injection providers for settlement services.

Factory functions are cached with @lru_cache so each service is created
once per process and shares the DynamoDB and Stripe singletons.

Usage in routes:
    from studio_api.dependencies import get_payout_aggregator

    @router.post("/payouts")
    def trigger_payouts(
        aggregator: PayoutAggregator = Depends(get_payout_aggregator),
    ):
        ...

Service Dependency Graph:
    SettlementConfig (get_settlement_config)
        └── StripeService (get_stripe_service)
    DynamoDBService (singleton via get_dynamodb_service)
        ├── PayoutAggregator (+ StripeService, SettlementConfig)
        └── WebhookReconciler (+ StripeService)

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from studio_shared.config import SettlementConfig, get_settlement_config
from studio_shared.services.dynamodb import get_dynamodb_service, reset_dynamodb_service
from studio_shared.services.payout_service import PayoutAggregator
from studio_shared.services.ssm_service import get_ssm_service
from studio_shared.services.stripe_service import StripeService, get_stripe_service
from studio_shared.services.webhook_handler import WebhookReconciler


def get_config() -> SettlementConfig:
    """Get the process settlement configuration."""
    return get_settlement_config()


def get_stripe() -> StripeService:
    """Get the shared StripeService instance."""
    return get_stripe_service()


@lru_cache
def get_payout_aggregator() -> PayoutAggregator:
    """Get cached PayoutAggregator instance.

    Returns:
        PayoutAggregator configured with DynamoDB, Stripe and settlement config.
    """
    return PayoutAggregator(
        db=get_dynamodb_service(),
        stripe=get_stripe_service(),
        config=get_settlement_config(),
    )


@lru_cache
def get_webhook_reconciler() -> WebhookReconciler:
    """Get cached WebhookReconciler instance."""
    return WebhookReconciler(db=get_dynamodb_service(), stripe=get_stripe_service())


def reset_services() -> None:
    """Clear all cached service instances (for testing)."""
    get_payout_aggregator.cache_clear()
    get_webhook_reconciler.cache_clear()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    get_settlement_config.cache_clear()
    reset_dynamodb_service()
