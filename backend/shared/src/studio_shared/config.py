"""Settlement configuration loaded from environment variables.

A single SettlementConfig is built at process start and passed into the
Stripe service, payout aggregator and webhook reconciler constructors.

Usage:
    config = get_settlement_config()
    aggregator = PayoutAggregator(db=get_dynamodb_service(), stripe=..., config=config)
"""

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SettlementConfig(BaseModel):
    """Runtime settings for payout settlement and webhook reconciliation."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev", description="Deployment environment (dev, prod)")
    commission_rate: Decimal = Field(
        default=Decimal("0.15"),
        description="Platform commission deducted from gross booking amounts",
    )
    currency: str = Field(default="usd", description="Transfer currency (ISO 4217, lowercase)")
    stripe_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single Stripe API call",
    )
    stripe_max_network_retries: int = Field(default=0, ge=0)
    payout_lock_ttl_seconds: int = Field(
        default=900,
        gt=0,
        description="Expiry of the single-flight payout batch lock",
    )
    claim_lease_seconds: int = Field(
        default=900,
        gt=0,
        description="Age after which a 'processing' booking claim is considered stale",
    )
    payout_trigger_token: str | None = Field(
        default=None,
        description="Shared secret required on POST /payouts when set",
    )
    app_url: str = Field(default="http://localhost:3000", description="Dashboard base URL")

    @field_validator("commission_rate")
    @classmethod
    def _check_commission_rate(cls, value: Decimal) -> Decimal:
        if value < 0 or value >= 1:
            raise ValueError("commission_rate must be in [0, 1)")
        return value

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return value.strip().lower()

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        """Build configuration from environment variables.

        Unset variables fall back to the field defaults.

        Returns:
            Validated SettlementConfig.
        """
        env_map = {
            "environment": "ENVIRONMENT",
            "commission_rate": "PLATFORM_COMMISSION_RATE",
            "currency": "PAYOUT_CURRENCY",
            "stripe_timeout_seconds": "STRIPE_TIMEOUT_SECONDS",
            "stripe_max_network_retries": "STRIPE_MAX_NETWORK_RETRIES",
            "payout_lock_ttl_seconds": "PAYOUT_LOCK_TTL_SECONDS",
            "claim_lease_seconds": "PAYOUT_CLAIM_LEASE_SECONDS",
            "payout_trigger_token": "PAYOUT_TRIGGER_TOKEN",
            "app_url": "APP_URL",
        }
        values = {
            field: os.environ[var]
            for field, var in env_map.items()
            if os.environ.get(var)
        }
        return cls.model_validate(values)


@lru_cache(maxsize=1)
def get_settlement_config() -> SettlementConfig:
    """Get the process-wide settlement configuration.

    Returns:
        SettlementConfig built from the environment on first call.
    """
    return SettlementConfig.from_env()
