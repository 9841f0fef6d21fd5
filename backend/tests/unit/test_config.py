"""Unit tests for SettlementConfig."""

from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from studio_shared.config import SettlementConfig, get_settlement_config


class TestSettlementConfig:
    def test_defaults(self):
        config = SettlementConfig()

        assert config.commission_rate == Decimal("0.15")
        assert config.currency == "usd"
        assert config.stripe_timeout_seconds == 30.0
        assert config.payout_trigger_token is None

    def test_from_env(self):
        env = {
            "ENVIRONMENT": "prod",
            "PLATFORM_COMMISSION_RATE": "0.2",
            "PAYOUT_CURRENCY": "EUR",
            "STRIPE_TIMEOUT_SECONDS": "5",
            "PAYOUT_TRIGGER_TOKEN": "s3cret",
        }
        with patch.dict("os.environ", env):
            config = SettlementConfig.from_env()

        assert config.environment == "prod"
        assert config.commission_rate == Decimal("0.2")
        assert config.currency == "eur"
        assert config.stripe_timeout_seconds == 5.0
        assert config.payout_trigger_token == "s3cret"

    def test_empty_env_values_fall_back_to_defaults(self):
        with patch.dict("os.environ", {"PAYOUT_TRIGGER_TOKEN": "", "PAYOUT_CURRENCY": ""}):
            config = SettlementConfig.from_env()

        assert config.payout_trigger_token is None
        assert config.currency == "usd"

    @pytest.mark.parametrize("rate", ["-0.01", "1", "1.5"])
    def test_rejects_commission_outside_range(self, rate):
        with pytest.raises(ValidationError):
            SettlementConfig(commission_rate=Decimal(rate))

    def test_zero_commission_allowed(self):
        assert SettlementConfig(commission_rate=Decimal("0")).commission_rate == Decimal("0")

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            SettlementConfig(stripe_timeout_seconds=0)

    def test_frozen(self):
        config = SettlementConfig()

        with pytest.raises(ValidationError):
            config.commission_rate = Decimal("0.5")

    def test_get_settlement_config_is_cached(self):
        assert get_settlement_config() is get_settlement_config()
