"""Pytest configuration and fixtures for studio settlement backend tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all settlement tables)
- Settlement configuration and a mocked Stripe service
- Seed helpers for bookings and payees
- Stripe-Signature header generation for webhook payloads
"""

import datetime as dt
import hashlib
import hmac
import os
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-studio")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_settlement")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_settlement")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


# === Singleton Resets ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws need fresh boto3 clients created inside the
    mock context rather than ones cached by an earlier test.
    """
    from studio_shared.config import get_settlement_config
    from studio_shared.services.dynamodb import reset_dynamodb_service
    from studio_shared.services.ssm_service import get_ssm_service
    from studio_shared.services.stripe_service import get_stripe_service

    def _reset() -> None:
        reset_dynamodb_service()
        get_settlement_config.cache_clear()
        get_stripe_service.cache_clear()
        get_ssm_service.cache_clear()

    _reset()
    yield
    _reset()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _table(name: str, key: str, gsi_keys: tuple[str, ...] = ()) -> dict[str, Any]:
    definition: dict[str, Any] = {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }
    if gsi_keys:
        definition["AttributeDefinitions"].extend(
            {"AttributeName": gsi_key, "AttributeType": "S"} for gsi_key in gsi_keys
        )
        definition["GlobalSecondaryIndexes"] = [
            {
                "IndexName": f"{gsi_key}-index",
                "KeySchema": [{"AttributeName": gsi_key, "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
            for gsi_key in gsi_keys
        ]
    return definition


SETTLEMENT_TABLES = [
    _table("bookings", "booking_id", ("payout_status",)),
    _table("instructors", "instructor_id"),
    _table("payout-history", "payout_id"),
    _table("payout-locks", "lock_id"),
    _table("payment-events", "event_id"),
    _table("transfers", "transfer_id"),
    _table("stripe-accounts", "account_id"),
    _table("onboarding-submissions", "submission_id", ("stripe_account_id",)),
    _table("revenue-shares", "booking_id"),
    _table("payouts", "payout_id"),
]


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all settlement DynamoDB tables for testing."""
    for table in SETTLEMENT_TABLES:
        dynamodb_client.create_table(**table)


@pytest.fixture
def db(create_tables: None) -> Any:
    """DynamoDBService bound to the mocked tables."""
    from studio_shared.services.dynamodb import DynamoDBService

    return DynamoDBService()


@pytest.fixture
def table(create_tables: None) -> Callable[[str], Any]:
    """Return a boto3 Table for a short table name (for direct assertions)."""
    resource = boto3.resource("dynamodb", region_name="eu-west-1")
    return lambda name: resource.Table(f"{TABLE_PREFIX}-{name}")


# === Service Fixtures ===


@pytest.fixture
def settlement_config() -> Any:
    from studio_shared.config import SettlementConfig

    return SettlementConfig()


@pytest.fixture
def mock_stripe() -> MagicMock:
    """StripeService double. Transfers succeed with sequential IDs by default."""
    from studio_shared.services.stripe_service import StripeService

    stripe = MagicMock(spec=StripeService)
    counter = iter(range(1, 1000))

    def _create_transfer(**kwargs: Any) -> dict[str, Any]:
        return {
            "transfer_id": f"tr_test_{next(counter)}",
            "amount": kwargs["amount_cents"],
            "destination": kwargs["destination"],
        }

    stripe.create_transfer.side_effect = _create_transfer
    return stripe


# === Seed Helpers ===


def _past(minutes: int = 60) -> str:
    return (dt.datetime.now(dt.UTC) - dt.timedelta(minutes=minutes)).isoformat()


@pytest.fixture
def seed_booking(table: Callable[[str], Any]) -> Callable[..., dict[str, Any]]:
    """Insert a booking row. Defaults describe a completed, unpaid card booking."""

    def _seed(
        booking_id: str,
        instructor_id: str = "inst-1",
        amount: str | None = "100.00",
        **overrides: Any,
    ) -> dict[str, Any]:
        item: dict[str, Any] = {
            "booking_id": booking_id,
            "instructor_id": instructor_id,
            "payment_type": "card",
            "status": "completed",
            "payout_status": "pending",
            "created_at": _past(),
        }
        if amount is not None:
            item["amount"] = Decimal(amount)
        item.update(overrides)
        table("bookings").put_item(Item=item)
        return item

    return _seed


@pytest.fixture
def seed_instructor(table: Callable[[str], Any]) -> Callable[..., dict[str, Any]]:
    """Insert a payee row with an optional Stripe destination."""

    def _seed(instructor_id: str, stripe_account_id: str | None = "acct_test_1") -> dict[str, Any]:
        item: dict[str, Any] = {"instructor_id": instructor_id, "name": instructor_id}
        if stripe_account_id:
            item["stripe_account_id"] = stripe_account_id
        table("instructors").put_item(Item=item)
        return item

    return _seed


# === Webhook Helpers ===


@pytest.fixture
def sign_payload() -> Callable[..., str]:
    """Build a valid Stripe-Signature header for a payload."""

    def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        ts = timestamp if timestamp is not None else int(time.time())
        signed = f"{ts}.{payload.decode()}".encode()
        digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"

    return _sign


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    """Build a Stripe event envelope around a data object."""

    def _make(
        event_type: str,
        obj: dict[str, Any],
        event_id: str = "evt_test_1",
        account: str | None = None,
    ) -> dict[str, Any]:
        event: dict[str, Any] = {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "data": {"object": obj},
        }
        if account:
            event["account"] = account
        return event

    return _make
