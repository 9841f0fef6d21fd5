"""Tests for the Stripe Connect onboarding routes."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from studio_api.dependencies import get_stripe, reset_services
from studio_api.main import app
from studio_shared.models import ErrorCode
from studio_shared.services.stripe_service import StripeService, StripeServiceError


@pytest.fixture
def stripe() -> MagicMock:
    stripe = MagicMock(spec=StripeService)
    stripe.create_connect_account.return_value = "acct_new"
    stripe.create_account_link.return_value = "https://connect.stripe.com/setup/e/acct_new"
    stripe.retrieve_account.return_value = {
        "id": "acct_new",
        "charges_enabled": False,
        "payouts_enabled": False,
        "details_submitted": False,
        "requirements_pending": 3,
        "business_name": "Sunrise Yoga",
    }
    return stripe


@pytest.fixture
def client(stripe):
    app.dependency_overrides[get_stripe] = lambda: stripe
    yield TestClient(app)
    app.dependency_overrides.clear()
    reset_services()


class TestCreateConnectAccount:
    def test_returns_onboarding_link(self, client, stripe):
        response = client.post(
            "/api/stripe/connect",
            json={"businessName": "Sunrise Yoga", "businessEmail": "owner@sunrise.example"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "account_id": "acct_new",
            "onboarding_url": "https://connect.stripe.com/setup/e/acct_new",
        }
        stripe.create_connect_account.assert_called_once_with(
            business_name="Sunrise Yoga",
            business_email="owner@sunrise.example",
            country="US",
        )
        stripe.create_account_link.assert_called_once_with("acct_new")

    def test_missing_business_name_rejected(self, client, stripe):
        response = client.post("/api/stripe/connect", json={"businessEmail": "a@b.example"})

        assert response.status_code == 422
        stripe.create_connect_account.assert_not_called()

    def test_stripe_failure(self, client, stripe):
        stripe.create_connect_account.side_effect = StripeServiceError("Failed to create Stripe account")

        response = client.post(
            "/api/stripe/connect",
            json={"businessName": "Sunrise Yoga", "businessEmail": "owner@sunrise.example"},
        )

        assert response.status_code == 500
        assert response.json()["error_code"] == ErrorCode.STRIPE_API_ERROR.value


class TestGetConnectAccount:
    def test_returns_status(self, client):
        response = client.get("/api/stripe/connect", params={"account_id": "acct_new"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["account"]["requirements_pending"] == 3
        assert body["account"]["business_name"] == "Sunrise Yoga"

    def test_account_id_required(self, client, stripe):
        response = client.get("/api/stripe/connect")

        assert response.status_code == 400
        assert response.json()["error_code"] == ErrorCode.ACCOUNT_ID_REQUIRED.value
        stripe.retrieve_account.assert_not_called()

    def test_stripe_failure(self, client, stripe):
        stripe.retrieve_account.side_effect = StripeServiceError("No such account")

        response = client.get("/api/stripe/connect", params={"account_id": "acct_x"})

        assert response.status_code == 500
