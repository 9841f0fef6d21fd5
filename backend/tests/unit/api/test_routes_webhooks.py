"""Tests for the Stripe webhook route.

Deliveries go through real signature verification and moto DynamoDB.
"""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from studio_api.dependencies import get_webhook_reconciler, reset_services
from studio_api.main import app
from studio_shared.config import SettlementConfig
from studio_shared.models import ErrorCode
from studio_shared.services.ssm_service import SSMService
from studio_shared.services.stripe_service import StripeService
from studio_shared.services.webhook_handler import WebhookReconciler


@pytest.fixture
def client(db):
    reconciler = WebhookReconciler(
        db=db, stripe=StripeService(config=SettlementConfig(), ssm=SSMService())
    )
    app.dependency_overrides[get_webhook_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()
    reset_services()


@pytest.fixture
def payment_event(make_event):
    return make_event(
        "payment_intent.succeeded",
        {
            "id": "pi_123",
            "amount": 2500,
            "currency": "usd",
            "payment_method_types": ["card"],
            "metadata": {"booking_id": "b1"},
        },
    )


def _post(client, payload: bytes, signature: str | None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/api/webhooks", content=payload, headers=headers)


class TestStripeWebhookRoute:
    def test_processes_signed_event(self, client, payment_event, sign_payload, seed_booking, table):
        seed_booking("b1", status="pending")
        payload = json.dumps(payment_event).encode()

        response = _post(client, payload, sign_payload(payload))

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "event_id": "evt_test_1",
            "event_type": "payment_intent.succeeded",
            "processing_result": "processed",
        }
        booking = table("bookings").get_item(Key={"booking_id": "b1"})["Item"]
        assert booking["status"] == "confirmed"

    def test_redelivery_acknowledged_as_duplicate(self, client, payment_event, sign_payload):
        payload = json.dumps(payment_event).encode()

        _post(client, payload, sign_payload(payload))
        response = _post(client, payload, sign_payload(payload))

        assert response.status_code == 200
        assert response.json()["processing_result"] == "duplicate"

    def test_invalid_signature_is_bad_request(self, client, payment_event, sign_payload, table):
        payload = json.dumps(payment_event).encode()

        response = _post(client, payload, sign_payload(payload, secret="whsec_wrong"))

        assert response.status_code == 400
        assert response.json()["error_code"] == ErrorCode.INVALID_WEBHOOK_SIGNATURE.value
        assert table("payment-events").scan()["Items"] == []

    def test_missing_signature_is_bad_request(self, client, payment_event):
        response = _post(client, json.dumps(payment_event).encode(), None)

        assert response.status_code == 400

    def test_unhandled_type_acknowledged(self, client, make_event, sign_payload):
        payload = json.dumps(make_event("customer.created", {"id": "cus_1"})).encode()

        response = _post(client, payload, sign_payload(payload))

        assert response.status_code == 200
        assert response.json()["processing_result"] == "ignored"

    def test_handler_failure_is_server_error(self, client, payment_event, sign_payload):
        failing = MagicMock(spec=WebhookReconciler)
        failing.handle_webhook.side_effect = RuntimeError("table missing")
        app.dependency_overrides[get_webhook_reconciler] = lambda: failing
        payload = json.dumps(payment_event).encode()

        response = _post(client, payload, sign_payload(payload))

        assert response.status_code == 500
        body = response.json()
        assert body["error_code"] == ErrorCode.WEBHOOK_HANDLER_FAILED.value
        assert body["details"] == {"reason": "RuntimeError"}

    def test_malformed_event_is_server_error(self, client, make_event, sign_payload):
        payload = json.dumps(make_event("payout.paid", {"object": "payout"})).encode()

        response = _post(client, payload, sign_payload(payload))

        assert response.status_code == 500
