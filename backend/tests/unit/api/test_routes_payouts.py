"""Tests for the payout trigger route and app-level behavior."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from studio_api.dependencies import get_config, get_payout_aggregator, reset_services
from studio_api.main import app
from studio_shared.config import SettlementConfig
from studio_shared.models import (
    BatchReport,
    ErrorCode,
    PayoutBatchInProgressError,
    PayoutResult,
    PayoutResultStatus,
    SettlementError,
)


@pytest.fixture
def aggregator() -> MagicMock:
    aggregator = MagicMock()
    aggregator.run_payout_batch.return_value = BatchReport(
        message="Payout process completed",
        results=[
            PayoutResult(instructor_id="inst-1", status=PayoutResultStatus.SUCCESS, transfer_id="tr_1"),
            PayoutResult(instructor_id="inst-2", status=PayoutResultStatus.FAILED, error="declined"),
        ],
    )
    return aggregator


@pytest.fixture
def client(aggregator):
    def _make(token: str | None = None) -> TestClient:
        app.dependency_overrides[get_payout_aggregator] = lambda: aggregator
        app.dependency_overrides[get_config] = lambda: SettlementConfig(payout_trigger_token=token)
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
    reset_services()


class TestTriggerPayouts:
    def test_reports_per_payee_results(self, client):
        response = client().post("/api/payouts")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Payout process completed",
            "results": [
                {"instructorId": "inst-1", "status": "success", "transferId": "tr_1"},
                {"instructorId": "inst-2", "status": "failed", "error": "declined"},
            ],
        }

    def test_no_bookings(self, client, aggregator):
        aggregator.run_payout_batch.return_value = BatchReport(message="No new bookings to payout")

        response = client().post("/api/payouts")

        assert response.status_code == 200
        assert response.json() == {"message": "No new bookings to payout", "results": []}

    def test_batch_in_progress_is_conflict(self, client, aggregator):
        aggregator.run_payout_batch.side_effect = PayoutBatchInProgressError("payout-batch", 1760000000)

        response = client().post("/api/payouts")

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == ErrorCode.PAYOUT_BATCH_IN_PROGRESS.value
        assert body["details"] == {"lock_id": "payout-batch", "expires_at": "1760000000"}

    def test_fetch_failure_is_server_error(self, client, aggregator):
        aggregator.run_payout_batch.side_effect = SettlementError(ErrorCode.BOOKINGS_FETCH_FAILED)

        response = client().post("/api/payouts")

        assert response.status_code == 500
        assert response.json()["message"] == "Failed to fetch bookings for payout"


class TestTriggerToken:
    def test_missing_token_rejected(self, client, aggregator):
        response = client(token="s3cret").post("/api/payouts")

        assert response.status_code == 401
        assert response.json()["error_code"] == ErrorCode.PAYOUT_TRIGGER_UNAUTHORIZED.value
        aggregator.run_payout_batch.assert_not_called()

    def test_wrong_token_rejected(self, client, aggregator):
        response = client(token="s3cret").post(
            "/api/payouts", headers={"Authorization": "Bearer nope"}
        )

        assert response.status_code == 401
        aggregator.run_payout_batch.assert_not_called()

    def test_correct_token_accepted(self, client, aggregator):
        response = client(token="s3cret").post(
            "/api/payouts", headers={"Authorization": "Bearer s3cret"}
        )

        assert response.status_code == 200
        aggregator.run_payout_batch.assert_called_once()


class TestAppBehavior:
    def test_ping(self, client):
        response = client().get("/api/ping")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_correlation_id_echoed(self, client):
        response = client().post("/api/payouts", headers={"X-Correlation-ID": "corr-123"})

        assert response.headers["X-Correlation-ID"] == "corr-123"

    def test_correlation_id_generated(self, client):
        response = client().get("/api/ping")

        assert response.headers["X-Correlation-ID"]
