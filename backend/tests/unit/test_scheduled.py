"""Tests for the scheduled payout Lambda entrypoint."""

from unittest.mock import MagicMock, patch

import pytest

from studio_api import scheduled
from studio_shared.models import (
    BatchReport,
    ErrorCode,
    PayoutBatchInProgressError,
    PayoutResult,
    PayoutResultStatus,
    SettlementError,
)
from studio_shared.utils.logging import get_correlation_id


@pytest.fixture
def aggregator():
    aggregator = MagicMock()
    with patch.object(scheduled, "get_payout_aggregator", return_value=aggregator):
        yield aggregator


class TestPayoutHandler:
    def test_returns_report(self, aggregator):
        aggregator.run_payout_batch.return_value = BatchReport(
            message="Payout process completed",
            results=[
                PayoutResult(
                    instructor_id="inst-1", status=PayoutResultStatus.SUCCESS, transfer_id="tr_1"
                )
            ],
        )

        result = scheduled.payout_handler(
            {"source": "aws.events"}, MagicMock(aws_request_id="req-1")
        )

        assert result == {
            "message": "Payout process completed",
            "results": [{"instructorId": "inst-1", "status": "success", "transferId": "tr_1"}],
        }
        assert get_correlation_id() is None

    def test_lock_held_is_skipped(self, aggregator):
        aggregator.run_payout_batch.side_effect = PayoutBatchInProgressError("payout-batch")

        result = scheduled.payout_handler({}, None)

        assert result["skipped"] is True

    def test_fetch_failure_fails_invocation(self, aggregator):
        aggregator.run_payout_batch.side_effect = SettlementError(ErrorCode.BOOKINGS_FETCH_FAILED)

        with pytest.raises(SettlementError):
            scheduled.payout_handler({}, None)
