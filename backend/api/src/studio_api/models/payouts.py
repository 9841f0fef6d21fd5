"""API models for the payout trigger endpoint."""

from pydantic import BaseModel, ConfigDict, Field

from studio_shared.models import BatchReport, PayoutResultStatus


class PayoutResultItem(BaseModel):
    """Per-payee outcome as returned to the caller."""

    model_config = ConfigDict(populate_by_name=True)

    instructor_id: str = Field(..., alias="instructorId")
    status: PayoutResultStatus
    transfer_id: str | None = Field(default=None, alias="transferId")
    error: str | None = None


class PayoutTriggerResponse(BaseModel):
    """Response to POST /payouts.

    Per-payee failures are reported in ``results``; the request itself
    still succeeds.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "message": "Payout process completed",
                    "results": [
                        {"instructorId": "inst-1", "status": "success", "transferId": "tr_123"},
                        {"instructorId": "inst-2", "status": "failed", "error": "card_declined"},
                    ],
                }
            ]
        },
    )

    message: str
    results: list[PayoutResultItem] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: BatchReport) -> "PayoutTriggerResponse":
        return cls(
            message=report.message,
            results=[
                PayoutResultItem(
                    instructor_id=r.instructor_id,
                    status=r.status,
                    transfer_id=r.transfer_id,
                    error=r.error,
                )
                for r in report.results
            ],
        )
