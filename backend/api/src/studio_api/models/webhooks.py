"""API models for the Stripe webhook endpoint."""

from pydantic import BaseModel

from studio_shared.models import ProcessingResult, WebhookOutcome


class WebhookResponse(BaseModel):
    """Acknowledgment returned to Stripe."""

    received: bool = True
    event_id: str | None = None
    event_type: str | None = None
    processing_result: ProcessingResult

    @classmethod
    def from_outcome(cls, outcome: WebhookOutcome) -> "WebhookResponse":
        return cls(
            event_id=outcome.event_id,
            event_type=outcome.event_type,
            processing_result=outcome.processing_result,
        )
