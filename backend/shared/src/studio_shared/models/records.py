"""Persisted audit records written by the webhook reconciler.

PaymentEvent and TransferRecord rows are created once, on first delivery,
and never deleted.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class PaymentEvent(BaseModel):
    """A payment-side webhook notification, deduplicated by event_id."""

    event_id: str = Field(
        ...,
        description="Derived idempotency key, e.g. pi_succeeded_<payment_intent_id>",
        examples=["pi_succeeded_pi_3ABC123"],
    )
    event_type: str = Field(..., examples=["payment_intent.succeeded"])
    payment_intent_id: str | None = None
    charge_id: str | None = None
    amount: int | None = Field(default=None, description="Amount in minor units")
    currency: str | None = None
    status: str
    customer_id: str | None = None
    booking_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime

    def to_item(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class TransferRecord(BaseModel):
    """A Stripe transfer to a connected account, keyed by the provider's ID."""

    transfer_id: str = Field(..., examples=["tr_1ABC123"])
    destination_account: str | None = None
    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str
    description: str | None = None
    booking_id: str | None = None
    instructor_id: str | None = None
    payout_id: str | None = None
    created_at: datetime

    def to_item(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class StripeAccountStatus(BaseModel):
    """Local mirror of a payee's connected Stripe account."""

    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    requirements_pending: int = Field(default=0, ge=0)
    disabled_reason: str | None = None
    is_active: bool = True

    @property
    def onboarding_complete(self) -> bool:
        """Account can take payments once details are in and charges are on."""
        return self.details_submitted and self.charges_enabled


def minor_to_major(amount: int) -> Decimal:
    """Convert integer minor units (cents) to a major-unit Decimal."""
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))
