"""Booking and payee models as read by the payout aggregator."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from .enums import BookingStatus, PaymentType, PayoutStatus


class Booking(BaseModel):
    """A class booking eligible (or not) for payout.

    Amounts are in major currency units.
    """

    booking_id: str = Field(..., description="Unique booking ID")
    instructor_id: str | None = Field(
        default=None, description="Payee (instructor or studio) entitled to the funds"
    )
    amount: Decimal | None = Field(default=None, description="Amount charged")
    credit_value: Decimal | None = Field(
        default=None, description="Value of credits spent when paid with credits"
    )
    payment_type: PaymentType | None = Field(default=None)
    status: BookingStatus = Field(...)
    payout_status: PayoutStatus = Field(default=PayoutStatus.PENDING)
    created_at: str | None = Field(default=None, description="ISO-8601 creation timestamp")
    payout_id: str | None = Field(
        default=None, description="Payout that claimed this booking, if any"
    )
    payout_claimed_at: str | None = Field(default=None)
    payout_attempts: int = Field(
        default=0, description="Transfers that failed for this booking so far"
    )

    @property
    def base_amount(self) -> Decimal:
        """Amount the payee earns before commission."""
        if self.payment_type == PaymentType.CREDITS:
            return self.credit_value or Decimal("0")
        return self.amount or Decimal("0")

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Booking":
        """Build a Booking from a DynamoDB item, ignoring unknown attributes."""
        fields = {k: v for k, v in item.items() if k in cls.model_fields}
        return cls.model_validate(fields)


class Payee(BaseModel):
    """Instructor or studio that receives transfers."""

    instructor_id: str
    stripe_account_id: str | None = Field(
        default=None, description="Connected account used as transfer destination"
    )
