"""Payout aggregation models.

PayoutBatch is computed per payee and never stored. PayoutHistoryRecord is
the append-only ledger row written once per aggregation attempt per payee.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import PayoutHistoryStatus, PayoutResultStatus

CENT = Decimal("0.01")


def quantize_money(amount: Decimal) -> Decimal:
    """Round a major-unit amount half-up to the nearest cent."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to integer cents (half-up)."""
    return int((quantize_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class PayoutBatch(BaseModel):
    """Eligible bookings of one payee grouped for a single transfer."""

    instructor_id: str
    destination: str = Field(..., description="Connected account receiving the transfer")
    commission_rate: Decimal
    booking_amounts: dict[str, Decimal] = Field(
        default_factory=dict, description="Base amount per booking ID"
    )

    @property
    def booking_ids(self) -> list[str]:
        return list(self.booking_amounts)

    @property
    def gross_amount(self) -> Decimal:
        return sum(self.booking_amounts.values(), Decimal("0"))

    @property
    def net_amount(self) -> Decimal:
        """Gross amount after platform commission, rounded to the cent."""
        return quantize_money(self.gross_amount * (Decimal("1") - self.commission_rate))

    @property
    def net_amount_cents(self) -> int:
        return to_minor_units(self.net_amount)

    def add(self, booking_id: str, base_amount: Decimal) -> None:
        self.booking_amounts[booking_id] = base_amount

    def restricted_to(self, booking_ids: list[str]) -> "PayoutBatch":
        """Copy of this batch keeping only the given bookings."""
        return self.model_copy(
            update={
                "booking_amounts": {
                    booking_id: self.booking_amounts[booking_id]
                    for booking_id in booking_ids
                    if booking_id in self.booking_amounts
                }
            }
        )


class PayoutHistoryRecord(BaseModel):
    """Ledger row for one payout attempt. Never mutated after insert."""

    payout_id: str = Field(..., description="Unique payout attempt ID")
    instructor_id: str
    amount: Decimal = Field(..., description="Gross amount before commission")
    net_amount: Decimal = Field(..., description="Amount transferred after commission")
    currency: str
    stripe_transfer_id: str | None = Field(
        default=None, description="Stripe transfer ID, null when the transfer failed"
    )
    status: PayoutHistoryStatus
    booking_ids: list[str] = Field(..., min_length=1)
    error_message: str | None = None
    payout_date: datetime

    def to_item(self) -> dict:
        """Serialize for DynamoDB (Decimals kept, enums and datetimes as strings)."""
        item: dict = {
            "payout_id": self.payout_id,
            "instructor_id": self.instructor_id,
            "amount": self.amount,
            "net_amount": self.net_amount,
            "currency": self.currency,
            "status": self.status.value,
            "booking_ids": list(self.booking_ids),
            "payout_date": self.payout_date.isoformat(),
        }
        if self.stripe_transfer_id:
            item["stripe_transfer_id"] = self.stripe_transfer_id
        if self.error_message:
            item["error_message"] = self.error_message
        return item


class PayoutResult(BaseModel):
    """Outcome of one payee's payout within a batch."""

    model_config = ConfigDict(populate_by_name=True)

    instructor_id: str = Field(..., serialization_alias="instructorId")
    status: PayoutResultStatus
    transfer_id: str | None = Field(default=None, serialization_alias="transferId")
    error: str | None = None


class BatchReport(BaseModel):
    """Summary returned by one aggregation batch."""

    message: str
    results: list[PayoutResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[PayoutResult]:
        return [r for r in self.results if r.status == PayoutResultStatus.FAILED]
