"""Typed Stripe webhook events.

Verified webhook payloads are parsed into a discriminated union keyed by the
event ``type``. Types outside the handled set become UnrecognizedEvent, which
keeps the raw payload for logging.
"""

from typing import Annotated, Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .enums import ProcessingResult

ObjT = TypeVar("ObjT", bound=BaseModel)


class _StripeObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AccountRequirements(_StripeObject):
    currently_due: list[str] = Field(default_factory=list)
    disabled_reason: str | None = None


class StripeAccountObject(_StripeObject):
    """Connected account (``acct_...``)."""

    id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    requirements: AccountRequirements | None = None


class ApplicationObject(_StripeObject):
    """Platform application the account was disconnected from."""

    id: str | None = None
    name: str | None = None


class PaymentError(_StripeObject):
    code: str | None = None
    message: str | None = None


class PaymentIntentObject(_StripeObject):
    id: str
    amount: int = 0
    currency: str | None = None
    status: str | None = None
    customer: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    payment_method_types: list[str] = Field(default_factory=list)
    last_payment_error: PaymentError | None = None
    created: int | None = None


class TransferObject(_StripeObject):
    id: str
    amount: int = 0
    currency: str = "usd"
    destination: str | None = None
    description: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    created: int | None = None


class PayoutObject(_StripeObject):
    id: str
    amount: int = 0
    currency: str | None = None
    status: str | None = None
    arrival_date: int | None = None
    destination: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None


class ChargeObject(_StripeObject):
    id: str
    payment_intent: str | None = None
    amount: int = 0
    amount_refunded: int = 0
    currency: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class DisputeObject(_StripeObject):
    id: str
    charge: str | None = None
    payment_intent: str | None = None
    amount: int = 0
    currency: str | None = None
    reason: str | None = None


class EventData(BaseModel, Generic[ObjT]):
    object: ObjT


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(default=None, description="Stripe event ID (evt_xxx)")
    account: str | None = Field(
        default=None, description="Connected account the event originated from"
    )
    created: int | None = None


class AccountUpdatedEvent(_EventBase):
    type: Literal["account.updated"]
    data: EventData[StripeAccountObject]


class AccountDeauthorizedEvent(_EventBase):
    type: Literal["account.application.deauthorized"]
    data: EventData[ApplicationObject]


class PaymentSucceededEvent(_EventBase):
    type: Literal["payment_intent.succeeded"]
    data: EventData[PaymentIntentObject]


class PaymentFailedEvent(_EventBase):
    type: Literal["payment_intent.payment_failed"]
    data: EventData[PaymentIntentObject]


class TransferCreatedEvent(_EventBase):
    type: Literal["transfer.created"]
    data: EventData[TransferObject]


class PayoutPaidEvent(_EventBase):
    type: Literal["payout.paid"]
    data: EventData[PayoutObject]


class PayoutFailedEvent(_EventBase):
    type: Literal["payout.failed"]
    data: EventData[PayoutObject]


class ChargeRefundedEvent(_EventBase):
    type: Literal["charge.refunded"]
    data: EventData[ChargeObject]


class DisputeCreatedEvent(_EventBase):
    type: Literal["charge.dispute.created"]
    data: EventData[DisputeObject]


class UnrecognizedEvent(BaseModel):
    """Event type this service does not reconcile."""

    type: str
    id: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


KnownEvent = Annotated[
    Union[
        AccountUpdatedEvent,
        AccountDeauthorizedEvent,
        PaymentSucceededEvent,
        PaymentFailedEvent,
        TransferCreatedEvent,
        PayoutPaidEvent,
        PayoutFailedEvent,
        ChargeRefundedEvent,
        DisputeCreatedEvent,
    ],
    Field(discriminator="type"),
]

WebhookEvent = Union[
    AccountUpdatedEvent,
    AccountDeauthorizedEvent,
    PaymentSucceededEvent,
    PaymentFailedEvent,
    TransferCreatedEvent,
    PayoutPaidEvent,
    PayoutFailedEvent,
    ChargeRefundedEvent,
    DisputeCreatedEvent,
    UnrecognizedEvent,
]

HANDLED_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "account.updated",
        "account.application.deauthorized",
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "transfer.created",
        "payout.paid",
        "payout.failed",
        "charge.refunded",
        "charge.dispute.created",
    }
)

_known_event_adapter: TypeAdapter[Any] = TypeAdapter(KnownEvent)


def parse_webhook_event(payload: dict[str, Any]) -> WebhookEvent:
    """Parse a verified webhook payload into a typed event.

    Args:
        payload: Event envelope ``{"type": ..., "data": {"object": ...}}``

    Returns:
        The matching event model, or UnrecognizedEvent for other types.

    Raises:
        pydantic.ValidationError: If a handled event type has a malformed payload.
    """
    event_type = str(payload.get("type", ""))
    if event_type not in HANDLED_EVENT_TYPES:
        return UnrecognizedEvent(type=event_type, id=payload.get("id"), raw=payload)
    event: WebhookEvent = _known_event_adapter.validate_python(payload)
    return event


class WebhookOutcome(BaseModel):
    """Result of reconciling one verified webhook delivery."""

    event_id: str | None = None
    event_type: str
    processing_result: ProcessingResult
