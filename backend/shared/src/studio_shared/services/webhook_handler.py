"""Webhook reconciler for Stripe events.

Applies idempotent state transitions to payment, transfer, payout, booking
and connected-account records. Kept separate from HTTP routing so it can
be unit tested without a request cycle.

Idempotency is enforced by conditional puts on the event key
(``attribute_not_exists``), never by check-then-insert.
"""

import datetime as dt
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError

from ..models import (
    BookingStatus,
    ErrorCode,
    PaymentEvent,
    ProcessingResult,
    SettlementError,
    StripeAccountStatus,
    TransferRecord,
    WebhookOutcome,
    minor_to_major,
    parse_webhook_event,
)
from ..models.stripe_webhook import (
    AccountDeauthorizedEvent,
    AccountUpdatedEvent,
    ChargeRefundedEvent,
    DisputeCreatedEvent,
    PaymentFailedEvent,
    PaymentSucceededEvent,
    PayoutFailedEvent,
    PayoutPaidEvent,
    TransferCreatedEvent,
    WebhookEvent,
)
from ..utils.logging import get_logger, log_webhook_event
from .stripe_service import StripeServiceError, WebhookSignatureError

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .stripe_service import StripeService

logger = get_logger(__name__)


@contextmanager
def best_effort_mirror(description: str) -> Iterator[None]:
    """Non-critical mirror update; eventual consistency accepted.

    Storage failures inside the block are logged as warnings and do not
    fail the webhook acknowledgment. The primary write has already
    succeeded by the time a mirror runs.
    """
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        logger.warning("Mirror update failed (%s): %s", description, e)


def _from_epoch(timestamp: int | None) -> dt.datetime:
    if timestamp is None:
        return dt.datetime.now(dt.UTC)
    return dt.datetime.fromtimestamp(timestamp, tz=dt.UTC)


class WebhookReconciler:
    """Verifies and reconciles Stripe webhook deliveries."""

    PAYMENT_EVENTS_TABLE = "payment-events"
    TRANSFERS_TABLE = "transfers"
    BOOKINGS_TABLE = "bookings"
    STRIPE_ACCOUNTS_TABLE = "stripe-accounts"
    ONBOARDING_TABLE = "onboarding-submissions"
    ONBOARDING_ACCOUNT_INDEX = "stripe_account_id-index"
    REVENUE_SHARES_TABLE = "revenue-shares"
    PAYOUTS_TABLE = "payouts"

    def __init__(self, db: "DynamoDBService", stripe: "StripeService") -> None:
        """Initialize webhook reconciler.

        Args:
            db: DynamoDB service instance
            stripe: Stripe service used for signature verification
        """
        self._db = db
        self._stripe = stripe
        self._handlers: dict[type, Callable[[Any], ProcessingResult]] = {
            AccountUpdatedEvent: self.process_account_updated,
            AccountDeauthorizedEvent: self.process_account_deauthorized,
            PaymentSucceededEvent: self.process_payment_succeeded,
            PaymentFailedEvent: self.process_payment_failed,
            TransferCreatedEvent: self.process_transfer_created,
            PayoutPaidEvent: self.process_payout_paid,
            PayoutFailedEvent: self.process_payout_failed,
            ChargeRefundedEvent: self.process_charge_refunded,
            DisputeCreatedEvent: self.process_dispute_created,
        }

    def _now(self) -> str:
        return dt.datetime.now(dt.UTC).isoformat()

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> WebhookOutcome:
        """Verify, parse and reconcile one webhook delivery.

        Args:
            raw_body: Unparsed request body bytes
            signature: Stripe-Signature header value

        Returns:
            WebhookOutcome describing how the event was applied

        Raises:
            SettlementError: INVALID_WEBHOOK_SIGNATURE for unverifiable payloads,
                STRIPE_NOT_CONFIGURED when the webhook secret is unavailable.
            Exception: Any handler failure propagates so the caller responds 500.
        """
        if not signature:
            logger.warning("Webhook request missing Stripe-Signature header")
            raise SettlementError(
                ErrorCode.INVALID_WEBHOOK_SIGNATURE,
                details={"message": "Missing Stripe-Signature header"},
            )

        try:
            payload = self._stripe.verify_webhook_signature(raw_body, signature)
        except WebhookSignatureError as e:
            raise SettlementError(
                ErrorCode.INVALID_WEBHOOK_SIGNATURE,
                details={"message": str(e)},
            ) from e
        except StripeServiceError as e:
            logger.error("Webhook secret unavailable: %s", e)
            raise SettlementError(ErrorCode.STRIPE_NOT_CONFIGURED) from e

        return self.dispatch(parse_webhook_event(payload))

    def dispatch(self, event: WebhookEvent) -> WebhookOutcome:
        """Route a parsed event to its handler.

        Unrecognized event types are acknowledged without changes.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            log_webhook_event(logger, event.type, event.id, result=ProcessingResult.IGNORED.value)
            return WebhookOutcome(
                event_id=event.id,
                event_type=event.type,
                processing_result=ProcessingResult.IGNORED,
            )

        result = handler(event)
        log_webhook_event(logger, event.type, event.id, result=result.value)
        return WebhookOutcome(event_id=event.id, event_type=event.type, processing_result=result)

    # Connected accounts

    def process_account_updated(self, event: AccountUpdatedEvent) -> ProcessingResult:
        """Upsert the account status mirror and propagate onboarding completion."""
        account = event.data.object
        requirements = account.requirements
        status = StripeAccountStatus(
            account_id=account.id,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            details_submitted=account.details_submitted,
            requirements_pending=len(requirements.currently_due) if requirements else 0,
            disabled_reason=requirements.disabled_reason if requirements else None,
            is_active=True,
        )

        self._db.update_item(
            self.STRIPE_ACCOUNTS_TABLE,
            {"account_id": status.account_id},
            "SET charges_enabled = :charges, payouts_enabled = :payouts, "
            "details_submitted = :details, requirements_pending = :pending, "
            "disabled_reason = :reason, is_active = :active, updated_at = :now",
            {
                ":charges": status.charges_enabled,
                ":payouts": status.payouts_enabled,
                ":details": status.details_submitted,
                ":pending": status.requirements_pending,
                ":reason": status.disabled_reason,
                ":active": status.is_active,
                ":now": self._now(),
            },
        )

        with best_effort_mirror(f"onboarding completion for {status.account_id}"):
            self._mirror_onboarding_complete(status.account_id, status.onboarding_complete)

        return ProcessingResult.PROCESSED

    def process_account_deauthorized(self, event: AccountDeauthorizedEvent) -> ProcessingResult:
        """Mark a disconnected account inactive."""
        account_id = event.account
        if not account_id:
            logger.warning("account.application.deauthorized without account id (%s)", event.id)
            return ProcessingResult.IGNORED

        self._db.update_item(
            self.STRIPE_ACCOUNTS_TABLE,
            {"account_id": account_id},
            "SET is_active = :active, updated_at = :now",
            {":active": False, ":now": self._now()},
        )

        with best_effort_mirror(f"onboarding reset for {account_id}"):
            self._mirror_onboarding_complete(account_id, False)

        return ProcessingResult.PROCESSED

    def _mirror_onboarding_complete(self, account_id: str, complete: bool) -> None:
        submissions = self._db.query_by_gsi(
            self.ONBOARDING_TABLE,
            self.ONBOARDING_ACCOUNT_INDEX,
            "stripe_account_id",
            account_id,
        )
        for submission in submissions:
            self._db.update_item(
                self.ONBOARDING_TABLE,
                {"submission_id": submission["submission_id"]},
                "SET stripe_onboarding_complete = :complete, updated_at = :now",
                {":complete": complete, ":now": self._now()},
            )

    # Payments

    def _insert_payment_event(self, record: PaymentEvent) -> bool:
        """Insert a payment event once. Returns False if the key already exists."""
        return self._db.put_item(
            self.PAYMENT_EVENTS_TABLE,
            record.to_item(),
            condition_expression="attribute_not_exists(event_id)",
        )

    def process_payment_succeeded(self, event: PaymentSucceededEvent) -> ProcessingResult:
        """Record the payment and confirm its booking.

        Only a pending booking, or one whose earlier payment failed, moves
        to confirmed. Redeliveries and late events for completed or
        cancelled bookings leave the booking untouched.
        """
        intent = event.data.object
        booking_id = intent.metadata.get("booking_id")

        inserted = self._insert_payment_event(
            PaymentEvent(
                event_id=f"pi_succeeded_{intent.id}",
                event_type=event.type,
                payment_intent_id=intent.id,
                amount=intent.amount,
                currency=intent.currency,
                status="succeeded",
                customer_id=intent.customer,
                booking_id=booking_id,
                created_at=_from_epoch(intent.created),
            )
        )

        if booking_id:
            payment_method = intent.payment_method_types[0] if intent.payment_method_types else "card"
            confirmed = self._db.update_item(
                self.BOOKINGS_TABLE,
                {"booking_id": booking_id},
                "SET #status = :confirmed, payment_method = :method, "
                "amount_paid = :paid, updated_at = :now",
                {
                    ":confirmed": BookingStatus.CONFIRMED.value,
                    ":pending": BookingStatus.PENDING.value,
                    ":failed": BookingStatus.PAYMENT_FAILED.value,
                    ":method": payment_method,
                    ":paid": minor_to_major(intent.amount),
                    ":now": self._now(),
                },
                {"#status": "status"},
                condition_expression=(
                    "attribute_exists(booking_id) AND #status IN (:pending, :failed)"
                ),
            )
            if confirmed is None:
                logger.info(
                    "Booking %s missing or no longer awaiting payment, payment %s not applied",
                    booking_id,
                    intent.id,
                )

        return ProcessingResult.PROCESSED if inserted else ProcessingResult.DUPLICATE

    def process_payment_failed(self, event: PaymentFailedEvent) -> ProcessingResult:
        """Record the failure and mark a pending booking payment_failed."""
        intent = event.data.object
        booking_id = intent.metadata.get("booking_id")
        error = intent.last_payment_error

        inserted = self._insert_payment_event(
            PaymentEvent(
                event_id=f"pi_failed_{intent.id}",
                event_type=event.type,
                payment_intent_id=intent.id,
                amount=intent.amount,
                currency=intent.currency,
                status="failed",
                customer_id=intent.customer,
                booking_id=booking_id,
                error_code=error.code if error else None,
                error_message=error.message if error else None,
                created_at=_from_epoch(intent.created),
            )
        )

        if booking_id:
            failed = self._db.update_item(
                self.BOOKINGS_TABLE,
                {"booking_id": booking_id},
                "SET #status = :failed, updated_at = :now",
                {
                    ":failed": BookingStatus.PAYMENT_FAILED.value,
                    ":pending": BookingStatus.PENDING.value,
                    ":now": self._now(),
                },
                {"#status": "status"},
                condition_expression="attribute_exists(booking_id) AND #status = :pending",
            )
            if failed is None:
                logger.info("Booking %s missing or no longer pending, failure not applied", booking_id)

        return ProcessingResult.PROCESSED if inserted else ProcessingResult.DUPLICATE

    def process_charge_refunded(self, event: ChargeRefundedEvent) -> ProcessingResult:
        charge = event.data.object
        inserted = self._insert_payment_event(
            PaymentEvent(
                event_id=f"ch_refunded_{charge.id}",
                event_type=event.type,
                payment_intent_id=charge.payment_intent,
                charge_id=charge.id,
                amount=charge.amount_refunded,
                currency=charge.currency,
                status="refunded",
                booking_id=charge.metadata.get("booking_id"),
                created_at=_from_epoch(event.created),
            )
        )
        return ProcessingResult.PROCESSED if inserted else ProcessingResult.DUPLICATE

    def process_dispute_created(self, event: DisputeCreatedEvent) -> ProcessingResult:
        dispute = event.data.object
        inserted = self._insert_payment_event(
            PaymentEvent(
                event_id=f"dp_created_{dispute.id}",
                event_type=event.type,
                payment_intent_id=dispute.payment_intent,
                charge_id=dispute.charge,
                amount=dispute.amount,
                currency=dispute.currency,
                status="disputed",
                error_message=dispute.reason,
                created_at=_from_epoch(event.created),
            )
        )
        return ProcessingResult.PROCESSED if inserted else ProcessingResult.DUPLICATE

    # Transfers and payouts

    def process_transfer_created(self, event: TransferCreatedEvent) -> ProcessingResult:
        """Record the transfer once and link it to its revenue share."""
        transfer = event.data.object
        booking_id = transfer.metadata.get("booking_id")

        inserted = self._db.put_item(
            self.TRANSFERS_TABLE,
            TransferRecord(
                transfer_id=transfer.id,
                destination_account=transfer.destination,
                amount=transfer.amount,
                currency=transfer.currency,
                description=transfer.description,
                booking_id=booking_id,
                instructor_id=transfer.metadata.get("instructor_id"),
                payout_id=transfer.metadata.get("payout_id"),
                created_at=_from_epoch(transfer.created),
            ).to_item(),
            condition_expression="attribute_not_exists(transfer_id)",
        )

        if booking_id:
            linked = self._db.update_item(
                self.REVENUE_SHARES_TABLE,
                {"booking_id": booking_id},
                "SET stripe_transfer_id = :transfer, transfer_status = :status, updated_at = :now",
                {":transfer": transfer.id, ":status": "created", ":now": self._now()},
                condition_expression="attribute_exists(booking_id)",
            )
            if linked is None:
                logger.warning("No revenue share for booking %s (transfer %s)", booking_id, transfer.id)

        return ProcessingResult.PROCESSED if inserted else ProcessingResult.DUPLICATE

    def process_payout_paid(self, event: PayoutPaidEvent) -> ProcessingResult:
        payout = event.data.object
        arrival = _from_epoch(payout.arrival_date).date().isoformat() if payout.arrival_date else None
        self._db.update_item(
            self.PAYOUTS_TABLE,
            {"payout_id": payout.id},
            "SET #status = :status, amount = :amount, arrival_date = :arrival, updated_at = :now",
            {
                ":status": "paid",
                ":amount": payout.amount,
                ":arrival": arrival,
                ":now": self._now(),
            },
            {"#status": "status"},
        )
        return ProcessingResult.PROCESSED

    def process_payout_failed(self, event: PayoutFailedEvent) -> ProcessingResult:
        payout = event.data.object
        self._db.update_item(
            self.PAYOUTS_TABLE,
            {"payout_id": payout.id},
            "SET #status = :status, amount = :amount, failure_code = :code, "
            "failure_message = :message, updated_at = :now",
            {
                ":status": "failed",
                ":amount": payout.amount,
                ":code": payout.failure_code,
                ":message": payout.failure_message,
                ":now": self._now(),
            },
            {"#status": "status"},
        )
        return ProcessingResult.PROCESSED
