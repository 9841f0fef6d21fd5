"""Payout aggregation for instructors and studios.

Groups completed, unpaid bookings per payee, deducts the platform
commission and transfers the net amount to each payee's connected Stripe
account. Triggered on demand (POST /payouts) or by the scheduled Lambda.

Concurrency:
- A single-flight lock row (payout-locks table) keeps batches from overlapping.
- Each booking is claimed with a conditional update pending -> processing
  before its transfer, so no booking can be selected by two batches.
- The completed history row and the booking flips are written in one
  DynamoDB transaction. Claims orphaned by a crash are recovered at the
  start of the next batch from the history ledger.
"""

import datetime as dt
import hashlib
import uuid
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from ..config import SettlementConfig
from ..models import (
    BatchReport,
    Booking,
    BookingStatus,
    ErrorCode,
    Payee,
    PayoutBatch,
    PayoutBatchInProgressError,
    PayoutHistoryRecord,
    PayoutHistoryStatus,
    PayoutResult,
    PayoutResultStatus,
    PayoutStatus,
    SettlementError,
    is_stripe_error_retryable,
)
from ..utils.logging import get_logger, log_payout_operation
from .dynamodb import MAX_TRANSACTION_ITEMS
from .stripe_service import StripeServiceError

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .stripe_service import StripeService

logger = get_logger(__name__)

NO_BOOKINGS_MESSAGE = "No new bookings to payout"
COMPLETED_MESSAGE = "Payout process completed"


def compute_payout_batches(
    bookings: Iterable[Booking],
    payees: dict[str, Payee],
    commission_rate: Decimal,
) -> list[PayoutBatch]:
    """Group eligible bookings into one batch per payee.

    Bookings without a payee, without a transfer destination or with a
    non-positive base amount are skipped and logged, never failed.

    Args:
        bookings: Completed bookings pending payout
        payees: Payees by instructor_id
        commission_rate: Platform commission (e.g. Decimal("0.15"))

    Returns:
        Batches in first-seen payee order
    """
    batches: dict[str, PayoutBatch] = {}

    for booking in bookings:
        payee = payees.get(booking.instructor_id) if booking.instructor_id else None
        if payee is None or not payee.stripe_account_id:
            log_payout_operation(
                logger,
                "booking_skipped",
                instructor_id=booking.instructor_id,
                result="skipped",
                booking_id=booking.booking_id,
                reason="missing instructor or Stripe account",
            )
            continue

        base_amount = booking.base_amount
        if base_amount <= 0:
            log_payout_operation(
                logger,
                "booking_skipped",
                instructor_id=booking.instructor_id,
                result="skipped",
                booking_id=booking.booking_id,
                reason="non-positive booking amount",
            )
            continue

        batch = batches.get(payee.instructor_id)
        if batch is None:
            batch = PayoutBatch(
                instructor_id=payee.instructor_id,
                destination=payee.stripe_account_id,
                commission_rate=commission_rate,
            )
            batches[payee.instructor_id] = batch
        batch.add(booking.booking_id, base_amount)

    return list(batches.values())


def transfer_idempotency_key(
    instructor_id: str,
    booking_ids: Iterable[str],
    attempts: Mapping[str, int] | None = None,
) -> str:
    """Stripe idempotency key for paying a payee for a set of bookings.

    The key is stable across crashes and stale-claim recovery. Each booking's
    attempt counter goes up when a transfer fails, so a retry after a
    recorded failure gets a fresh key instead of Stripe's cached error.
    """
    attempts = attempts or {}
    parts = [f"{booking_id}:{attempts.get(booking_id, 0)}" for booking_id in sorted(booking_ids)]
    digest = hashlib.sha256(",".join(parts).encode()).hexdigest()[:32]
    return f"payout_{instructor_id}_{digest}"


class PayoutAggregator:
    """Runs payout batches over all eligible bookings.

    Usage:
        aggregator = PayoutAggregator(db=get_dynamodb_service(),
                                      stripe=get_stripe_service(),
                                      config=get_settlement_config())
        report = aggregator.run_payout_batch()
    """

    BOOKINGS_TABLE = "bookings"
    INSTRUCTORS_TABLE = "instructors"
    PAYOUT_HISTORY_TABLE = "payout-history"
    LOCKS_TABLE = "payout-locks"
    PAYOUT_STATUS_INDEX = "payout_status-index"
    LOCK_ID = "payout-batch"

    def __init__(
        self,
        db: "DynamoDBService",
        stripe: "StripeService",
        config: SettlementConfig,
    ) -> None:
        self.db = db
        self.stripe = stripe
        self.config = config

    def _now(self) -> dt.datetime:
        return dt.datetime.now(dt.UTC)

    def run_payout_batch(self) -> BatchReport:
        """Pay out every eligible booking, one transfer per payee.

        Returns:
            BatchReport with one result per payee that had claimable bookings.

        Raises:
            PayoutBatchInProgressError: If another batch holds the lock.
            SettlementError: BOOKINGS_FETCH_FAILED when storage cannot be read.
        """
        batch_id = uuid.uuid4().hex[:12].upper()
        self._acquire_lock(batch_id)
        try:
            self.recover_stale_claims()

            bookings = self.fetch_eligible_bookings()
            if not bookings:
                log_payout_operation(logger, "batch_empty", batch_id=batch_id)
                return BatchReport(message=NO_BOOKINGS_MESSAGE)

            payees = self.fetch_payees(
                {b.instructor_id for b in bookings if b.instructor_id}
            )
            batches = compute_payout_batches(bookings, payees, self.config.commission_rate)

            results: list[PayoutResult] = []
            for batch in batches:
                result = self._settle(batch)
                if result is not None:
                    results.append(result)

            log_payout_operation(
                logger,
                "batch_completed",
                batch_id=batch_id,
                payees=len(results),
                failures=sum(1 for r in results if r.status == PayoutResultStatus.FAILED),
            )
            return BatchReport(message=COMPLETED_MESSAGE, results=results)
        finally:
            self._release_lock(batch_id)

    # Selection

    def fetch_eligible_bookings(self) -> list[Booking]:
        """Completed bookings with payout_status pending, created up to now.

        Bookings without a created_at timestamp are included.

        Raises:
            SettlementError: BOOKINGS_FETCH_FAILED on storage errors.
        """
        try:
            items = self.db.query_by_gsi(
                self.BOOKINGS_TABLE,
                self.PAYOUT_STATUS_INDEX,
                "payout_status",
                PayoutStatus.PENDING.value,
                filter_expression=(
                    Attr("status").eq(BookingStatus.COMPLETED.value)
                    & (
                        Attr("created_at").not_exists()
                        | Attr("created_at").lte(self._now().isoformat())
                    )
                ),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Error fetching bookings for payout: %s", e)
            raise SettlementError(
                ErrorCode.BOOKINGS_FETCH_FAILED, details={"reason": str(e)}
            ) from e
        return [Booking.from_item(item) for item in items]

    def fetch_payees(self, instructor_ids: set[str]) -> dict[str, Payee]:
        """Load payees with their transfer destinations.

        Raises:
            SettlementError: BOOKINGS_FETCH_FAILED on storage errors.
        """
        try:
            items = self.db.batch_get(
                self.INSTRUCTORS_TABLE,
                [{"instructor_id": instructor_id} for instructor_id in sorted(instructor_ids)],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Error fetching instructors for payout: %s", e)
            raise SettlementError(
                ErrorCode.BOOKINGS_FETCH_FAILED, details={"reason": str(e)}
            ) from e
        return {
            item["instructor_id"]: Payee(
                instructor_id=item["instructor_id"],
                stripe_account_id=item.get("stripe_account_id"),
            )
            for item in items
        }

    # Settlement of one payee

    def _settle(self, batch: PayoutBatch) -> PayoutResult | None:
        payout_id = f"PO-{uuid.uuid4().hex[:12].upper()}"

        claimed = self._claim_bookings(batch.booking_ids, payout_id)
        if not claimed:
            log_payout_operation(
                logger,
                "payee_skipped",
                instructor_id=batch.instructor_id,
                result="skipped",
                reason="all bookings claimed by another batch",
            )
            return None
        batch = batch.restricted_to(list(claimed))

        try:
            transfer = self.stripe.create_transfer(
                amount_cents=batch.net_amount_cents,
                currency=self.config.currency,
                destination=batch.destination,
                metadata={
                    "instructor_id": batch.instructor_id,
                    "booking_ids": ",".join(batch.booking_ids),
                    "payout_id": payout_id,
                },
                idempotency_key=transfer_idempotency_key(
                    batch.instructor_id, batch.booking_ids, claimed
                ),
            )
        except Exception as e:
            error_message = str(e)
            log_payout_operation(
                logger,
                "transfer_failed",
                instructor_id=batch.instructor_id,
                payout_id=payout_id,
                amount_cents=batch.net_amount_cents,
                booking_count=len(batch.booking_ids),
                error=error_message,
                retryable=is_stripe_error_retryable(
                    e.stripe_error_code if isinstance(e, StripeServiceError) else None
                ),
            )
            self._record_failure(batch, payout_id, error_message)
            return PayoutResult(
                instructor_id=batch.instructor_id,
                status=PayoutResultStatus.FAILED,
                error=error_message,
            )

        transfer_id = transfer["transfer_id"]
        self._record_success(batch, payout_id, transfer_id)
        log_payout_operation(
            logger,
            "transfer_created",
            instructor_id=batch.instructor_id,
            payout_id=payout_id,
            amount_cents=batch.net_amount_cents,
            booking_count=len(batch.booking_ids),
            result="success",
            transfer_id=transfer_id,
        )
        return PayoutResult(
            instructor_id=batch.instructor_id,
            status=PayoutResultStatus.SUCCESS,
            transfer_id=transfer_id,
        )

    def _claim_bookings(self, booking_ids: list[str], payout_id: str) -> dict[str, int]:
        """Atomically move bookings pending -> processing for this payout.

        Returns:
            Attempt counters of the bookings this payout now owns, by booking ID.
        """
        claimed: dict[str, int] = {}
        now = self._now().isoformat()
        for booking_id in booking_ids:
            attrs = self.db.update_item(
                self.BOOKINGS_TABLE,
                {"booking_id": booking_id},
                "SET payout_status = :processing, payout_id = :payout_id, payout_claimed_at = :now",
                {
                    ":processing": PayoutStatus.PROCESSING.value,
                    ":pending": PayoutStatus.PENDING.value,
                    ":completed": BookingStatus.COMPLETED.value,
                    ":payout_id": payout_id,
                    ":now": now,
                },
                {"#status": "status"},
                condition_expression="payout_status = :pending AND #status = :completed",
            )
            if attrs is None:
                logger.warning(
                    "Booking %s was claimed by another batch, excluding from %s",
                    booking_id,
                    payout_id,
                )
                continue
            claimed[booking_id] = int(attrs.get("payout_attempts", 0))
        return claimed

    def _history_record(
        self,
        batch: PayoutBatch,
        payout_id: str,
        status: PayoutHistoryStatus,
        transfer_id: str | None = None,
        error_message: str | None = None,
    ) -> PayoutHistoryRecord:
        return PayoutHistoryRecord(
            payout_id=payout_id,
            instructor_id=batch.instructor_id,
            amount=batch.gross_amount,
            net_amount=batch.net_amount,
            currency=self.config.currency,
            stripe_transfer_id=transfer_id,
            status=status,
            booking_ids=batch.booking_ids,
            error_message=error_message,
            payout_date=self._now(),
        )

    def _mark_paid_update(self, booking_id: str, payout_id: str) -> dict[str, Any]:
        return self.db.build_update(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            "SET payout_status = :completed REMOVE payout_claimed_at",
            {
                ":completed": PayoutStatus.COMPLETED.value,
                ":processing": PayoutStatus.PROCESSING.value,
                ":payout_id": payout_id,
            },
            condition_expression="payout_status = :processing AND payout_id = :payout_id",
        )

    def _record_success(self, batch: PayoutBatch, payout_id: str, transfer_id: str) -> None:
        """Write the completed history row and mark the bookings paid.

        The first transaction carries the history row together with as many
        booking flips as fit; larger payouts continue in further transactions.
        """
        record = self._history_record(
            batch, payout_id, PayoutHistoryStatus.COMPLETED, transfer_id=transfer_id
        )
        writes = [
            self.db.build_put(
                self.PAYOUT_HISTORY_TABLE,
                record.to_item(),
                condition_expression="attribute_not_exists(payout_id)",
            )
        ]
        writes.extend(self._mark_paid_update(b, payout_id) for b in batch.booking_ids)

        for start in range(0, len(writes), MAX_TRANSACTION_ITEMS):
            chunk = writes[start:start + MAX_TRANSACTION_ITEMS]
            if not self.db.transact_write(chunk):
                # Transfer already executed; never leave the ledger without it
                logger.error(
                    "Payout %s transaction cancelled, recording transfer %s row by row",
                    payout_id,
                    transfer_id,
                )
                self._record_success_fallback(record, batch.booking_ids)
                return

    def _record_success_fallback(
        self, record: PayoutHistoryRecord, booking_ids: list[str]
    ) -> None:
        self.db.put_item(
            self.PAYOUT_HISTORY_TABLE,
            record.to_item(),
            condition_expression="attribute_not_exists(payout_id)",
        )
        for booking_id in booking_ids:
            updated = self.db.update_item(
                self.BOOKINGS_TABLE,
                {"booking_id": booking_id},
                "SET payout_status = :completed REMOVE payout_claimed_at",
                {":completed": PayoutStatus.COMPLETED.value, ":payout_id": record.payout_id},
                condition_expression="payout_id = :payout_id",
            )
            if updated is None:
                logger.error(
                    "Booking %s no longer owned by payout %s, left for reconciliation",
                    booking_id,
                    record.payout_id,
                )

    def _record_failure(self, batch: PayoutBatch, payout_id: str, error_message: str) -> None:
        """Write the failed history row and hand the bookings back to the pool."""
        record = self._history_record(
            batch, payout_id, PayoutHistoryStatus.FAILED, error_message=error_message
        )
        self.db.put_item(
            self.PAYOUT_HISTORY_TABLE,
            record.to_item(),
            condition_expression="attribute_not_exists(payout_id)",
        )
        for booking_id in batch.booking_ids:
            self._release_claim(booking_id, payout_id, failed_attempt=True)

    def _release_claim(
        self, booking_id: str, payout_id: str, failed_attempt: bool = False
    ) -> bool:
        """Hand a claimed booking back to pending.

        A failed transfer bumps the booking's attempt counter so the next
        transfer for it uses a new idempotency key.
        """
        update_expression = "SET payout_status = :pending REMOVE payout_id, payout_claimed_at"
        values: dict[str, Any] = {
            ":pending": PayoutStatus.PENDING.value,
            ":processing": PayoutStatus.PROCESSING.value,
            ":payout_id": payout_id,
        }
        if failed_attempt:
            update_expression += " ADD payout_attempts :one"
            values[":one"] = 1

        released = self.db.update_item(
            self.BOOKINGS_TABLE,
            {"booking_id": booking_id},
            update_expression,
            values,
            condition_expression="payout_status = :processing AND payout_id = :payout_id",
        )
        return released is not None

    # Recovery

    def recover_stale_claims(self) -> int:
        """Resolve bookings left in 'processing' by an interrupted batch.

        A booking whose payout is recorded as completed in the history ledger
        is marked paid; any other stale claim goes back to pending. A transfer
        that executed without a ledger row is collapsed on retry by the
        transfer idempotency key.

        Returns:
            Number of bookings resolved.

        Raises:
            SettlementError: BOOKINGS_FETCH_FAILED on storage errors.
        """
        cutoff = (
            self._now() - dt.timedelta(seconds=self.config.claim_lease_seconds)
        ).isoformat()
        try:
            stale = self.db.query_by_gsi(
                self.BOOKINGS_TABLE,
                self.PAYOUT_STATUS_INDEX,
                "payout_status",
                PayoutStatus.PROCESSING.value,
                filter_expression=Attr("payout_claimed_at").lt(cutoff),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Error fetching stale payout claims: %s", e)
            raise SettlementError(
                ErrorCode.BOOKINGS_FETCH_FAILED, details={"reason": str(e)}
            ) from e

        resolved = 0
        for item in stale:
            booking_id = item["booking_id"]
            payout_id = item.get("payout_id")
            history = (
                self.db.get_item(
                    self.PAYOUT_HISTORY_TABLE, {"payout_id": payout_id}, consistent_read=True
                )
                if payout_id
                else None
            )

            if history and history.get("status") == PayoutHistoryStatus.COMPLETED.value:
                done = self.db.update_item(
                    self.BOOKINGS_TABLE,
                    {"booking_id": booking_id},
                    "SET payout_status = :completed REMOVE payout_claimed_at",
                    {
                        ":completed": PayoutStatus.COMPLETED.value,
                        ":processing": PayoutStatus.PROCESSING.value,
                        ":payout_id": payout_id,
                    },
                    condition_expression="payout_status = :processing AND payout_id = :payout_id",
                )
                action = "claim_completed"
            else:
                done = self._release_claim(booking_id, payout_id) if payout_id else None
                action = "claim_released"

            if done:
                resolved += 1
                log_payout_operation(
                    logger,
                    action,
                    payout_id=payout_id,
                    booking_id=booking_id,
                )
        return resolved

    # Single-flight lock

    def _acquire_lock(self, batch_id: str) -> None:
        now = self._now()
        acquired = self.db.put_item(
            self.LOCKS_TABLE,
            {
                "lock_id": self.LOCK_ID,
                "lock_owner": batch_id,
                "acquired_at": now.isoformat(),
                "expires_at": int(now.timestamp()) + self.config.payout_lock_ttl_seconds,
            },
            condition_expression="attribute_not_exists(lock_id) OR expires_at < :now",
            expression_attribute_values={":now": int(now.timestamp())},
        )
        if not acquired:
            current = self.db.get_item(self.LOCKS_TABLE, {"lock_id": self.LOCK_ID}) or {}
            expires_at = current.get("expires_at")
            logger.warning(
                "Payout batch %s rejected: lock held by %s",
                batch_id,
                current.get("lock_owner"),
            )
            raise PayoutBatchInProgressError(
                self.LOCK_ID, int(expires_at) if expires_at is not None else None
            )

    def _release_lock(self, batch_id: str) -> None:
        released = self.db.delete_item(
            self.LOCKS_TABLE,
            {"lock_id": self.LOCK_ID},
            condition_expression="lock_owner = :owner",
            expression_attribute_values={":owner": batch_id},
        )
        if not released:
            logger.warning("Payout lock was taken over before batch %s finished", batch_id)
