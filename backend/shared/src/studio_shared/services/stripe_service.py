"""Stripe service for Connect transfers, accounts and webhook verification.

Provides integration with Stripe using the v8+ StripeClient pattern.
Credentials come from SSM Parameter Store (or env var overrides).
"""

import json
import logging
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from ..config import SettlementConfig, get_settlement_config
from .ssm_service import (
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    SSMService,
    SSMServiceError,
    get_ssm_service,
)

logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


class WebhookSignatureError(StripeServiceError):
    """Raised when a webhook payload fails signature verification."""


class StripeService:
    """Service for Stripe Connect operations.

    Handles:
    - Transfers to connected accounts (payouts)
    - Webhook signature validation
    - Connected account creation, onboarding links and status retrieval

    Every API call is bounded by ``config.stripe_timeout_seconds``; a timeout
    surfaces as StripeServiceError like any other API failure.
    """

    def __init__(
        self,
        config: SettlementConfig | None = None,
        ssm: SSMService | None = None,
    ) -> None:
        """Initialize Stripe service.

        Args:
            config: Settlement configuration. Defaults to the process config.
            ssm: Secret source. Defaults to the shared SSMService.
        """
        self._config = config or get_settlement_config()
        self._ssm = ssm or get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeServiceError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_secret(self._config.environment, STRIPE_SECRET_KEY)
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(
                secret_key,
                http_client=stripe.RequestsClient(timeout=self._config.stripe_timeout_seconds),
                max_network_retries=self._config.stripe_max_network_retries,
            )
            logger.info("Stripe client initialized for environment: %s", self._config.environment)
        return self._client

    def _get_webhook_secret(self) -> str:
        """Get the webhook signing secret.

        Raises:
            StripeServiceError: If secret cannot be retrieved.
        """
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_secret(
                    self._config.environment, STRIPE_WEBHOOK_SECRET
                )
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed event envelope as plain JSON data.

        Raises:
            WebhookSignatureError: If the signature is invalid or the body is not JSON.
            StripeServiceError: If the webhook secret cannot be resolved.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise WebhookSignatureError("Invalid webhook signature") from e
        except ValueError as e:
            logger.warning("Webhook payload is not valid JSON: %s", str(e))
            raise WebhookSignatureError("Invalid webhook payload") from e

        envelope: dict[str, Any] = json.loads(payload)
        logger.info("Webhook signature verified for event: %s", envelope.get("id"))
        return envelope

    def create_transfer(
        self,
        *,
        amount_cents: int,
        currency: str,
        destination: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> dict[str, Any]:
        """Create a transfer to a connected account.

        Args:
            amount_cents: Amount in minor units.
            currency: ISO currency code.
            destination: Connected account ID (acct_xxx).
            metadata: Audit metadata stored on the transfer.
            idempotency_key: Key that collapses retries of the same payout.

        Returns:
            Dict with transfer details:
                - transfer_id: Stripe transfer ID
                - amount: Transferred amount in minor units
                - destination: Receiving account

        Raises:
            StripeServiceError: If the transfer fails or times out.
        """
        client = self._get_client()

        try:
            logger.info(
                "Creating Stripe transfer of %d %s to %s",
                amount_cents,
                currency,
                destination,
            )
            transfer = client.transfers.create(
                params={
                    "amount": amount_cents,
                    "currency": currency,
                    "destination": destination,
                    "metadata": metadata,
                },
                options={"idempotency_key": idempotency_key},
            )
            logger.info("Transfer created: %s to %s", transfer.id, destination)

            return {
                "transfer_id": transfer.id,
                "amount": transfer.amount,
                "destination": destination,
            }

        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error(
                "Stripe transfer to %s failed: %s (code: %s)",
                destination,
                str(e),
                error_code,
            )
            raise StripeServiceError(
                f"Failed to create transfer: {e}",
                stripe_error_code=error_code,
            ) from e

    def retrieve_account(self, account_id: str) -> dict[str, Any]:
        """Retrieve the current status of a connected account.

        Args:
            account_id: Connected account ID (acct_xxx).

        Returns:
            Dict with id, charges_enabled, payouts_enabled, details_submitted,
            requirements_pending and business_name.

        Raises:
            StripeServiceError: If retrieval fails.
        """
        client = self._get_client()

        try:
            account = client.accounts.retrieve(account_id)
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error("Stripe account retrieval failed for %s: %s", account_id, str(e))
            raise StripeServiceError(
                f"Failed to retrieve account: {e}",
                stripe_error_code=error_code,
            ) from e

        requirements = getattr(account, "requirements", None)
        currently_due = getattr(requirements, "currently_due", None) or []
        business_profile = getattr(account, "business_profile", None)

        return {
            "id": account.id,
            "charges_enabled": bool(account.charges_enabled),
            "payouts_enabled": bool(account.payouts_enabled),
            "details_submitted": bool(account.details_submitted),
            "requirements_pending": len(currently_due),
            "business_name": getattr(business_profile, "name", None),
        }

    def create_connect_account(
        self,
        *,
        business_name: str,
        business_email: str,
        country: str = "US",
    ) -> str:
        """Create an Express connected account for a studio.

        Returns:
            The new account ID.

        Raises:
            StripeServiceError: If account creation fails.
        """
        client = self._get_client()

        try:
            account = client.accounts.create(
                params={
                    "type": "express",
                    "country": country,
                    "email": business_email,
                    "business_profile": {
                        "name": business_name,
                        "support_email": business_email,
                        "product_description": "Fitness and wellness class bookings",
                    },
                    "capabilities": {
                        "card_payments": {"requested": True},
                        "transfers": {"requested": True},
                    },
                }
            )
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error("Stripe Connect account creation failed: %s", str(e))
            raise StripeServiceError(
                f"Failed to create Stripe account: {e}",
                stripe_error_code=error_code,
            ) from e

        logger.info("Connected account created: %s", account.id)
        return str(account.id)

    def create_account_link(self, account_id: str) -> str:
        """Create an onboarding link for a connected account.

        Returns:
            URL the studio is redirected to for Stripe onboarding.

        Raises:
            StripeServiceError: If link creation fails.
        """
        client = self._get_client()
        app_url = self._config.app_url.rstrip("/")

        try:
            link = client.account_links.create(
                params={
                    "account": account_id,
                    "refresh_url": f"{app_url}/onboarding?refresh=stripe",
                    "return_url": f"{app_url}/onboarding?success=stripe_connected&account_id={account_id}",
                    "type": "account_onboarding",
                }
            )
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error("Stripe account link creation failed for %s: %s", account_id, str(e))
            raise StripeServiceError(
                f"Failed to create onboarding link: {e}",
                stripe_error_code=error_code,
            ) from e

        return str(link.url)


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance (singleton pattern)."""
    return StripeService()
