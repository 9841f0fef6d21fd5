"""Stripe Connect onboarding endpoints.

Creates Express accounts for studios and reports their onboarding status.
Account status changes after onboarding arrive through account.updated
webhooks.
"""

from fastapi import APIRouter, Depends, Query

from studio_api.dependencies import get_stripe
from studio_api.models.connect import (
    ConnectAccountRequest,
    ConnectAccountResponse,
    ConnectAccountSnapshot,
    ConnectAccountStatusResponse,
)
from studio_shared.models import ErrorCode, ErrorResponse, SettlementError
from studio_shared.services.stripe_service import StripeService, StripeServiceError
from studio_shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/stripe", tags=["stripe-connect"])


@router.post(
    "/connect",
    summary="Create a connected account",
    response_model=ConnectAccountResponse,
    responses={500: {"description": "Stripe request failed", "model": ErrorResponse}},
)
def create_connect_account(
    body: ConnectAccountRequest,
    stripe: StripeService = Depends(get_stripe),
) -> ConnectAccountResponse:
    """Create an Express account and return its onboarding link."""
    try:
        account_id = stripe.create_connect_account(
            business_name=body.business_name,
            business_email=body.business_email,
            country=body.country.upper(),
        )
        onboarding_url = stripe.create_account_link(account_id)
    except StripeServiceError as e:
        raise SettlementError(
            ErrorCode.STRIPE_API_ERROR,
            details={"message": str(e)},
        ) from e

    logger.info("Connected account %s created for %s", account_id, body.business_name)
    return ConnectAccountResponse(account_id=account_id, onboarding_url=onboarding_url)


@router.get(
    "/connect",
    summary="Get connected account status",
    response_model=ConnectAccountStatusResponse,
    responses={
        400: {"description": "account_id missing", "model": ErrorResponse},
        500: {"description": "Stripe request failed", "model": ErrorResponse},
    },
)
def get_connect_account(
    account_id: str | None = Query(default=None),
    stripe: StripeService = Depends(get_stripe),
) -> ConnectAccountStatusResponse:
    """Retrieve the onboarding status of a connected account."""
    if not account_id:
        raise SettlementError(ErrorCode.ACCOUNT_ID_REQUIRED)

    try:
        account = stripe.retrieve_account(account_id)
    except StripeServiceError as e:
        raise SettlementError(
            ErrorCode.STRIPE_API_ERROR,
            details={"message": str(e)},
        ) from e

    return ConnectAccountStatusResponse(account=ConnectAccountSnapshot(**account))
