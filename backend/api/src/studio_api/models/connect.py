"""API models for Stripe Connect onboarding."""

from pydantic import BaseModel, ConfigDict, Field


class ConnectAccountRequest(BaseModel):
    """Request to create an Express connected account for a studio."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "businessName": "Sunrise Yoga",
                    "businessEmail": "owner@sunrise.example",
                    "country": "US",
                }
            ]
        },
    )

    business_name: str = Field(..., alias="businessName", min_length=1)
    business_email: str = Field(..., alias="businessEmail", min_length=3)
    country: str = Field(default="US", min_length=2, max_length=2)


class ConnectAccountResponse(BaseModel):
    """Created account and the onboarding link to redirect the studio to."""

    success: bool = True
    account_id: str
    onboarding_url: str


class ConnectAccountSnapshot(BaseModel):
    id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    requirements_pending: int = 0
    business_name: str | None = None


class ConnectAccountStatusResponse(BaseModel):
    """Current status of a connected account."""

    success: bool = True
    account: ConnectAccountSnapshot
