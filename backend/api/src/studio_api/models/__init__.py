"""API-specific request/response models.

Domain models (PayoutResult, WebhookOutcome, etc.) live in
studio_shared.models and are reused here where appropriate.

Modules:
- payouts: Payout trigger response
- webhooks: Webhook acknowledgment
- connect: Stripe Connect onboarding request/response models
"""

__all__: list[str] = []
