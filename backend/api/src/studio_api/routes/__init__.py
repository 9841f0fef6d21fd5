"""API routes package.

Routers are organized by domain:

- payouts: Payout batch trigger
- webhooks: Stripe webhook reconciliation
- connect: Stripe Connect onboarding

All routers are registered in main.py with /api prefix.
"""

from studio_api.routes.connect import router as connect_router
from studio_api.routes.payouts import router as payouts_router
from studio_api.routes.webhooks import router as webhooks_router

__all__ = [
    "connect_router",
    "payouts_router",
    "webhooks_router",
]
