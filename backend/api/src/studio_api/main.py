"""FastAPI application for studio payout settlement.

Provides REST endpoints for:
- Health check (/api/ping)
- Payout batch trigger (/api/payouts)
- Stripe webhook reconciliation (/api/webhooks)
- Stripe Connect onboarding (/api/stripe/connect)

The scheduled payout Lambda lives in studio_api.scheduled.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from studio_api.exceptions import register_exception_handlers
from studio_api.middleware.correlation import CorrelationIdMiddleware
from studio_api.routes import connect_router, payouts_router, webhooks_router
from studio_shared.config import get_settlement_config
from studio_shared.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Studio Settlement API",
    description="Payout aggregation and Stripe webhook reconciliation",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settlement_config().app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# This matches CloudFront routing: /api/* → API Gateway
app.include_router(payouts_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(connect_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Liveness check."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "studio-settlement-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "studio_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
