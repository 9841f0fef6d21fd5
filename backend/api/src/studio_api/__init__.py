"""FastAPI application for studio payout settlement."""
