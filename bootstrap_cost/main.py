"""
Main FastAPI application bootstrap.
Validates configuration and includes routers.
"""
import logging

from fastapi import FastAPI

from bootstrap_cost.core.config import config
from bootstrap_cost.api.estimate import router as estimate_router


logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    raise RuntimeError(f"Configuration error: {error}") from error

logger.info(
    "Pricing catalogs from %s, cache at %s (ttl=%ss)",
    config.AWS_PRICING_BASE_URL,
    config.PRICING_CACHE_DIR,
    config.PRICING_CACHE_TTL_SECONDS
)


app = FastAPI(
    title="Bootstrap Cost Estimation",
    description="Monthly cost estimates for CloudFormation templates and account bootstrap",
)

# Include routers
app.include_router(estimate_router)


@app.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}
