"""
API routes for template cost estimation and price cache maintenance.
"""
from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
import logging

from bootstrap_cost.core.config import config
from bootstrap_cost.domain.cost_models import UsageProfile
from bootstrap_cost.pricing.aws_pricing_client import AWSPricingClient
from bootstrap_cost.pricing.price_cache import FilePriceCache
from bootstrap_cost.services.template_analyzer import TemplateAnalyzer
from bootstrap_cost.services.template_parser import ParseError, UnsupportedFormatError


logger = logging.getLogger(__name__)
router = APIRouter()


class TemplateEstimateRequest(BaseModel):
    """Request model for estimating a CloudFormation template."""
    template: str = Field(..., description="Raw CloudFormation template (JSON or YAML)")
    usage_profile: str = Field(default="light", description="minimal, light, moderate or heavy")
    region: Optional[str] = Field(None, description="AWS region (default: config.DEFAULT_REGION)")


class BootstrapEstimateRequest(BaseModel):
    """Request model for estimating the bootstrap-only resource set."""
    usage_profile: str = Field(default="light", description="minimal, light, moderate or heavy")
    region: Optional[str] = Field(None, description="AWS region (default: config.DEFAULT_REGION)")
    account_count: int = Field(default=3, ge=1, description="Number of accounts to bootstrap")


_price_cache: Optional[FilePriceCache] = None


def get_price_cache() -> FilePriceCache:
    """Process-wide file cache, created on first use."""
    global _price_cache
    if _price_cache is None:
        _price_cache = FilePriceCache()
    return _price_cache


def get_template_analyzer(cache: FilePriceCache = Depends(get_price_cache)) -> TemplateAnalyzer:
    """Analyzer wired to the live Price List API and the shared cache."""
    return TemplateAnalyzer(pricer=AWSPricingClient(cache=cache))


def _resolve_profile(value: str) -> UsageProfile:
    try:
        return UsageProfile.from_value(value)
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error


@router.post("/api/estimate/template")
async def estimate_template(
    request: TemplateEstimateRequest,
    analyzer: TemplateAnalyzer = Depends(get_template_analyzer)
) -> Dict[str, Any]:
    """
    Estimate the monthly cost of a CloudFormation template.

    Args:
        request: Template text, usage profile and region
        analyzer: Template analyzer (injected)

    Returns:
        Serialized TemplateAnalysis

    Raises:
        HTTPException: 400 for an unknown profile, 415 for a non-CloudFormation
            template, 422 for a malformed or empty template
    """
    profile = _resolve_profile(request.usage_profile)
    region = request.region or config.DEFAULT_REGION

    try:
        analysis = await analyzer.analyze(request.template, profile, region)
    except UnsupportedFormatError as error:
        raise HTTPException(status_code=415, detail=str(error)) from error
    except ParseError as error:
        raise HTTPException(
            status_code=422,
            detail={"message": str(error), "path": error.path}
        ) from error

    if analysis.errors:
        logger.info(
            f"Template estimate for {region} is a lower bound "
            f"({len(analysis.errors)} resource(s) not fully priced)"
        )
    return analysis.to_dict()


@router.post("/api/estimate/bootstrap")
async def estimate_bootstrap(
    request: BootstrapEstimateRequest,
    analyzer: TemplateAnalyzer = Depends(get_template_analyzer)
) -> Dict[str, Any]:
    """
    Estimate the bootstrap infrastructure (billing alarms and notifications) alone.

    Raises:
        HTTPException: 400 for an unknown profile or an account count above
            config.MAX_ACCOUNT_COUNT
    """
    profile = _resolve_profile(request.usage_profile)
    region = request.region or config.DEFAULT_REGION

    if request.account_count > config.MAX_ACCOUNT_COUNT:
        raise HTTPException(
            status_code=400,
            detail=f"account_count must not exceed {config.MAX_ACCOUNT_COUNT}"
        )

    try:
        analysis = await analyzer.analyze_bootstrap_only(profile, region, request.account_count)
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error
    return analysis.to_dict()


@router.get("/api/pricing/cache/stats")
async def price_cache_stats(cache: FilePriceCache = Depends(get_price_cache)) -> Dict[str, Any]:
    """Entry count and on-disk size of the price cache."""
    entries, size_bytes = cache.get_stats()
    return {
        "entries": entries,
        "size_bytes": size_bytes,
        "cache_dir": str(cache.cache_dir),
        "ttl_seconds": cache.ttl_seconds,
    }


@router.delete("/api/pricing/cache")
async def clear_price_cache(cache: FilePriceCache = Depends(get_price_cache)) -> Dict[str, Any]:
    """Remove every cached price."""
    entries, _ = cache.get_stats()
    cache.clear()
    logger.info(f"Cleared {entries} price cache entries from {cache.cache_dir}")
    return {"cleared": entries}
