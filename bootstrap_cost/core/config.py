"""
Configuration module for loading environment variables.
All tunables for pricing lookups and the on-disk price cache live here.
"""
import os
from pathlib import Path


class Config:
    """Application configuration loaded from environment variables."""

    # AWS Price List bulk API (public, unauthenticated)
    AWS_PRICING_BASE_URL: str = os.getenv(
        "AWS_PRICING_BASE_URL",
        "https://pricing.us-east-1.amazonaws.com/offers/v1.0/aws"
    ).rstrip("/")
    PRICING_FETCH_TIMEOUT_SECONDS: float = float(os.getenv("PRICING_FETCH_TIMEOUT_SECONDS", "10"))
    PRICING_MAX_CONCURRENT_FETCHES: int = int(os.getenv("PRICING_MAX_CONCURRENT_FETCHES", "4"))

    # Price cache configuration
    PRICING_CACHE_DIR: str = os.getenv(
        "PRICING_CACHE_DIR",
        str(Path.home() / ".aws-bootstrap" / "pricing-cache")
    )
    PRICING_CACHE_TTL_SECONDS: int = int(os.getenv("PRICING_CACHE_TTL_SECONDS", "86400"))  # 24 hours

    # Estimation defaults
    DEFAULT_REGION: str = os.getenv("DEFAULT_REGION", "us-east-1")
    HOURS_PER_MONTH: int = 730  # Standard assumption: 24/7 operation
    MAX_ACCOUNT_COUNT: int = int(os.getenv("MAX_ACCOUNT_COUNT", "50"))

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are usable.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if not cls.AWS_PRICING_BASE_URL.startswith(("http://", "https://")):
            raise ValueError(
                f"AWS_PRICING_BASE_URL must be a valid URL (got: {cls.AWS_PRICING_BASE_URL})"
            )
        if cls.PRICING_FETCH_TIMEOUT_SECONDS <= 0:
            raise ValueError("PRICING_FETCH_TIMEOUT_SECONDS must be positive")
        if cls.PRICING_MAX_CONCURRENT_FETCHES < 1:
            raise ValueError("PRICING_MAX_CONCURRENT_FETCHES must be at least 1")
        if cls.PRICING_CACHE_TTL_SECONDS < 0:
            raise ValueError("PRICING_CACHE_TTL_SECONDS must not be negative")
        if not cls.PRICING_CACHE_DIR:
            raise ValueError("PRICING_CACHE_DIR is required")
        if cls.MAX_ACCOUNT_COUNT < 1:
            raise ValueError("MAX_ACCOUNT_COUNT must be at least 1")


config = Config()
