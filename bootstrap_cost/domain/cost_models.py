"""
Domain models for cost estimation.
Defines template resources, usage estimates, pricing queries and the analysis report.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import hashlib
import json


class UsageProfile(Enum):
    """Workload intensity used when no real telemetry exists."""
    MINIMAL = "minimal"  # POC / testing
    LIGHT = "light"  # Small team, baseline
    MODERATE = "moderate"  # Growing production
    HEAVY = "heavy"  # Full-scale production

    @property
    def rank(self) -> int:
        return _PROFILE_ORDER.index(self)

    @property
    def multiplier(self) -> float:
        """Scaling factor relative to the LIGHT baseline."""
        return PROFILE_MULTIPLIERS[self]

    def __lt__(self, other: "UsageProfile") -> bool:
        if not isinstance(other, UsageProfile):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "UsageProfile") -> bool:
        if not isinstance(other, UsageProfile):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: "UsageProfile") -> bool:
        if not isinstance(other, UsageProfile):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: "UsageProfile") -> bool:
        if not isinstance(other, UsageProfile):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def from_value(cls, value: str) -> "UsageProfile":
        """
        Resolve a profile from its name, case-insensitively.

        Raises:
            ValueError: If the value names no profile
        """
        normalized = (value or "").strip().lower()
        for profile in cls:
            if profile.value == normalized:
                return profile
        raise ValueError(
            f"Unknown usage profile '{value}' (expected one of: "
            f"{', '.join(p.value for p in cls)})"
        )


_PROFILE_ORDER = [UsageProfile.MINIMAL, UsageProfile.LIGHT, UsageProfile.MODERATE, UsageProfile.HEAVY]

PROFILE_MULTIPLIERS: Dict[UsageProfile, float] = {
    UsageProfile.MINIMAL: 0.25,
    UsageProfile.LIGHT: 1.0,
    UsageProfile.MODERATE: 3.0,
    UsageProfile.HEAVY: 10.0,
}


class ScalingRule(Enum):
    """How a usage policy turns its base quantity into a monthly quantity."""
    PROFILE_SCALED = "profile_scaled"
    COUNT_FIXED = "count_fixed"


@dataclass
class Resource:
    """A declared infrastructure unit from a template."""
    logical_id: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    # Other entry-level keys (DependsOn, Condition, Metadata, ...) kept verbatim
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logical_id": self.logical_id,
            "type": self.type,
            "properties": self.properties,
            "attributes": self.attributes,
        }


@dataclass(frozen=True)
class PriceQuery:
    """A lookup against one service's pricing catalog."""
    service: str
    product_family: str
    region: str
    attributes: Dict[str, str] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(self.cache_key())

    def cache_key(self) -> str:
        """
        Stable hash over every field, with attributes sorted.

        Returns:
            Hex SHA-256 digest, safe for use as a filename
        """
        canonical = json.dumps(
            {
                "service": self.service,
                "product_family": self.product_family,
                "region": self.region,
                "attributes": sorted((str(k), str(v)) for k, v in self.attributes.items()),
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class ResourceUsage:
    """Quantified monthly consumption for one resource."""
    logical_id: str
    resource_type: str
    service: str  # Service bucket, e.g. "cloudwatch"
    quantity: float  # In the catalog's billing unit
    unit: str
    service_code: str = ""  # Price List service code, e.g. "AmazonCloudWatch"
    product_family: str = ""
    price_attributes: Dict[str, str] = field(default_factory=dict)
    requests_per_month: float = 0.0
    monthly_hours: float = 0.0
    storage_gb: float = 0.0
    instance_type: Optional[str] = None
    scaling: Optional[ScalingRule] = None
    billable: bool = True
    known: bool = True

    def price_query(self, region: str) -> PriceQuery:
        """Build the catalog query for this usage in a region."""
        return PriceQuery(
            service=self.service_code,
            product_family=self.product_family,
            region=region,
            attributes=dict(self.price_attributes),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logical_id": self.logical_id,
            "resource_type": self.resource_type,
            "service": self.service,
            "quantity": self.quantity,
            "unit": self.unit,
            "requests_per_month": self.requests_per_month,
            "monthly_hours": self.monthly_hours,
            "storage_gb": self.storage_gb,
            "instance_type": self.instance_type,
            "scaling": self.scaling.value if self.scaling else None,
            "billable": self.billable,
            "known": self.known,
        }


@dataclass
class PriceTier:
    """A priced unit range within one on-demand term."""
    begin_range: float
    end_range: Optional[float]  # None means unbounded ("Inf")
    unit: str
    unit_price: float
    description: str = ""

    def contains(self, quantity: float) -> bool:
        if quantity < self.begin_range:
            return False
        return self.end_range is None or quantity < self.end_range

    def to_dict(self) -> Dict[str, Any]:
        return {
            "begin_range": self.begin_range,
            "end_range": self.end_range,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceTier":
        end_range = data.get("end_range")
        return cls(
            begin_range=float(data["begin_range"]),
            end_range=float(end_range) if end_range is not None else None,
            unit=str(data.get("unit", "")),
            unit_price=float(data["unit_price"]),
            description=str(data.get("description", "")),
        )


@dataclass
class PriceResult:
    """A resolved catalog price."""
    sku: str
    unit_price: float
    unit: str
    currency: str = "USD"
    tiers: List[PriceTier] = field(default_factory=list)
    from_cache: bool = False

    def price_for_quantity(self, quantity: float) -> float:
        """
        Unit price of the tier whose range contains the quantity.

        Lower tiers are not blended in; with no tier data (or no containing
        tier) the first dimension's price applies.
        """
        for tier in self.tiers:
            if tier.contains(quantity):
                return tier.unit_price
        return self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "unit_price": self.unit_price,
            "unit": self.unit,
            "currency": self.currency,
            "tiers": [tier.to_dict() for tier in self.tiers],
        }


@dataclass
class TemplateAnalysis:
    """The engine's cost report for one template or bootstrap request."""
    usage_profile: UsageProfile
    region: str
    estimated_cost: float = 0.0
    by_service: Dict[str, float] = field(default_factory=dict)
    by_resource: Dict[str, float] = field(default_factory=dict)
    usage_estimates: List[ResourceUsage] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    currency: str = "USD"
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_lower_bound(self) -> bool:
        """True when some resources could not be priced or estimated."""
        return bool(self.errors)

    @classmethod
    def empty(cls, usage_profile: UsageProfile, region: str) -> "TemplateAnalysis":
        return cls(usage_profile=usage_profile, region=region)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        by_service = {
            service: round(cost, 2)
            for service, cost in sorted(self.by_service.items(), key=lambda item: item[1], reverse=True)
        }
        return {
            "currency": self.currency,
            "usage_profile": self.usage_profile.value,
            "region": self.region,
            # Summed from the rounded buckets so the report adds up
            "estimated_cost": round(sum(by_service.values()), 2),
            "is_lower_bound": self.is_lower_bound,
            "by_service": by_service,
            "by_resource": {logical_id: round(cost, 4) for logical_id, cost in self.by_resource.items()},
            "usage_estimates": [usage.to_dict() for usage in self.usage_estimates],
            "resources": [resource.to_dict() for resource in self.resources],
            "errors": list(self.errors),
            "generated_at": self.generated_at.isoformat(),
        }
