"""
Template analyzer service.
Runs Parse -> Estimate -> Price -> Aggregate for a template, or for the fixed
bootstrap-only resource set, and produces a TemplateAnalysis.
"""
from typing import Dict, List, Optional, Protocol, Tuple
from datetime import datetime
import asyncio
import logging

from bootstrap_cost.domain.cost_models import Resource, ResourceUsage, TemplateAnalysis, UsageProfile
from bootstrap_cost.pricing.aws_pricing_client import AWSPricingError
from bootstrap_cost.services.template_parser import CloudFormationParser, ParseError
from bootstrap_cost.services.usage_estimator import BOOTSTRAP_USAGE_POLICIES, UsageEstimator


logger = logging.getLogger(__name__)


class EmptyTemplateError(ParseError):
    """Raised when a template parses but declares no resources."""
    pass


class ResourcePricer(Protocol):
    """Anything that can batch-price usage estimates (AWSPricingClient, test doubles)."""

    async def get_prices(
        self,
        usages: List[ResourceUsage],
        region: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> Tuple[Dict[str, float], Dict[str, AWSPricingError]]:
        ...


# Canonical bootstrap resources; quantities come from BOOTSTRAP_USAGE_POLICIES x account count
BOOTSTRAP_RESOURCES = (
    Resource(logical_id="BillingAlarms", type="AWS::CloudWatch::Alarm"),
    Resource(logical_id="NotificationTopic", type="AWS::SNS::Topic"),
)


class TemplateAnalyzer:
    """Orchestrates parser, usage estimator and pricer into a cost report."""

    def __init__(
        self,
        pricer: ResourcePricer,
        parser: Optional[CloudFormationParser] = None,
        estimator: Optional[UsageEstimator] = None,
        bootstrap_estimator: Optional[UsageEstimator] = None
    ):
        """
        Args:
            pricer: Batch pricer (normally AWSPricingClient)
            parser: Template parser (default: CloudFormationParser)
            estimator: Usage estimator for template resources
            bootstrap_estimator: Usage estimator for the bootstrap-only set
        """
        self.pricer = pricer
        self.parser = parser or CloudFormationParser()
        self.estimator = estimator or UsageEstimator()
        self.bootstrap_estimator = bootstrap_estimator or UsageEstimator(BOOTSTRAP_USAGE_POLICIES)

    async def analyze(
        self,
        content: str,
        profile: UsageProfile,
        region: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> TemplateAnalysis:
        """
        Estimate the monthly cost of a template.

        Args:
            content: Raw template text
            profile: Usage profile
            region: AWS region code (not validated)
            cancel_event: Optional cancellation signal for pricing downloads

        Returns:
            TemplateAnalysis; resource-level failures are listed in `errors`

        Raises:
            ParseError: If the template cannot be parsed
            EmptyTemplateError: If the template declares no resources
            UnsupportedFormatError: If the template is not CloudFormation
        """
        resources = self.parser.parse_template(content)
        if not resources:
            raise EmptyTemplateError("template contains no resources", path="Resources")

        usages = []
        for resource in resources:
            usages.append(self.estimator.estimate_usage(resource, profile))

        analysis = await self._price_and_aggregate(usages, profile, region, cancel_event)
        analysis.resources = resources
        return analysis

    async def analyze_bootstrap_only(
        self,
        profile: UsageProfile,
        region: str,
        account_count: int,
        cancel_event: Optional[asyncio.Event] = None
    ) -> TemplateAnalysis:
        """
        Estimate the bootstrap infrastructure alone (no template needed).

        Per account: CloudWatch alarms and SNS notifications, fixed by account
        count rather than by profile.

        Raises:
            ValueError: If account_count is below 1
        """
        if account_count < 1:
            raise ValueError(f"account_count must be at least 1 (got {account_count})")

        usages = [
            self.bootstrap_estimator.estimate_usage(resource, profile, count=account_count)
            for resource in BOOTSTRAP_RESOURCES
        ]
        analysis = await self._price_and_aggregate(usages, profile, region, cancel_event)
        analysis.resources = list(BOOTSTRAP_RESOURCES)
        return analysis

    async def _price_and_aggregate(
        self,
        usages: List[ResourceUsage],
        profile: UsageProfile,
        region: str,
        cancel_event: Optional[asyncio.Event]
    ) -> TemplateAnalysis:
        analysis = TemplateAnalysis(usage_profile=profile, region=region, usage_estimates=usages)

        billable = []
        for usage in usages:
            # Every resource gets a bucket, even when it contributes nothing
            analysis.by_service.setdefault(usage.service, 0.0)
            if not usage.known:
                analysis.errors.append(
                    f"No usage policy for {usage.resource_type} ({usage.logical_id}); assumed zero usage"
                )
                analysis.by_resource[usage.logical_id] = 0.0
            elif not usage.billable:
                analysis.by_resource[usage.logical_id] = 0.0
            else:
                billable.append(usage)

        costs: Dict[str, float] = {}
        errors: Dict[str, AWSPricingError] = {}
        if billable:
            costs, errors = await self.pricer.get_prices(billable, region, cancel_event=cancel_event)

        for usage in billable:
            if usage.logical_id in costs:
                cost = costs[usage.logical_id]
            else:
                error = errors.get(usage.logical_id)
                reason = str(error) if error is not None else "no price returned"
                logger.warning(f"Pricing error for {usage.logical_id} ({usage.resource_type}): {reason}")
                analysis.errors.append(
                    f"Failed to price {usage.logical_id} ({usage.resource_type}): {reason}"
                )
                cost = 0.0
            analysis.by_service[usage.service] += cost
            analysis.by_resource[usage.logical_id] = cost

        analysis.estimated_cost = sum(analysis.by_service.values())
        analysis.generated_at = datetime.now()
        return analysis
