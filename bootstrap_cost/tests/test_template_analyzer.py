"""
Tests for the Parse -> Estimate -> Price -> Aggregate pipeline.
"""

import json
import pytest
import httpx
from conftest import StaticPricer, make_dimension, make_offer_file, make_product

from bootstrap_cost.domain.cost_models import TemplateAnalysis, UsageProfile
from bootstrap_cost.pricing.aws_pricing_client import AWSPricingClient, PricingUnavailableError
from bootstrap_cost.services.template_analyzer import EmptyTemplateError, TemplateAnalyzer
from bootstrap_cost.services.template_parser import ParseError, UnsupportedFormatError


def test_aggregation_helper_empty_analysis():
    """The zero-value analysis reports nothing."""
    analysis = TemplateAnalysis.empty(UsageProfile.LIGHT, "us-east-1")

    assert analysis.estimated_cost == 0.0
    assert analysis.by_service == {}
    assert analysis.is_lower_bound is False


@pytest.mark.asyncio
async def test_bootstrap_only_alarm_contribution(static_pricer):
    """3 accounts x 2 alarms x $0.10 = $0.60 in the cloudwatch bucket."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    analysis = await analyzer.analyze_bootstrap_only(UsageProfile.LIGHT, "us-east-1", 3)

    assert analysis.by_service["cloudwatch"] == pytest.approx(0.60)
    assert analysis.by_resource["BillingAlarms"] == pytest.approx(0.60)
    assert analysis.by_service["sns"] == pytest.approx(300 * 0.0000005)
    assert analysis.estimated_cost == pytest.approx(sum(analysis.by_service.values()))
    assert analysis.errors == []
    assert [r.logical_id for r in analysis.resources] == ["BillingAlarms", "NotificationTopic"]


@pytest.mark.asyncio
async def test_bootstrap_only_ignores_profile(static_pricer):
    """Bootstrap quantities depend on account count, not profile."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    minimal = await analyzer.analyze_bootstrap_only(UsageProfile.MINIMAL, "us-east-1", 2)
    heavy = await analyzer.analyze_bootstrap_only(UsageProfile.HEAVY, "us-east-1", 2)

    assert minimal.estimated_cost == heavy.estimated_cost


@pytest.mark.asyncio
async def test_bootstrap_only_rejects_zero_accounts(static_pricer):
    """At least one account is required."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    with pytest.raises(ValueError):
        await analyzer.analyze_bootstrap_only(UsageProfile.LIGHT, "us-east-1", 0)


@pytest.mark.asyncio
async def test_partial_failure_one_known_one_unknown(static_pricer):
    """An unknown type adds exactly one warning and no cost."""
    template = json.dumps({"Resources": {
        "Alarm": {"Type": "AWS::CloudWatch::Alarm"},
        "Mystery": {"Type": "X::Alarm"},
    }})
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    analysis = await analyzer.analyze(template, UsageProfile.LIGHT, "us-east-1")

    assert len(analysis.errors) == 1
    assert "X::Alarm" in analysis.errors[0]
    assert analysis.estimated_cost == pytest.approx(0.10)
    assert analysis.by_service == pytest.approx({"cloudwatch": 0.10, "alarm": 0.0})
    assert analysis.is_lower_bound is True
    # Unknown types are never sent for pricing
    assert static_pricer.calls == [["Alarm"]]


@pytest.mark.asyncio
async def test_free_resources_cost_nothing_without_warning(static_pricer, sample_json_template):
    """IAM roles get a zero bucket and no warning."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    analysis = await analyzer.analyze(sample_json_template, UsageProfile.LIGHT, "us-east-1")

    assert analysis.errors == []
    assert analysis.by_service["iam"] == 0.0
    assert analysis.by_resource["BillingRole"] == 0.0
    assert static_pricer.calls == [["BudgetAlarm", "AlertTopic"]]


@pytest.mark.asyncio
async def test_pricing_failure_recorded_and_excluded():
    """A resource that fails to price contributes $0 and one error."""
    pricer = StaticPricer(
        {"Alarm": 0.10, "API Request": 0.0000005},
        failures={"AlertTopic": PricingUnavailableError("catalog timed out")},
    )
    template = json.dumps({"Resources": {
        "BudgetAlarm": {"Type": "AWS::CloudWatch::Alarm"},
        "AlertTopic": {"Type": "AWS::SNS::Topic"},
    }})
    analyzer = TemplateAnalyzer(pricer=pricer)

    analysis = await analyzer.analyze(template, UsageProfile.LIGHT, "us-east-1")

    assert analysis.errors == ["Failed to price AlertTopic (AWS::SNS::Topic): catalog timed out"]
    assert analysis.by_service["sns"] == 0.0
    assert analysis.estimated_cost == pytest.approx(0.10)


@pytest.mark.asyncio
async def test_total_equals_sum_of_service_buckets(static_pricer, sample_yaml_template):
    """Total equals the sum of the service buckets."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    analysis = await analyzer.analyze(sample_yaml_template, UsageProfile.HEAVY, "us-east-1")

    assert analysis.estimated_cost == pytest.approx(sum(analysis.by_service.values()))
    assert sum(analysis.by_resource.values()) == pytest.approx(analysis.estimated_cost)
    assert len(analysis.usage_estimates) == 3


@pytest.mark.asyncio
async def test_missing_resources_raises_parse_error(static_pricer):
    """Templates without Resources abort before pricing."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    with pytest.raises(ParseError):
        await analyzer.analyze('{"Description": "nothing here"}', UsageProfile.LIGHT, "us-east-1")

    assert static_pricer.calls == []


@pytest.mark.asyncio
async def test_empty_resources_raises_empty_template_error(static_pricer):
    """A template with no resources is rejected."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    with pytest.raises(EmptyTemplateError):
        await analyzer.analyze('{"Resources": {}}', UsageProfile.LIGHT, "us-east-1")


@pytest.mark.asyncio
async def test_unsupported_format_propagates(static_pricer):
    """Non-CloudFormation input is surfaced as UnsupportedFormatError."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    with pytest.raises(UnsupportedFormatError):
        await analyzer.analyze('resource "aws_instance" "web" {}', UsageProfile.LIGHT, "us-east-1")


@pytest.mark.asyncio
async def test_repeated_analysis_is_idempotent(memory_cache):
    """Same inputs with a warm cache give the same report and no new downloads."""
    requests = []
    catalog = make_offer_file(
        [make_product("ALARM", "Alarm"), make_product("DASH", "Dashboard")],
        {
            "ALARM": [make_dimension("0.10", unit="Alarms")],
            "DASH": [make_dimension("3.00", unit="Dashboards")],
        },
    )

    def handler(request):
        requests.append(str(request.url))
        return httpx.Response(200, content=json.dumps(catalog).encode("utf-8"))

    pricer = AWSPricingClient(
        cache=memory_cache,
        base_url="https://pricing.test/offers/v1.0/aws",
        transport=httpx.MockTransport(handler),
    )
    analyzer = TemplateAnalyzer(pricer=pricer)
    template = json.dumps({"Resources": {
        "Alarm": {"Type": "AWS::CloudWatch::Alarm"},
        "Board": {"Type": "AWS::CloudWatch::Dashboard"},
    }})

    first = await analyzer.analyze(template, UsageProfile.MODERATE, "us-east-1")
    second = await analyzer.analyze(template, UsageProfile.MODERATE, "us-east-1")

    assert first.estimated_cost == second.estimated_cost == pytest.approx(3.10)
    assert first.by_service == second.by_service
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_report_serializes(static_pricer):
    """to_dict() produces the JSON report shape."""
    analyzer = TemplateAnalyzer(pricer=static_pricer)

    report = (await analyzer.analyze_bootstrap_only(UsageProfile.LIGHT, "eu-west-1", 1)).to_dict()

    assert report["currency"] == "USD"
    assert report["usage_profile"] == "light"
    assert report["region"] == "eu-west-1"
    assert report["estimated_cost"] == 0.2
    assert report["is_lower_bound"] is False
    assert list(report["by_service"]) == ["cloudwatch", "sns"]


def test_serialized_total_matches_rounded_buckets():
    """Sub-cent buckets that round to zero do not leave a cent in the total."""
    analysis = TemplateAnalysis(
        usage_profile=UsageProfile.LIGHT,
        region="us-east-1",
        estimated_cost=0.012,
        by_service={"a": 0.004, "b": 0.004, "c": 0.004},
    )

    report = analysis.to_dict()

    assert report["by_service"] == {"a": 0.0, "b": 0.0, "c": 0.0}
    assert report["estimated_cost"] == pytest.approx(sum(report["by_service"].values()))
