"""
Shared pytest fixtures for bootstrap_cost tests.
"""

import sys
import os
import tempfile
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Keep the app's file cache out of the user's home directory
os.environ.setdefault('PRICING_CACHE_DIR', tempfile.mkdtemp(prefix='bootstrap-cost-tests-'))

import pytest
from typing import Any, Dict, List, Optional

from bootstrap_cost.pricing.aws_pricing_client import AWSPricingError, NoMatchingSKUError
from bootstrap_cost.pricing.price_cache import InMemoryPriceCache
from bootstrap_cost.resilience.circuit_breaker import reset_circuit_breakers


class StaticPricer:
    """
    Pricer double: cost = unit price for the usage's product family x quantity.

    Families without a price come back as NoMatchingSKUError; logical IDs in
    `failures` come back with the given error.
    """

    def __init__(
        self,
        unit_prices: Dict[str, float],
        failures: Optional[Dict[str, AWSPricingError]] = None
    ):
        self.unit_prices = unit_prices
        self.failures = failures or {}
        self.calls: List[List[str]] = []

    async def get_prices(self, usages, region, cancel_event=None):
        self.calls.append([usage.logical_id for usage in usages])
        costs = {}
        errors = {}
        for usage in usages:
            if usage.logical_id in self.failures:
                errors[usage.logical_id] = self.failures[usage.logical_id]
            elif usage.product_family in self.unit_prices:
                costs[usage.logical_id] = self.unit_prices[usage.product_family] * usage.quantity
            else:
                errors[usage.logical_id] = NoMatchingSKUError(f"No price for {usage.product_family}")
        return costs, errors


def make_product(
    sku: str,
    family: str,
    region: str = 'us-east-1',
    **attributes: str
) -> Dict[str, Any]:
    """Catalog product entry as it appears in an offer file."""
    return {
        'sku': sku,
        'productFamily': family,
        'attributes': {'regionCode': region, **attributes},
    }


def make_dimension(
    price: str,
    unit: str = 'Hrs',
    begin: str = '0',
    end: str = 'Inf',
    description: str = ''
) -> Dict[str, Any]:
    """On-demand price dimension."""
    return {
        'unit': unit,
        'beginRange': begin,
        'endRange': end,
        'description': description,
        'pricePerUnit': {'USD': price},
    }


def make_offer_file(products: List[Dict[str, Any]], dimensions: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Minimal offer file document; `dimensions` maps SKU -> price dimensions."""
    on_demand = {}
    for sku, sku_dimensions in dimensions.items():
        on_demand[sku] = {
            f'{sku}.JRTCKXETXF': {
                'offerTermCode': 'JRTCKXETXF',
                'sku': sku,
                'priceDimensions': {
                    f'{sku}.JRTCKXETXF.{index}': dimension
                    for index, dimension in enumerate(sku_dimensions)
                },
            }
        }
    return {
        'formatVersion': 'v1.0',
        'publicationDate': '2024-01-01T00:00:00Z',
        'products': {product['sku']: product for product in products},
        'terms': {'OnDemand': on_demand},
    }


@pytest.fixture(autouse=True)
def clean_circuit_breakers():
    """Breaker state is process-wide; start every test closed."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def fake_clock():
    """Mutable epoch clock for TTL tests."""
    class FakeClock:
        def __init__(self):
            self.now = 1_700_000_000.0

        def __call__(self) -> float:
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += seconds

    return FakeClock()


@pytest.fixture
def memory_cache(fake_clock):
    """In-memory price cache with a 1 hour TTL."""
    return InMemoryPriceCache(ttl_seconds=3600, clock=fake_clock)


@pytest.fixture
def static_pricer():
    """Pricer with $0.10 per alarm and per SNS request."""
    return StaticPricer({'Alarm': 0.10, 'API Request': 0.0000005})


@pytest.fixture
def sample_json_template():
    """Small JSON template with billable, free and unknown resources."""
    return """{
  "AWSTemplateFormatVersion": "2010-09-09",
  "Resources": {
    "BudgetAlarm": {"Type": "AWS::CloudWatch::Alarm", "Properties": {"Threshold": 100}},
    "AlertTopic": {"Type": "AWS::SNS::Topic"},
    "BillingRole": {"Type": "AWS::IAM::Role", "Properties": {"RoleName": "billing"}}
  }
}"""


@pytest.fixture
def sample_yaml_template():
    """YAML template using short-form intrinsics."""
    return """AWSTemplateFormatVersion: '2010-09-09'
Parameters:
  Env:
    Type: String
Resources:
  WebServer:
    Type: AWS::EC2::Instance
    DependsOn: AlertTopic
    Properties:
      InstanceType: t3.micro
      Tags:
        - Key: Name
          Value: !Sub '${Env}-web'
  AlertTopic:
    Type: AWS::SNS::Topic
    Properties:
      TopicName: !Ref Env
  TopicArnOutput:
    Type: AWS::SSM::Parameter
    Properties:
      Value: !GetAtt AlertTopic.TopicArn
"""
