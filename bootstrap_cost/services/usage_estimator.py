"""
Usage estimator service.
Maps a template resource and a usage profile to a quantified monthly usage
estimate. Pure and deterministic: no I/O, no pricing.
"""
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field

from bootstrap_cost.core.config import config
from bootstrap_cost.domain.cost_models import Resource, ResourceUsage, ScalingRule, UsageProfile


# Which ResourceUsage field mirrors the quantity, per policy
METRIC_FIELDS = {"quantity", "monthly_hours", "requests_per_month", "storage_gb"}


@dataclass(frozen=True)
class UsagePolicy:
    """
    How one resource type consumes billable units.

    attribute_properties maps a catalog attribute to
    (template property, default value, optional value map). The value map is
    looked up with the lower-cased property value.
    """
    service_code: str
    product_family: str
    unit: str
    base_quantity: float
    scaling: ScalingRule
    metric: str = "quantity"
    price_attributes: Dict[str, str] = field(default_factory=dict)
    attribute_properties: Dict[str, Tuple[str, str, Optional[Dict[str, str]]]] = field(default_factory=dict)
    quantity_property: Optional[str] = None
    billable: bool = True


def free_policy() -> UsagePolicy:
    """Policy for resource types that carry no charge of their own."""
    return UsagePolicy(
        service_code="",
        product_family="",
        unit="",
        base_quantity=0.0,
        scaling=ScalingRule.COUNT_FIXED,
        billable=False,
    )


RDS_ENGINE_NAMES = {
    "mysql": "MySQL",
    "mariadb": "MariaDB",
    "postgres": "PostgreSQL",
    "postgresql": "PostgreSQL",
    "aurora-mysql": "Aurora MySQL",
    "aurora-postgresql": "Aurora PostgreSQL",
    "sqlserver-ex": "SQL Server",
    "sqlserver-se": "SQL Server",
    "oracle-se2": "Oracle",
}

HOURS_PER_MONTH = float(config.HOURS_PER_MONTH)


# Light-profile baselines; see UsageProfile.multiplier for the other profiles
DEFAULT_USAGE_POLICIES: Dict[str, UsagePolicy] = {
    # Compute: instance-hours, one always-on instance at the Light baseline
    "AWS::EC2::Instance": UsagePolicy(
        service_code="AmazonEC2",
        product_family="Compute Instance",
        unit="Hrs",
        base_quantity=HOURS_PER_MONTH,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="monthly_hours",
        price_attributes={
            "tenancy": "Shared",
            "operatingSystem": "Linux",
            "preInstalledSw": "NA",
            "capacitystatus": "Used",
        },
        attribute_properties={"instanceType": ("InstanceType", "t3.medium", None)},
    ),
    # Databases run 24/7 in every environment
    "AWS::RDS::DBInstance": UsagePolicy(
        service_code="AmazonRDS",
        product_family="Database Instance",
        unit="Hrs",
        base_quantity=HOURS_PER_MONTH,
        scaling=ScalingRule.COUNT_FIXED,
        metric="monthly_hours",
        attribute_properties={
            "instanceType": ("DBInstanceClass", "db.t3.small", None),
            "databaseEngine": ("Engine", "MySQL", RDS_ENGINE_NAMES),
            "deploymentOption": ("MultiAZ", "Single-AZ", {"true": "Multi-AZ", "false": "Single-AZ"}),
        },
    ),
    "AWS::EC2::Volume": UsagePolicy(
        service_code="AmazonEC2",
        product_family="Storage",
        unit="GB-Mo",
        base_quantity=20.0,
        scaling=ScalingRule.COUNT_FIXED,
        metric="storage_gb",
        attribute_properties={"volumeApiName": ("VolumeType", "gp3", None)},
        quantity_property="Size",
    ),
    "AWS::EC2::NatGateway": UsagePolicy(
        service_code="AmazonEC2",
        product_family="NAT Gateway",
        unit="Hrs",
        base_quantity=HOURS_PER_MONTH,
        scaling=ScalingRule.COUNT_FIXED,
        metric="monthly_hours",
    ),
    "AWS::ElasticLoadBalancingV2::LoadBalancer": UsagePolicy(
        service_code="AWSELB",
        product_family="Load Balancer-Application",
        unit="Hrs",
        base_quantity=HOURS_PER_MONTH,
        scaling=ScalingRule.COUNT_FIXED,
        metric="monthly_hours",
    ),
    "AWS::S3::Bucket": UsagePolicy(
        service_code="AmazonS3",
        product_family="Storage",
        unit="GB-Mo",
        base_quantity=10.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="storage_gb",
        price_attributes={"volumeType": "Standard", "storageClass": "General Purpose"},
    ),
    "AWS::Lambda::Function": UsagePolicy(
        service_code="AWSLambda",
        product_family="Serverless",
        unit="Requests",
        base_quantity=100_000.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="requests_per_month",
        price_attributes={"group": "AWS-Lambda-Requests"},
    ),
    "AWS::ApiGateway::RestApi": UsagePolicy(
        service_code="AmazonApiGateway",
        product_family="API Calls",
        unit="Requests",
        base_quantity=1_000_000.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="requests_per_month",
        price_attributes={"operation": "ApiGatewayRequest"},
    ),
    "AWS::DynamoDB::Table": UsagePolicy(
        service_code="AmazonDynamoDB",
        product_family="Amazon DynamoDB PayPerRequest Throughput",
        unit="WriteRequestUnits",
        base_quantity=1_000_000.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="requests_per_month",
        price_attributes={"group": "DDB-WriteUnits"},
    ),
    "AWS::SNS::Topic": UsagePolicy(
        service_code="AmazonSNS",
        product_family="API Request",
        unit="Requests",
        base_quantity=1_000.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="requests_per_month",
    ),
    "AWS::SQS::Queue": UsagePolicy(
        service_code="AWSQueueService",
        product_family="API Request",
        unit="Requests",
        base_quantity=100_000.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="requests_per_month",
        price_attributes={"queueType": "Standard"},
    ),
    "AWS::Logs::LogGroup": UsagePolicy(
        service_code="AmazonCloudWatch",
        product_family="Data Payload",
        unit="GB",
        base_quantity=1.0,
        scaling=ScalingRule.PROFILE_SCALED,
        metric="storage_gb",
        price_attributes={"group": "Ingested Logs"},
    ),
    # Flat monthly charges
    "AWS::CloudWatch::Alarm": UsagePolicy(
        service_code="AmazonCloudWatch",
        product_family="Alarm",
        unit="Alarms",
        base_quantity=1.0,
        scaling=ScalingRule.COUNT_FIXED,
    ),
    "AWS::CloudWatch::Dashboard": UsagePolicy(
        service_code="AmazonCloudWatch",
        product_family="Dashboard",
        unit="Dashboards",
        base_quantity=1.0,
        scaling=ScalingRule.COUNT_FIXED,
    ),
    "AWS::KMS::Key": UsagePolicy(
        service_code="awskms",
        product_family="Encryption Key",
        unit="Keys",
        base_quantity=1.0,
        scaling=ScalingRule.COUNT_FIXED,
    ),
    "AWS::SecretsManager::Secret": UsagePolicy(
        service_code="AWSSecretsManager",
        product_family="Secret",
        unit="Secrets",
        base_quantity=1.0,
        scaling=ScalingRule.COUNT_FIXED,
    ),
}

FREE_RESOURCE_TYPES = (
    "AWS::CDK::Metadata",
    "AWS::CloudFormation::WaitConditionHandle",
    "AWS::EC2::VPC",
    "AWS::EC2::Subnet",
    "AWS::EC2::SecurityGroup",
    "AWS::EC2::SecurityGroupIngress",
    "AWS::EC2::SecurityGroupEgress",
    "AWS::EC2::InternetGateway",
    "AWS::EC2::VPCGatewayAttachment",
    "AWS::EC2::RouteTable",
    "AWS::EC2::Route",
    "AWS::EC2::SubnetRouteTableAssociation",
    "AWS::Events::Rule",
    "AWS::IAM::Role",
    "AWS::IAM::Policy",
    "AWS::IAM::ManagedPolicy",
    "AWS::IAM::InstanceProfile",
    "AWS::IAM::User",
    "AWS::IAM::Group",
    "AWS::KMS::Alias",
    "AWS::Lambda::Permission",
    "AWS::S3::BucketPolicy",
    "AWS::SNS::Subscription",
    "AWS::SNS::TopicPolicy",
    "AWS::SQS::QueuePolicy",
)
for _resource_type in FREE_RESOURCE_TYPES:
    DEFAULT_USAGE_POLICIES[_resource_type] = free_policy()


# Per-account resources synthesized for bootstrap-only estimates
ALARMS_PER_ACCOUNT = 2  # Budget alarm + anomaly alarm
NOTIFICATIONS_PER_ACCOUNT = 100

BOOTSTRAP_USAGE_POLICIES: Dict[str, UsagePolicy] = {
    "AWS::CloudWatch::Alarm": UsagePolicy(
        service_code="AmazonCloudWatch",
        product_family="Alarm",
        unit="Alarms",
        base_quantity=float(ALARMS_PER_ACCOUNT),
        scaling=ScalingRule.COUNT_FIXED,
    ),
    "AWS::SNS::Topic": UsagePolicy(
        service_code="AmazonSNS",
        product_family="API Request",
        unit="Requests",
        base_quantity=float(NOTIFICATIONS_PER_ACCOUNT),
        scaling=ScalingRule.COUNT_FIXED,
        metric="requests_per_month",
    ),
}


def service_name_for(resource_type: str) -> str:
    """
    Service bucket for a resource type, e.g. "AWS::EC2::Instance" -> "ec2".
    """
    parts = resource_type.split("::")
    if len(parts) >= 2 and parts[1]:
        return parts[1].lower()
    return "unknown"


def _literal(value: Any) -> Optional[Any]:
    """Plain scalar template values; intrinsic functions ({"Ref": ...}) yield None."""
    if isinstance(value, (str, int, float, bool)):
        return value
    return None


class UsageEstimator:
    """Table-driven usage estimation; unmatched types fall through to zero usage."""

    def __init__(self, policies: Optional[Dict[str, UsagePolicy]] = None):
        """
        Args:
            policies: Resource type -> policy table (default: DEFAULT_USAGE_POLICIES)
        """
        self.policies = DEFAULT_USAGE_POLICIES if policies is None else policies
        for resource_type, policy in self.policies.items():
            if policy.metric not in METRIC_FIELDS:
                raise ValueError(f"Invalid metric '{policy.metric}' in policy for {resource_type}")

    def has_policy(self, resource_type: str) -> bool:
        return resource_type in self.policies

    def _base_quantity(self, policy: UsagePolicy, resource: Resource) -> float:
        if policy.quantity_property:
            value = _literal(resource.properties.get(policy.quantity_property))
            if value is not None and not isinstance(value, bool):
                try:
                    quantity = float(value)
                except ValueError:
                    quantity = -1.0
                if quantity >= 0:
                    return quantity
        return policy.base_quantity

    @staticmethod
    def _price_attributes(policy: UsagePolicy, resource: Resource) -> Dict[str, str]:
        attributes = dict(policy.price_attributes)
        for attribute, (property_name, default, value_map) in policy.attribute_properties.items():
            value = _literal(resource.properties.get(property_name))
            if value is None:
                attributes[attribute] = default
                continue
            text = str(value)
            if value_map is not None:
                text = value_map.get(text.lower(), text)
            attributes[attribute] = text
        return attributes

    def estimate_usage(
        self,
        resource: Resource,
        profile: UsageProfile,
        count: int = 1
    ) -> ResourceUsage:
        """
        Estimate monthly usage for one resource.

        Args:
            resource: Parsed template resource
            profile: Usage profile (only affects profile-scaled policies)
            count: Multiplier for count-fixed policies (e.g. number of accounts)

        Returns:
            ResourceUsage; unknown types get a zero estimate with known=False
        """
        if count < 0:
            raise ValueError(f"count must not be negative (got {count})")

        service = service_name_for(resource.type)
        policy = self.policies.get(resource.type)

        if policy is None:
            return ResourceUsage(
                logical_id=resource.logical_id,
                resource_type=resource.type,
                service=service,
                quantity=0.0,
                unit="",
                billable=False,
                known=False,
            )

        if not policy.billable:
            return ResourceUsage(
                logical_id=resource.logical_id,
                resource_type=resource.type,
                service=service,
                quantity=0.0,
                unit=policy.unit,
                scaling=policy.scaling,
                billable=False,
            )

        base_quantity = self._base_quantity(policy, resource)
        if policy.scaling == ScalingRule.PROFILE_SCALED:
            quantity = base_quantity * profile.multiplier
        else:
            quantity = base_quantity * count

        attributes = self._price_attributes(policy, resource)
        usage = ResourceUsage(
            logical_id=resource.logical_id,
            resource_type=resource.type,
            service=service,
            quantity=quantity,
            unit=policy.unit,
            service_code=policy.service_code,
            product_family=policy.product_family,
            price_attributes=attributes,
            instance_type=attributes.get("instanceType"),
            scaling=policy.scaling,
        )
        if policy.metric != "quantity":
            setattr(usage, policy.metric, quantity)
        return usage
