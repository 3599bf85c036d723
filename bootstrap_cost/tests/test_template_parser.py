"""
Tests for CloudFormation template parsing.
"""

import pytest
from bootstrap_cost.services.template_parser import (
    CloudFormationParser,
    ParseError,
    UnsupportedFormatError,
)


@pytest.fixture
def parser():
    """Template parser."""
    return CloudFormationParser()


def test_minimal_json_template_yields_single_resource(parser):
    """A single-resource JSON template parses to one Resource."""
    resources = parser.parse_template('{"Resources":{"A":{"Type":"X::Alarm"}}}')

    assert len(resources) == 1
    assert resources[0].logical_id == "A"
    assert resources[0].type == "X::Alarm"
    assert resources[0].properties == {}


def test_missing_resources_block_raises_parse_error(parser):
    """A template without Resources is rejected, never half-parsed."""
    with pytest.raises(ParseError) as exc_info:
        parser.parse_template('{"AWSTemplateFormatVersion": "2010-09-09"}')

    assert exc_info.value.path == "Resources"


def test_resources_keep_template_order(parser, sample_json_template):
    """Resources come back in the order they are declared."""
    resources = parser.parse_template(sample_json_template)

    assert [r.logical_id for r in resources] == ["BudgetAlarm", "AlertTopic", "BillingRole"]
    assert resources[0].properties == {"Threshold": 100}


def test_yaml_short_form_intrinsics_become_long_form(parser, sample_yaml_template):
    """!Ref, !Sub and !GetAtt are expanded to their mapping forms."""
    resources = {r.logical_id: r for r in parser.parse_template(sample_yaml_template)}

    assert resources["AlertTopic"].properties["TopicName"] == {"Ref": "Env"}
    assert resources["WebServer"].properties["Tags"][0]["Value"] == {"Fn::Sub": "${Env}-web"}
    assert resources["TopicArnOutput"].properties["Value"] == {"Fn::GetAtt": ["AlertTopic", "TopicArn"]}


def test_yaml_sequence_intrinsic(parser):
    """Sequence-form intrinsics keep their argument list."""
    template = """
Resources:
  Bucket:
    Type: AWS::S3::Bucket
    Properties:
      BucketName: !Join ['-', [app, !Ref Env]]
"""
    resources = parser.parse_template(template)

    assert resources[0].properties["BucketName"] == {"Fn::Join": ["-", ["app", {"Ref": "Env"}]]}


def test_entry_level_keys_preserved_as_attributes(parser, sample_yaml_template):
    """DependsOn and similar keys survive in Resource.attributes."""
    resources = {r.logical_id: r for r in parser.parse_template(sample_yaml_template)}

    assert resources["WebServer"].attributes == {"DependsOn": "AlertTopic"}


def test_unknown_properties_are_preserved(parser):
    """Property bags are opaque; unrecognized keys pass through."""
    template = '{"Resources": {"Fn": {"Type": "AWS::Lambda::Function", "Properties": {"FutureKnob": {"a": 1}}}}}'
    resources = parser.parse_template(template)

    assert resources[0].properties == {"FutureKnob": {"a": 1}}


def test_missing_type_raises_parse_error_with_path(parser):
    """Entries without Type are rejected with the offending path."""
    with pytest.raises(ParseError) as exc_info:
        parser.parse_template('{"Resources": {"Broken": {"Properties": {}}}}')

    assert exc_info.value.path == "Resources.Broken.Type"


def test_empty_type_raises_parse_error(parser):
    """Empty Type strings are rejected."""
    with pytest.raises(ParseError):
        parser.parse_template('{"Resources": {"Broken": {"Type": "  "}}}')


def test_non_mapping_properties_raise_parse_error(parser):
    """Properties must be a mapping."""
    with pytest.raises(ParseError) as exc_info:
        parser.parse_template('{"Resources": {"A": {"Type": "AWS::SNS::Topic", "Properties": [1, 2]}}}')

    assert exc_info.value.path == "Resources.A.Properties"


def test_non_mapping_resources_raise_parse_error(parser):
    """Resources must be a mapping."""
    with pytest.raises(ParseError):
        parser.parse_template('{"Resources": ["A", "B"]}')


def test_top_level_list_raises_parse_error(parser):
    """A JSON array is not a template."""
    with pytest.raises(ParseError) as exc_info:
        parser.parse_template('[{"Resources": {}}]')

    assert exc_info.value.path == "$"


def test_malformed_json_reports_position(parser):
    """JSON syntax errors surface as ParseError with a location."""
    with pytest.raises(ParseError) as exc_info:
        parser.parse_template('{"Resources": {"A": {"Type": "AWS::SNS::Topic",}}')

    assert "line 1" in str(exc_info.value)


def test_malformed_yaml_raises_parse_error(parser):
    """YAML syntax errors surface as ParseError, not yaml.YAMLError."""
    with pytest.raises(ParseError):
        parser.parse_template("Resources:\n  A:\n    Type: [unclosed\n")


def test_empty_content_raises_parse_error(parser):
    """Blank input is a parse error."""
    with pytest.raises(ParseError):
        parser.parse_template("   \n")


def test_empty_resources_block_parses_to_empty_list(parser):
    """An empty Resources mapping is syntactically valid."""
    assert parser.parse_template('{"Resources": {}}') == []


def test_terraform_hcl_is_unsupported(parser):
    """HCL is reported as an unsupported format so callers can try another parser."""
    hcl = 'resource "aws_instance" "web" {\n  instance_type = "t3.micro"\n}\n'

    with pytest.raises(UnsupportedFormatError) as exc_info:
        parser.parse_template(hcl)

    assert exc_info.value.detected_format == "terraform-hcl"
    assert not isinstance(exc_info.value, ParseError)


def test_terraform_json_is_unsupported(parser):
    """Terraform JSON configuration is not mistaken for a broken template."""
    with pytest.raises(UnsupportedFormatError) as exc_info:
        parser.parse_template('{"resource": {"aws_instance": {"web": {}}}}')

    assert exc_info.value.detected_format == "terraform-json"


def test_xml_is_unsupported(parser):
    """XML input is an unsupported format."""
    with pytest.raises(UnsupportedFormatError):
        parser.parse_template('<?xml version="1.0"?><Resources/>')


def test_toml_is_unsupported(parser):
    """TOML input is an unsupported format."""
    with pytest.raises(UnsupportedFormatError):
        parser.parse_template('[tool]\nname = "demo"\n')


def test_supported_formats(parser):
    """Parser advertises the CloudFormation dialects it reads."""
    assert parser.supported_formats() == ["cloudformation-json", "cloudformation-yaml"]


def test_embedded_ini_file_is_not_mistaken_for_toml(parser):
    """cfn-hup config under CloudFormation::Init is valid template content."""
    template = """AWSTemplateFormatVersion: '2010-09-09'
Resources:
  WebServer:
    Type: AWS::EC2::Instance
    Metadata:
      AWS::CloudFormation::Init:
        config:
          files:
            /etc/cfn/cfn-hup.conf:
              content: !Sub |
                [main]
                stack=${AWS::StackId}
                region=${AWS::Region}
              mode: '000400'
    Properties:
      InstanceType: t3.micro
"""
    resources = parser.parse_template(template)

    assert [r.logical_id for r in resources] == ["WebServer"]
    files = resources[0].attributes["Metadata"]["AWS::CloudFormation::Init"]["config"]["files"]
    assert "[main]" in files["/etc/cfn/cfn-hup.conf"]["content"]["Fn::Sub"]


def test_embedded_hcl_like_user_data_is_accepted(parser):
    """UserData that writes HCL-looking files still parses."""
    template = """Resources:
  Agent:
    Type: AWS::EC2::Instance
    Properties:
      UserData:
        Fn::Base64: |
          cat > /etc/agent.hcl <<CONF
          provider "local" {
            path = "/var/lib/agent"
          }
          CONF
"""
    resources = parser.parse_template(template)

    assert resources[0].type == "AWS::EC2::Instance"


def test_yaml_flow_mapping_template(parser):
    """A brace-opened template that is YAML rather than JSON still parses."""
    resources = parser.parse_template("{Resources: {A: {Type: X::Alarm}}}")

    assert resources[0].logical_id == "A"
    assert resources[0].type == "X::Alarm"


def test_deeply_nested_input_raises_parse_error(parser):
    """Pathological nesting is a parse error, not a crash."""
    with pytest.raises(ParseError):
        parser.parse_template("[" * 10_000 + "]" * 10_000)
