"""
CloudFormation template parser.
Normalizes JSON or YAML template text into a list of Resource records.
"""
from typing import Any, Dict, List, Optional
import json
import logging
import re

import yaml

from bootstrap_cost.domain.cost_models import Resource


logger = logging.getLogger(__name__)


class ParseError(Exception):
    """Raised when a template is malformed or has no usable Resources block."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class UnsupportedFormatError(Exception):
    """Raised when the input is a structured format this parser does not handle."""

    def __init__(self, detected_format: str):
        self.detected_format = detected_format
        super().__init__(
            f"Unsupported template format '{detected_format}' "
            f"(supported: {', '.join(CloudFormationParser.SUPPORTED_FORMATS)})"
        )


# Heuristics for naming the dialect of input that did not parse as a template
_HCL_BLOCK = re.compile(
    r'^\s*(resource|data|provider|terraform|variable|module|output|locals)\b[^\n=:]*\{',
    re.MULTILINE
)
_TOML_TABLE = re.compile(r'^\s*\[\[?[A-Za-z0-9_.\-"]+\]\]?\s*$', re.MULTILINE)
_TOML_ASSIGNMENT = re.compile(r'^\s*[A-Za-z0-9_\-]+\s*=\s*\S', re.MULTILINE)

TERRAFORM_JSON_KEYS = {"resource", "provider", "terraform", "data", "module"}


class _CloudFormationLoader(yaml.SafeLoader):
    """Safe loader that understands CloudFormation short-form intrinsics."""
    pass


def _construct_intrinsic(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Dict[str, Any]:
    # !Ref X -> {"Ref": X}; !GetAtt A.B -> {"Fn::GetAtt": ["A", "B"]}; !Sub ... -> {"Fn::Sub": ...}
    if tag_suffix in ("Ref", "Condition"):
        name = tag_suffix
    else:
        name = f"Fn::{tag_suffix}"

    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
        if tag_suffix == "GetAtt":
            value = value.split(".", 1)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)
    return {name: value}


_CloudFormationLoader.add_multi_constructor("!", _construct_intrinsic)


class CloudFormationParser:
    """Parser for CloudFormation templates in JSON or YAML."""

    SUPPORTED_FORMATS = ("cloudformation-json", "cloudformation-yaml")

    def supported_formats(self) -> List[str]:
        return list(self.SUPPORTED_FORMATS)

    @staticmethod
    def _detect_foreign_format(text: str) -> Optional[str]:
        if text.startswith("<"):
            return "xml"
        if _HCL_BLOCK.search(text):
            return "terraform-hcl"
        if _TOML_TABLE.search(text) and _TOML_ASSIGNMENT.search(text):
            return "toml"
        return None

    @staticmethod
    def _load_json(text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as error:
            raise ParseError(
                f"invalid JSON at line {error.lineno}, column {error.colno}: {error.msg}"
            ) from error
        except RecursionError as error:
            raise ParseError("template is nested too deeply") from error

    @staticmethod
    def _load_yaml(text: str) -> Any:
        try:
            return yaml.load(text, Loader=_CloudFormationLoader)
        except yaml.YAMLError as error:
            mark = getattr(error, "problem_mark", None)
            problem = getattr(error, "problem", None) or str(error)
            if mark is not None:
                raise ParseError(
                    f"invalid YAML at line {mark.line + 1}, column {mark.column + 1}: {problem}"
                ) from error
            raise ParseError(f"invalid YAML: {problem}") from error
        except RecursionError as error:
            raise ParseError("template is nested too deeply") from error

    def _load_text(self, text: str) -> Any:
        if text[0] not in "{[":
            return self._load_yaml(text)
        try:
            return self._load_json(text)
        except ParseError as json_error:
            # YAML flow mappings ({Resources: {...}}) also start with a brace
            try:
                return self._load_yaml(text)
            except ParseError:
                raise json_error

    def _load_document(self, content: str) -> Dict[str, Any]:
        text = (content or "").strip()
        if not text:
            raise ParseError("template is empty")

        # Dialect sniffing only runs once the text is known not to be a template;
        # block scalars in valid templates often embed ini or HCL-looking files
        try:
            document = self._load_text(text)
        except ParseError:
            foreign_format = self._detect_foreign_format(text)
            if foreign_format:
                raise UnsupportedFormatError(foreign_format)
            raise

        if not isinstance(document, dict):
            foreign_format = self._detect_foreign_format(text)
            if foreign_format:
                raise UnsupportedFormatError(foreign_format)
            raise ParseError(
                f"top-level structure must be a mapping, got {type(document).__name__}",
                path="$",
            )
        return document

    @staticmethod
    def _parse_resource(logical_id: str, entry: Any) -> Resource:
        path = f"Resources.{logical_id}"
        if not isinstance(entry, dict):
            raise ParseError(f"resource must be a mapping, got {type(entry).__name__}", path=path)

        resource_type = entry.get("Type")
        if resource_type is None:
            raise ParseError("missing required 'Type'", path=f"{path}.Type")
        if not isinstance(resource_type, str) or not resource_type.strip():
            raise ParseError("'Type' must be a non-empty string", path=f"{path}.Type")

        properties = entry.get("Properties")
        if properties is None:
            properties = {}
        elif not isinstance(properties, dict):
            raise ParseError(
                f"'Properties' must be a mapping, got {type(properties).__name__}",
                path=f"{path}.Properties",
            )

        attributes = {key: value for key, value in entry.items() if key not in ("Type", "Properties")}
        return Resource(
            logical_id=logical_id,
            type=resource_type.strip(),
            properties=properties,
            attributes=attributes,
        )

    def parse_template(self, content: str) -> List[Resource]:
        """
        Extract resources from a CloudFormation template.

        Args:
            content: Raw template text (JSON or YAML)

        Returns:
            Resources in template order (empty if the Resources block is empty)

        Raises:
            ParseError: If the template is malformed or lacks a Resources block
            UnsupportedFormatError: If the text is another dialect (HCL, TOML, XML,
                Terraform JSON)
        """
        document = self._load_document(content)

        if "Resources" not in document:
            if TERRAFORM_JSON_KEYS & set(document):
                raise UnsupportedFormatError("terraform-json")
            raise ParseError("template has no 'Resources' block", path="Resources")

        resources_block = document["Resources"]
        if resources_block is None:
            resources_block = {}
        if not isinstance(resources_block, dict):
            raise ParseError(
                f"'Resources' must be a mapping, got {type(resources_block).__name__}",
                path="Resources",
            )

        resources = [
            self._parse_resource(str(logical_id), entry)
            for logical_id, entry in resources_block.items()
        ]
        logger.debug(f"Parsed {len(resources)} resources from template")
        return resources
