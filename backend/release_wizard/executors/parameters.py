# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Parameter resolution, validation rules and ${name} templating.
"""

import re
from typing import Dict, List, Mapping, Optional

from release_wizard.core.errors import ValidationError
from release_wizard.models.project import (
    BlockBase, BlockParameter, ParameterType, ValidationRule, ValidationType,
    ManualSource, ProjectParameterSource, BlockOutputSource, DefaultValueSource,
)


TEMPLATE_PATTERN = re.compile(r'\$\{([^}]+)\}')
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
URL_PATTERN = re.compile(r'^https?://[^\s/$.?#].[^\s]*$', re.IGNORECASE)


class ParameterResolutionError(ValidationError):
    """A block parameter could not be resolved or failed its rules"""

    def __init__(self, block_id: str, parameter: str, message: str):
        super().__init__(
            f"Block '{block_id}' parameter '{parameter}': {message}",
            field=f"{block_id}.{parameter}"
        )
        self.block_id = block_id
        self.parameter = parameter


def manual_key(block_id: str, parameter_name: str) -> str:
    """Key under which a Manual block parameter is supplied in release parameter values"""
    return f"{block_id}.{parameter_name}"


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Replace ${name} placeholders; unknown names are left untouched"""
    def replace(match):
        name = match.group(1).strip()
        return values[name] if name in values else match.group(0)
    return TEMPLATE_PATTERN.sub(replace, template)


def unresolved_placeholders(text: str) -> List[str]:
    return [match.group(1) for match in TEMPLATE_PATTERN.finditer(text)]


def _check_type(value: str, value_type: ParameterType) -> Optional[str]:
    if value_type == ParameterType.NUMBER:
        try:
            float(value)
        except ValueError:
            return f"'{value}' is not a number"
    elif value_type == ParameterType.BOOLEAN:
        if value.lower() not in ("true", "false"):
            return f"'{value}' is not a boolean"
    elif value_type == ParameterType.URL:
        if not URL_PATTERN.match(value):
            return f"'{value}' is not a valid URL"
    elif value_type == ParameterType.EMAIL:
        if not EMAIL_PATTERN.match(value):
            return f"'{value}' is not a valid email address"
    return None


def _check_rule(value: str, rule: ValidationRule) -> Optional[str]:
    failed = False
    if rule.type == ValidationType.REQUIRED:
        failed = not value.strip()
    elif rule.type == ValidationType.MIN_LENGTH:
        failed = len(value) < int(rule.value)
    elif rule.type == ValidationType.MAX_LENGTH:
        failed = len(value) > int(rule.value)
    elif rule.type == ValidationType.REGEX:
        failed = re.fullmatch(rule.value, value) is None
    elif rule.type == ValidationType.URL_FORMAT:
        failed = URL_PATTERN.match(value) is None
    elif rule.type == ValidationType.EMAIL_FORMAT:
        failed = EMAIL_PATTERN.match(value) is None

    if not failed:
        return None
    if rule.error_message:
        return rule.error_message
    suffix = f" {rule.value}" if rule.value else ""
    return f"violates {rule.type.value}{suffix}"


def check_value(value: str, value_type: ParameterType, rules: List[ValidationRule]) -> List[str]:
    """Return every problem with `value`; empty when valid"""
    problems = []
    type_problem = _check_type(value, value_type)
    if type_problem:
        problems.append(type_problem)
    for rule in rules:
        problem = _check_rule(value, rule)
        if problem:
            problems.append(problem)
    return problems


def _resolve_one(
    block: BlockBase,
    parameter: BlockParameter,
    release_values: Mapping[str, str],
    block_outputs: Mapping[str, Mapping[str, str]]
) -> Optional[str]:
    source = parameter.source
    if isinstance(source, ManualSource):
        return release_values.get(manual_key(block.id, parameter.name))
    if isinstance(source, ProjectParameterSource):
        return release_values.get(source.parameter_name)
    if isinstance(source, DefaultValueSource):
        return source.value
    if isinstance(source, BlockOutputSource):
        return block_outputs.get(source.block_id, {}).get(source.output_name)
    return None


def resolve_parameters(
    block: BlockBase,
    release_values: Mapping[str, str],
    block_outputs: Mapping[str, Mapping[str, str]],
    overrides: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Resolve a block's parameters against the release.

    Overrides (from restart_block) replace resolved values and may add
    parameters the block does not declare. String values are rendered as
    templates against the release's project parameter values.

    Raises ParameterResolutionError for a missing required value or a
    value that breaks the parameter's validation rules.
    """
    overrides = overrides or {}
    resolved: Dict[str, str] = {}

    for parameter in block.parameters:
        if parameter.name in overrides:
            value = overrides[parameter.name]
        else:
            value = _resolve_one(block, parameter, release_values, block_outputs)

        if value is None:
            if parameter.is_optional:
                continue
            raise ParameterResolutionError(block.id, parameter.name, "no value available")

        value = render_template(value, release_values)
        problems = check_value(value, parameter.type, parameter.validation_rules)
        if problems:
            raise ParameterResolutionError(block.id, parameter.name, "; ".join(problems))
        resolved[parameter.name] = value

    for name, value in overrides.items():
        resolved.setdefault(name, value)
    return resolved
