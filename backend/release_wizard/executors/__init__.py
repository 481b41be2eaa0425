# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block executors and the registry that dispatches to them.
"""

from .outcomes import (
    ExecutionOutcome, Success, Retryable, Fatal, NeedsInput, InputRequest, outcome_for_adapter_error
)
from .context import BlockContext
from .parameters import (
    ParameterResolutionError, resolve_parameters, render_template, check_value, manual_key
)
from .registry import ExecutorRegistry, ExecutorSpec, DEFAULT_EXECUTORS

__all__ = [
    "ExecutionOutcome",
    "Success",
    "Retryable",
    "Fatal",
    "NeedsInput",
    "InputRequest",
    "outcome_for_adapter_error",
    "BlockContext",
    "ParameterResolutionError",
    "resolve_parameters",
    "render_template",
    "check_value",
    "manual_key",
    "ExecutorRegistry",
    "ExecutorSpec",
    "DEFAULT_EXECUTORS",
]
