# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Execution outcomes returned by block executors.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union

from release_wizard.models.project import UserInputType
from release_wizard.integrations.errors import AdapterError


@dataclass
class Success:
    outputs: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class Retryable:
    error: str
    metadata: Dict[str, str] = field(default_factory=dict)
    timed_out: bool = False  # the block's own timeout expired


@dataclass
class Fatal:
    error: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class InputRequest:
    """What the operator is asked for"""
    prompt: str
    input_type: UserInputType = UserInputType.CONFIRMATION
    options: List[str] = field(default_factory=list)
    is_required: bool = True


@dataclass
class NeedsInput:
    request: InputRequest


ExecutionOutcome = Union[Success, Retryable, Fatal, NeedsInput]


def outcome_for_adapter_error(error: AdapterError) -> ExecutionOutcome:
    """TRANSIENT and UNKNOWN errors are retryable, PERMANENT ones are fatal"""
    if error.is_retryable:
        return Retryable(error.message)
    return Fatal(error.message)
