# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block graph validation and execution planning.
"""

from .exceptions import ValidationIssue, GraphValidationError
from .plan import ExecutionPlan, FlatGraph, FlatEdge, flatten_graph
from .validation import (
    ValidationResult, validate_block_graph, build_execution_plan, find_cycle, topological_sort
)

__all__ = [
    "ValidationIssue",
    "GraphValidationError",
    "ExecutionPlan",
    "FlatGraph",
    "FlatEdge",
    "flatten_graph",
    "ValidationResult",
    "validate_block_graph",
    "build_execution_plan",
    "find_cycle",
    "topological_sort",
]
