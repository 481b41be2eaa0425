# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release execution engine.
"""

from .retry import RetryPolicy
from .state import transition_block, transition_release, BLOCK_TRANSITIONS, RELEASE_TRANSITIONS
from .inputs import evaluate_input
from .scheduler import ReleaseRun
from .engine import ReleaseEngine

__all__ = [
    "RetryPolicy",
    "transition_block",
    "transition_release",
    "BLOCK_TRANSITIONS",
    "RELEASE_TRANSITIONS",
    "evaluate_input",
    "ReleaseRun",
    "ReleaseEngine",
]
