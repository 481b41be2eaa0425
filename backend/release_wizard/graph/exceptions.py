# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block Graph Exceptions
"""

from typing import List
from pydantic import BaseModel

from release_wizard.core.errors import ValidationError


class ValidationIssue(BaseModel):
    """A single problem found in a block graph or project"""
    field: str
    message: str
    code: str


class GraphValidationError(ValidationError):
    """Block graph validation failed"""
    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues) or "Invalid block graph"
        super().__init__(
            f"Block graph validation failed: {summary}",
            field=issues[0].field if issues else None,
            details={"issues": [issue.model_dump() for issue in issues]}
        )
