# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
User input evaluation.

Turns a submitted value into the outcome of the waiting UserAction block.
"""

from typing import Tuple

from release_wizard.core.errors import ValidationError
from release_wizard.executors.outcomes import ExecutionOutcome, Success, Fatal
from release_wizard.models.project import UserInputType
from release_wizard.models.release import UserInput


AFFIRMATIVE = {"true", "yes", "y", "approve", "approved", "confirm", "confirmed"}
NEGATIVE = {"false", "no", "n", "reject", "rejected", "deny", "denied"}


def evaluate_input(user_input: UserInput, value: str) -> Tuple[str, ExecutionOutcome]:
    """
    Validate a submitted value against its input type.

    Returns (normalized value, outcome). A negative confirmation fails the
    block; every accepted answer becomes the block's "value" output.

    Raises ValidationError when the value does not fit the input type.
    """
    value = (value or "").strip()
    input_type = user_input.input_type

    if input_type == UserInputType.CONFIRMATION:
        answer = value.lower()
        if answer in AFFIRMATIVE:
            return "true", Success(outputs={"value": "true"})
        if answer in NEGATIVE:
            return "false", Fatal(f"Rejected by operator: {user_input.prompt}")
        raise ValidationError(f"'{value}' is not a yes/no answer", field="value")

    if input_type == UserInputType.CHOICE:
        if value not in user_input.options:
            raise ValidationError(
                f"'{value}' is not one of: {', '.join(user_input.options)}", field="value"
            )
        return value, Success(outputs={"value": value})

    if input_type == UserInputType.MULTI_CHOICE:
        choices = [choice.strip() for choice in value.split(",") if choice.strip()]
        if not choices and user_input.is_required:
            raise ValidationError("At least one option must be selected", field="value")
        invalid = [choice for choice in choices if choice not in user_input.options]
        if invalid:
            raise ValidationError(f"Unknown options: {', '.join(invalid)}", field="value")
        normalized = ",".join(choices)
        return normalized, Success(outputs={"value": normalized})

    # TEXT
    if not value and user_input.is_required:
        raise ValidationError("A value is required", field="value")
    return value, Success(outputs={"value": value})
