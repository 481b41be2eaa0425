# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""User action executor: asks the operator, never calls out."""

from release_wizard.models.project import UserActionBlock
from .context import BlockContext
from .outcomes import ExecutionOutcome, NeedsInput, InputRequest
from .parameters import render_template


async def execute_user_action(block: UserActionBlock, ctx: BlockContext) -> ExecutionOutcome:
    return NeedsInput(InputRequest(
        prompt=render_template(block.instructions, ctx.parameters),
        input_type=block.input_type,
        options=list(block.options)
    ))
