# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Maven Central deployment status executor.

One status check per attempt. Anything short of PUBLISHED or FAILED is
retryable, so the wait is bounded by the block's retry budget.
"""

from release_wizard.models.project import MavenCentralStatusBlock
from release_wizard.models.release import LogLevel
from .context import BlockContext
from .outcomes import ExecutionOutcome, Success, Retryable, Fatal


async def execute_maven_central_status(block: MavenCentralStatusBlock, ctx: BlockContext) -> ExecutionOutcome:
    maven = ctx.integrations.maven_central
    if maven is None:
        return Fatal("Maven Central integration is not configured")

    deployment_id = ctx.get("deployment_id", block.deployment_id)
    if not deployment_id:
        return Fatal("No deployment id: set deployment_id on the block or as a parameter")

    status = await maven.check_deployment_status(deployment_id)
    await ctx.log(f"Deployment {deployment_id} is {status.state.value}", source="maven")

    if status.is_published:
        return Success(outputs={
            "deployment_state": status.state.value,
            "purls": ",".join(status.purls),
        })
    if status.is_failed:
        await ctx.log(f"Deployment {deployment_id} failed: {status.errors}", level=LogLevel.ERROR, source="maven")
        return Fatal(f"Deployment {deployment_id} failed validation or publishing")
    return Retryable(f"Deployment {deployment_id} is {status.state.value}")
