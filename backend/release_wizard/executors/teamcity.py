# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
TeamCity build executor.

Triggers the build once, records its id, then polls until the build
finishes. A re-attempt with a recorded build id resumes polling instead
of queueing another build.
"""

import asyncio

from release_wizard.integrations import Integrations
from release_wizard.models.project import TeamCityBuildBlock
from release_wizard.models.release import BlockExecution, LogLevel
from .context import BlockContext
from .outcomes import ExecutionOutcome, Success, Retryable, Fatal


async def execute_teamcity_build(block: TeamCityBuildBlock, ctx: BlockContext) -> ExecutionOutcome:
    teamcity = ctx.integrations.teamcity
    if teamcity is None:
        return Fatal("TeamCity integration is not configured")

    build_id = ctx.metadata.get("build_id")
    if build_id:
        await ctx.log(f"Resuming TeamCity build {build_id}", source="teamcity")
    else:
        branch = ctx.get("branch", block.branch)
        properties = {name: value for name, value in ctx.parameters.items() if name != "branch"}
        build = await teamcity.trigger_build(block.build_config_id, branch=branch, properties=properties)
        build_id = build.id
        await ctx.record_metadata(build_id=build.id, build_url=build.web_url or "")
        await ctx.log(f"Queued TeamCity build {build.id} for {block.build_config_id}", source="teamcity")

    deadline = ctx.deadline(block)
    while True:
        build = await teamcity.get_build_status(build_id)
        if build.is_finished:
            outputs = {
                "build_id": build.id,
                "build_number": build.number or "",
                "build_url": build.web_url or ctx.metadata.get("build_url", ""),
                "status": build.status or "UNKNOWN",
            }
            if build.is_successful:
                await ctx.log(f"TeamCity build {build.id} succeeded (#{build.number})", source="teamcity")
                return Success(outputs=outputs)
            await ctx.log(
                f"TeamCity build {build.id} finished with {build.status}: {build.status_text or ''}",
                level=LogLevel.ERROR,
                source="teamcity"
            )
            return Fatal(f"TeamCity build {build.id} finished with status {build.status}")

        if ctx.expired(deadline):
            return Retryable(
                f"TeamCity build {build_id} still {build.state} after {ctx.poll_timeout(block):.0f}s"
            )
        await asyncio.sleep(ctx.poll_interval)


async def cancel_teamcity_build(block: TeamCityBuildBlock, execution: BlockExecution, integrations: Integrations) -> bool:
    """Best-effort remote cancel; returns False when there is nothing to cancel"""
    build_id = execution.metadata.get("build_id")
    if not build_id or integrations.teamcity is None:
        return False
    await integrations.teamcity.cancel_build(build_id)
    return True
