# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
GitHub executors: workflow dispatch and release creation.

Both trigger once, record the remote handle in metadata and poll until
the remote job settles or the block's poll deadline passes.
"""

import asyncio
from datetime import datetime

from release_wizard.integrations import Integrations
from release_wizard.models.common import utc_now
from release_wizard.models.project import GitHubActionBlock, GitHubReleaseBlock
from release_wizard.models.release import BlockExecution, LogLevel
from .context import BlockContext
from .outcomes import ExecutionOutcome, Success, Retryable, Fatal
from .parameters import render_template, unresolved_placeholders


RESERVED_ACTION_PARAMETERS = {"ref"}


async def execute_github_action(block: GitHubActionBlock, ctx: BlockContext) -> ExecutionOutcome:
    github = ctx.integrations.github
    if github is None:
        return Fatal("GitHub integration is not configured")

    ref = ctx.get("ref", block.ref)
    run_id = ctx.metadata.get("run_id")

    if not run_id and not ctx.metadata.get("dispatched_at"):
        dispatched_at = utc_now()
        inputs = {
            name: value for name, value in ctx.parameters.items()
            if name not in RESERVED_ACTION_PARAMETERS
        }
        await github.dispatch_workflow(block.repository, block.workflow_id, ref, inputs)
        await ctx.record_metadata(dispatched_at=dispatched_at.isoformat())
        await ctx.log(f"Dispatched {block.workflow_id} on {block.repository}@{ref}", source="github")

    deadline = ctx.deadline(block)
    while True:
        if run_id:
            run = await github.get_workflow_run(block.repository, int(run_id))
        else:
            run = await github.find_dispatched_run(
                block.repository,
                block.workflow_id,
                ref,
                datetime.fromisoformat(ctx.metadata["dispatched_at"])
            )
            if run is not None:
                run_id = str(run.id)
                await ctx.record_metadata(run_id=run_id, run_url=run.html_url)
                await ctx.log(f"Tracking workflow run {run.id}: {run.html_url}", source="github")

        if run is not None and run.is_completed:
            outputs = {"run_id": str(run.id), "run_url": run.html_url, "conclusion": run.conclusion or ""}
            if run.is_successful:
                await ctx.log(f"Workflow run {run.id} succeeded", source="github")
                return Success(outputs=outputs)
            await ctx.log(
                f"Workflow run {run.id} concluded {run.conclusion}",
                level=LogLevel.ERROR,
                source="github"
            )
            return Fatal(f"Workflow run {run.id} concluded {run.conclusion}")

        if ctx.expired(deadline):
            state = run.status if run is not None else "not started"
            return Retryable(f"Workflow {block.workflow_id} {state} after {ctx.poll_timeout(block):.0f}s")
        await asyncio.sleep(ctx.poll_interval)


async def cancel_github_action(block: GitHubActionBlock, execution: BlockExecution, integrations: Integrations) -> bool:
    run_id = execution.metadata.get("run_id")
    if not run_id or integrations.github is None:
        return False
    await integrations.github.cancel_workflow_run(block.repository, int(run_id))
    return True


async def execute_github_release(block: GitHubReleaseBlock, ctx: BlockContext) -> ExecutionOutcome:
    github = ctx.integrations.github
    if github is None:
        return Fatal("GitHub integration is not configured")

    tag_name = render_template(block.tag_pattern, ctx.parameters)
    missing = unresolved_placeholders(tag_name)
    if missing:
        return Fatal(f"Tag pattern '{block.tag_pattern}' has unresolved placeholders: {', '.join(missing)}")

    release_id = ctx.metadata.get("release_id")
    if release_id:
        release = await github.get_release(block.repository, int(release_id))
    else:
        release = await github.create_release(
            block.repository,
            tag_name,
            target_commitish=ctx.get("release_branch", block.release_branch),
            name=ctx.get("name", tag_name),
            body=ctx.get("body", ""),
            draft=block.draft,
            prerelease=block.prerelease
        )
        await ctx.record_metadata(release_id=str(release.id), release_url=release.html_url)
        await ctx.log(f"Created release {release.tag_name}: {release.html_url}", source="github")

    deadline = ctx.deadline(block)
    while not (block.draft or release.is_published):
        if ctx.expired(deadline):
            return Retryable(f"Release {tag_name} not published after {ctx.poll_timeout(block):.0f}s")
        await asyncio.sleep(ctx.poll_interval)
        release = await github.get_release(block.repository, release.id)

    return Success(outputs={
        "release_id": str(release.id),
        "release_url": release.html_url,
        "tag_name": release.tag_name,
    })
