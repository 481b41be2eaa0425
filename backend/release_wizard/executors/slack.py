# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""Slack message executor."""

from release_wizard.models.project import SlackMessageBlock
from .context import BlockContext
from .outcomes import ExecutionOutcome, Success, Fatal
from .parameters import render_template


async def execute_slack_message(block: SlackMessageBlock, ctx: BlockContext) -> ExecutionOutcome:
    slack = ctx.integrations.slack
    if slack is None:
        return Fatal("Slack integration is not configured")

    channel = ctx.get("channel", block.channel)

    # Already posted by an earlier attempt whose outcome was lost
    if ctx.metadata.get("message_ts"):
        return Success(outputs={
            "message_id": ctx.metadata["message_ts"],
            "channel": ctx.metadata.get("channel", channel),
        })

    if block.message_template:
        text = render_template(block.message_template, ctx.parameters)
    else:
        text = ctx.get("message")
    if not text:
        return Fatal("Slack message has no text: set message_template or a 'message' parameter")

    message = await slack.post_message(channel, text, thread_ts=ctx.get("thread_ts", block.thread_ts))
    await ctx.record_metadata(message_ts=message.ts, channel=message.channel)
    await ctx.log(f"Posted message {message.ts} to {message.channel}", source="slack")

    return Success(outputs={"message_id": message.ts, "channel": message.channel})
