# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block Executor Registry

Lookup table from block type to executor. Containers have no executor:
they are flattened into the execution plan before anything runs.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from release_wizard.core.errors import ExecutionError
from release_wizard.core.logging import get_engine_logger
from release_wizard.integrations import Integrations
from release_wizard.integrations.errors import AdapterError
from release_wizard.models.project import BlockBase, BlockType
from release_wizard.models.release import BlockExecution
from .context import BlockContext
from .outcomes import ExecutionOutcome, Retryable, Fatal, outcome_for_adapter_error
from .slack import execute_slack_message
from .teamcity import execute_teamcity_build, cancel_teamcity_build
from .github import execute_github_action, cancel_github_action, execute_github_release
from .maven_central import execute_maven_central_status
from .user_action import execute_user_action

logger = get_engine_logger()

ExecuteFn = Callable[[BlockBase, BlockContext], Awaitable[ExecutionOutcome]]
CancelFn = Callable[[BlockBase, BlockExecution, Integrations], Awaitable[bool]]


@dataclass(frozen=True)
class ExecutorSpec:
    execute: ExecuteFn
    # Executor enforces its own poll deadline; the block timeout is not wrapped around it
    manages_timeout: bool = False
    cancel: Optional[CancelFn] = None


DEFAULT_EXECUTORS: Dict[BlockType, ExecutorSpec] = {
    BlockType.SLACK_MESSAGE: ExecutorSpec(execute_slack_message),
    BlockType.TEAMCITY_BUILD: ExecutorSpec(
        execute_teamcity_build, manages_timeout=True, cancel=cancel_teamcity_build
    ),
    BlockType.GITHUB_ACTION: ExecutorSpec(
        execute_github_action, manages_timeout=True, cancel=cancel_github_action
    ),
    BlockType.GITHUB_RELEASE: ExecutorSpec(execute_github_release, manages_timeout=True),
    BlockType.MAVEN_CENTRAL_STATUS: ExecutorSpec(execute_maven_central_status),
    BlockType.USER_ACTION: ExecutorSpec(execute_user_action),
}


class ExecutorRegistry:
    """
    Dispatches blocks to executors and normalizes everything they can
    raise into an ExecutionOutcome.
    """

    def __init__(self, executors: Optional[Dict[BlockType, ExecutorSpec]] = None):
        self._executors: Dict[BlockType, ExecutorSpec] = dict(
            DEFAULT_EXECUTORS if executors is None else executors
        )

    def register(self, block_type: BlockType, spec: ExecutorSpec) -> None:
        self._executors[block_type] = spec

    def get(self, block_type) -> ExecutorSpec:
        try:
            return self._executors[BlockType(block_type)]
        except (KeyError, ValueError):
            raise ExecutionError(f"No executor registered for block type '{block_type}'")

    async def execute(self, block: BlockBase, ctx: BlockContext) -> ExecutionOutcome:
        """
        Run one attempt of a block.

        Adapter errors become Retryable / Fatal according to their kind.
        Blocks whose executor does not manage its own deadline are wrapped
        in the declared timeout; expiry is reported as a timed-out Retryable.
        """
        try:
            spec = self.get(block.type)
        except ExecutionError as e:
            return Fatal(e.message)

        try:
            if block.timeout and not spec.manages_timeout:
                return await asyncio.wait_for(spec.execute(block, ctx), timeout=block.timeout)
            return await spec.execute(block, ctx)
        except asyncio.TimeoutError:
            return Retryable(f"Block '{block.name}' exceeded its timeout of {block.timeout}s", timed_out=True)
        except AdapterError as e:
            return outcome_for_adapter_error(e)
        except ExecutionError as e:
            return Fatal(e.message)

    async def cancel_remote(self, block: BlockBase, execution: BlockExecution, integrations: Integrations) -> None:
        """Best-effort cancel of the remote job behind a block; failures are logged only"""
        try:
            spec = self.get(block.type)
        except ExecutionError:
            return
        if spec.cancel is None:
            return
        try:
            if await spec.cancel(block, execution, integrations):
                logger.info(f"Cancelled remote job for block execution {execution.id}")
        except AdapterError as e:
            logger.warning(f"Remote cancel failed for block execution {execution.id}: {e.message}")
