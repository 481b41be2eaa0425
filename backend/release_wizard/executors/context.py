# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block Execution Context

What an executor sees of the release while it runs one block.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from release_wizard.core.config import Config
from release_wizard.integrations import Integrations
from release_wizard.models.project import BlockBase
from release_wizard.models.release import BlockExecution, LogLevel


LogSink = Callable[[LogLevel, str, str], Awaitable[None]]
MetadataSink = Callable[[Dict[str, str]], Awaitable[None]]


class BlockContext:
    """
    Execution context for one attempt of one block.

    Tracks:
    - Resolved parameter values
    - Adapter metadata recorded so far (survives retries and restarts)
    - Log and metadata sinks wired to the engine
    """

    def __init__(
        self,
        release_id: str,
        execution: BlockExecution,
        parameters: Dict[str, str],
        integrations: Integrations,
        config: Config,
        log_sink: LogSink,
        metadata_sink: MetadataSink
    ):
        self.release_id = release_id
        self.execution_id = execution.id
        self.attempt = execution.retry_count + 1
        self.parameters = parameters
        self.metadata: Dict[str, str] = dict(execution.metadata)
        self.integrations = integrations
        self.config = config
        self._log_sink = log_sink
        self._metadata_sink = metadata_sink

    async def log(self, message: str, level: LogLevel = LogLevel.INFO, source: str = "system") -> None:
        await self._log_sink(level, message, source)

    async def record_metadata(self, **values: str) -> None:
        """Persist adapter handles (build id, run id, ...) before waiting on them"""
        values = {key: str(value) for key, value in values.items()}
        self.metadata.update(values)
        await self._metadata_sink(values)

    @property
    def poll_interval(self) -> float:
        return self.config.poll_interval

    def poll_timeout(self, block: BlockBase) -> float:
        """Poll deadline for executors that wait on a remote job"""
        return float(block.timeout) if block.timeout else self.config.poll_timeout

    def deadline(self, block: BlockBase) -> float:
        return asyncio.get_running_loop().time() + self.poll_timeout(block)

    @staticmethod
    def expired(deadline: float) -> bool:
        return asyncio.get_running_loop().time() >= deadline

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.parameters.get(name)
        return value if value else default
