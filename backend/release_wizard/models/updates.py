# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Real-time update DTOs published by the engine.
"""

from datetime import datetime
from typing import Dict, Optional, Union, Literal, Annotated
from pydantic import BaseModel, Field

from .common import utc_now
from .release import (
    ReleaseStatus, BlockExecutionStatus, BlockExecution, ExecutionLog, UserInput
)


# ============================================================================
# Release-level updates
# ============================================================================

class ReleaseStatusUpdate(BaseModel):
    kind: Literal["release_status"] = "release_status"
    release_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    old_status: ReleaseStatus
    new_status: ReleaseStatus


class ReleaseBlockUpdate(BaseModel):
    """Snapshot of a block execution after it changed"""
    kind: Literal["release_block"] = "release_block"
    release_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    block_execution: BlockExecution


class ReleaseLogUpdate(BaseModel):
    kind: Literal["release_log"] = "release_log"
    release_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    log: ExecutionLog


class UserInputRequired(BaseModel):
    kind: Literal["user_input_required"] = "user_input_required"
    release_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    user_input: UserInput


ReleaseUpdate = Annotated[
    Union[ReleaseStatusUpdate, ReleaseBlockUpdate, ReleaseLogUpdate, UserInputRequired],
    Field(discriminator="kind")
]


# ============================================================================
# Block-level updates
# ============================================================================

class BlockStatusUpdate(BaseModel):
    kind: Literal["block_status"] = "block_status"
    block_execution_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    old_status: BlockExecutionStatus
    new_status: BlockExecutionStatus


class BlockLogUpdate(BaseModel):
    kind: Literal["block_log"] = "block_log"
    block_execution_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    log: ExecutionLog


class BlockMetadataUpdate(BaseModel):
    kind: Literal["block_metadata"] = "block_metadata"
    block_execution_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, str]


class BlockOutputUpdate(BaseModel):
    kind: Literal["block_output"] = "block_output"
    block_execution_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    outputs: Dict[str, str]


BlockExecutionUpdate = Annotated[
    Union[BlockStatusUpdate, BlockLogUpdate, BlockMetadataUpdate, BlockOutputUpdate],
    Field(discriminator="kind")
]


class EventEnvelope(BaseModel):
    """
    One entry of a release's ordered event log.

    Release-level updates set release_update, block-level ones set
    block_update. A log sets both (ReleaseLogUpdate / BlockLogUpdate) and
    carries the ExecutionLog itself in `log`.
    """
    sequence: int
    release_id: str
    block_execution_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    release_update: Optional[ReleaseUpdate] = None
    block_update: Optional[BlockExecutionUpdate] = None
    log: Optional[ExecutionLog] = None

    @property
    def is_terminal_status(self) -> bool:
        update = self.release_update
        return (
            isinstance(update, ReleaseStatusUpdate)
            and update.new_status.is_terminal
        )
