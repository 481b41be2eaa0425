# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Models

Runtime records owned by the execution engine: releases, block
executions, execution logs and user inputs.
"""

from datetime import datetime
from enum import Enum
from typing import List, Dict, Optional
from pydantic import BaseModel, Field

from .common import new_id, utc_now
from .project import Project, UserInputType


class ReleaseStatus(str, Enum):
    PENDING = "PENDING"      # Created but not started
    RUNNING = "RUNNING"      # In progress
    PAUSED = "PAUSED"        # Waiting for user input or operator action
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"  # Cancelled by user

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RELEASE_STATUSES


TERMINAL_RELEASE_STATUSES = frozenset({
    ReleaseStatus.SUCCEEDED, ReleaseStatus.FAILED, ReleaseStatus.CANCELLED
})


class BlockExecutionStatus(str, Enum):
    WAITING = "WAITING"                      # Waiting for dependencies
    READY = "READY"                          # Dependencies satisfied
    RUNNING = "RUNNING"
    WAITING_FOR_INPUT = "WAITING_FOR_INPUT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RETRYING = "RETRYING"                    # Backoff timer pending

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_BLOCK_STATUSES


TERMINAL_BLOCK_STATUSES = frozenset({
    BlockExecutionStatus.SUCCEEDED, BlockExecutionStatus.FAILED, BlockExecutionStatus.CANCELLED
})


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class BlockExecution(BaseModel):
    """One block's runtime record within a release"""
    id: str = Field(default_factory=new_id)
    release_id: str
    block_id: str
    block_type: str
    block_name: str = ""
    status: BlockExecutionStatus = BlockExecutionStatus.WAITING
    parameter_values: Dict[str, str] = {}
    parameter_overrides: Dict[str, str] = {}
    output_values: Dict[str, str] = {}
    metadata: Dict[str, str] = {}  # adapter-specific (build id, run url, ...)
    retry_count: int = 0
    max_retries: int = 3
    timeout_count: int = 0
    held: bool = False  # set by pause_block; held blocks are never dispatched
    error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)


class Release(BaseModel):
    """One execution of a project's block graph"""
    id: str = Field(default_factory=new_id)
    project_id: str
    name: str
    description: str = ""
    parameter_values: Dict[str, str] = {}
    status: ReleaseStatus = ReleaseStatus.PENDING
    block_executions: List[BlockExecution] = []
    project: Project  # snapshot taken at creation, never re-fetched
    started_by: str = "system"
    user_paused: bool = False
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)

    def get_block_execution(self, block_execution_id: str) -> Optional[BlockExecution]:
        for execution in self.block_executions:
            if execution.id == block_execution_id:
                return execution
        return None

    def execution_for_block(self, block_id: str) -> Optional[BlockExecution]:
        for execution in self.block_executions:
            if execution.block_id == block_id:
                return execution
        return None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class ExecutionLog(BaseModel):
    """Append-only log line attached to one block execution"""
    id: str = Field(default_factory=new_id)
    block_execution_id: str
    level: LogLevel = LogLevel.INFO
    message: str
    timestamp: datetime = Field(default_factory=utc_now)
    source: Optional[str] = None  # "system", "slack", "teamcity", ...
    metadata: Dict[str, str] = {}


class UserInput(BaseModel):
    """Human approval or request tied to a WAITING_FOR_INPUT block"""
    id: str = Field(default_factory=new_id)
    release_id: str
    block_execution_id: str
    prompt: str
    input_type: UserInputType = UserInputType.CONFIRMATION
    options: List[str] = []
    is_required: bool = True
    submitted_value: Optional[str] = None
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.submitted_at is None
