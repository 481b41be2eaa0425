# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Pydantic models for Release Wizard.
"""

from .common import new_id, utc_now
from .project import (
    ParameterType, ValidationType, ValidationRule, ProjectParameter,
    ManualSource, ProjectParameterSource, BlockOutputSource, DefaultValueSource,
    ParameterSource, BlockParameter, OutputType, BlockOutput,
    BlockType, UserInputType, BlockBase, ContainerBlock, SlackMessageBlock,
    TeamCityBuildBlock, MavenCentralStatusBlock, GitHubActionBlock,
    GitHubReleaseBlock, UserActionBlock, Block, BlockConnectionType,
    BlockConnection, BlockGraph, Project,
)
from .release import (
    ReleaseStatus, BlockExecutionStatus, LogLevel, BlockExecution, Release,
    ExecutionLog, UserInput, TERMINAL_RELEASE_STATUSES, TERMINAL_BLOCK_STATUSES,
)
from .updates import (
    ReleaseStatusUpdate, ReleaseBlockUpdate, ReleaseLogUpdate, UserInputRequired,
    ReleaseUpdate, BlockStatusUpdate, BlockLogUpdate, BlockMetadataUpdate,
    BlockOutputUpdate, BlockExecutionUpdate, EventEnvelope,
)
from .queries import (
    ReleaseSortBy, SortOrder, StatisticsGroupBy, ReleaseList, LogPage,
    ReleaseDateCount, BlockSuccessRate, BlockUsageCount, ReleaseStatistics,
)
