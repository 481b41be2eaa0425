# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Project Models

Pydantic models for a project: its parameters and its block graph.
Block variants share a common header (BlockBase) and are told apart by
their `type` tag.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union, Literal, Annotated
from pydantic import BaseModel, Field

from .common import new_id, utc_now


class ParameterType(str, Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    SECRET = "SECRET"
    URL = "URL"
    EMAIL = "EMAIL"
    PATH = "PATH"


class ValidationType(str, Enum):
    REGEX = "REGEX"
    MIN_LENGTH = "MIN_LENGTH"
    MAX_LENGTH = "MAX_LENGTH"
    REQUIRED = "REQUIRED"
    URL_FORMAT = "URL_FORMAT"
    EMAIL_FORMAT = "EMAIL_FORMAT"


class ValidationRule(BaseModel):
    type: ValidationType
    value: str = ""
    error_message: str = ""


class ProjectParameter(BaseModel):
    """Release-time input declared by a project"""
    name: str
    description: str = ""
    type: ParameterType = ParameterType.STRING
    default_value: Optional[str] = None
    is_optional: bool = False
    validation_rules: List[ValidationRule] = []


# ============================================================================
# Parameter sources (data-flow edges)
# ============================================================================

class ManualSource(BaseModel):
    """Value supplied by the operator when the release is created"""
    kind: Literal["manual"] = "manual"


class ProjectParameterSource(BaseModel):
    kind: Literal["project_parameter"] = "project_parameter"
    parameter_name: str


class BlockOutputSource(BaseModel):
    """Value produced by another block; implies a data dependency"""
    kind: Literal["block_output"] = "block_output"
    block_id: str
    output_name: str


class DefaultValueSource(BaseModel):
    kind: Literal["default_value"] = "default_value"
    value: str


ParameterSource = Annotated[
    Union[ManualSource, ProjectParameterSource, BlockOutputSource, DefaultValueSource],
    Field(discriminator="kind")
]


class BlockParameter(BaseModel):
    name: str
    description: str = ""
    type: ParameterType = ParameterType.STRING
    source: ParameterSource
    is_optional: bool = False
    validation_rules: List[ValidationRule] = []


class OutputType(str, Enum):
    STRING = "STRING"
    URL = "URL"
    FILE_PATH = "FILE_PATH"
    BUILD_NUMBER = "BUILD_NUMBER"
    ARTIFACT_LINK = "ARTIFACT_LINK"
    STATUS = "STATUS"


class BlockOutput(BaseModel):
    name: str
    description: str = ""
    type: OutputType = OutputType.STRING


# ============================================================================
# Blocks
# ============================================================================

class BlockType(str, Enum):
    CONTAINER = "container"
    SLACK_MESSAGE = "slack_message"
    TEAMCITY_BUILD = "teamcity_build"
    MAVEN_CENTRAL_STATUS = "maven_central_status"
    GITHUB_ACTION = "github_action"
    GITHUB_RELEASE = "github_release"
    USER_ACTION = "user_action"


class UserInputType(str, Enum):
    TEXT = "TEXT"
    CHOICE = "CHOICE"
    CONFIRMATION = "CONFIRMATION"
    MULTI_CHOICE = "MULTI_CHOICE"


class BlockBase(BaseModel):
    """Header shared by every block variant"""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    parameters: List[BlockParameter] = []
    outputs: List[BlockOutput] = []
    timeout: Optional[int] = None  # seconds
    max_retries: Optional[int] = None  # falls back to the engine default


class ContainerBlock(BlockBase):
    type: Literal["container"] = "container"
    child_graph: "BlockGraph"


class SlackMessageBlock(BlockBase):
    type: Literal["slack_message"] = "slack_message"
    channel: str
    message_template: Optional[str] = None  # ${param} placeholders; falls back to the "message" parameter
    thread_ts: Optional[str] = None


class TeamCityBuildBlock(BlockBase):
    type: Literal["teamcity_build"] = "teamcity_build"
    build_config_id: str
    branch: Optional[str] = None


class MavenCentralStatusBlock(BlockBase):
    type: Literal["maven_central_status"] = "maven_central_status"
    deployment_id: Optional[str] = None  # may also come from the "deployment_id" parameter


class GitHubActionBlock(BlockBase):
    type: Literal["github_action"] = "github_action"
    repository: str  # owner/name
    workflow_id: str
    ref: str = "main"


class GitHubReleaseBlock(BlockBase):
    type: Literal["github_release"] = "github_release"
    repository: str
    tag_pattern: str  # e.g. "v${version}"
    release_branch: str = "main"
    draft: bool = False
    prerelease: bool = False


class UserActionBlock(BlockBase):
    type: Literal["user_action"] = "user_action"
    instructions: str
    input_type: UserInputType = UserInputType.CONFIRMATION
    options: List[str] = []


Block = Annotated[
    Union[
        ContainerBlock,
        SlackMessageBlock,
        TeamCityBuildBlock,
        MavenCentralStatusBlock,
        GitHubActionBlock,
        GitHubReleaseBlock,
        UserActionBlock,
    ],
    Field(discriminator="type")
]


class BlockConnectionType(str, Enum):
    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"


class BlockConnection(BaseModel):
    """Directed control-flow edge"""
    id: str = Field(default_factory=new_id)
    from_block_id: str
    to_block_id: str
    type: BlockConnectionType = BlockConnectionType.SEQUENTIAL


class BlockGraph(BaseModel):
    blocks: List[Block] = []
    connections: List[BlockConnection] = []


ContainerBlock.model_rebuild()
BlockGraph.model_rebuild()


class Project(BaseModel):
    """Immutable release template; releases keep their own snapshot"""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    parameters: List[ProjectParameter] = []
    connections: List[str] = []  # connection ids
    block_graph: BlockGraph = Field(default_factory=BlockGraph)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = 1
