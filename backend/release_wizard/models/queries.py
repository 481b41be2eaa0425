# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Query options and result models for release listing, logs and statistics.
"""

import datetime
from enum import Enum
from typing import List
from pydantic import BaseModel

from .release import Release, ExecutionLog


class ReleaseSortBy(str, Enum):
    NAME = "NAME"
    CREATED_AT = "CREATED_AT"
    STARTED_AT = "STARTED_AT"
    COMPLETED_AT = "COMPLETED_AT"
    STATUS = "STATUS"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class StatisticsGroupBy(str, Enum):
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"


class ReleaseList(BaseModel):
    releases: List[Release] = []
    total: int = 0


class LogPage(BaseModel):
    logs: List[ExecutionLog] = []
    total: int = 0


class ReleaseDateCount(BaseModel):
    date: datetime.date  # first day of the DAY / WEEK / MONTH bucket
    count: int = 0
    success_count: int = 0
    failure_count: int = 0


class BlockSuccessRate(BaseModel):
    block_type: str
    total_executions: int = 0
    successful_executions: int = 0
    success_rate: float = 0.0


class BlockUsageCount(BaseModel):
    block_type: str
    usage_count: int = 0
    average_duration: int = 0  # seconds


class ReleaseStatistics(BaseModel):
    total_releases: int = 0
    successful_releases: int = 0
    failed_releases: int = 0
    average_duration: int = 0  # seconds, finished releases only
    releases_by_date: List[ReleaseDateCount] = []
    block_success_rates: List[BlockSuccessRate] = []
    most_used_blocks: List[BlockUsageCount] = []
