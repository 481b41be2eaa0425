# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Service

Management surface for releases: creation from a stored project, listing,
lifecycle control, block control, user inputs, log queries, real-time
subscriptions and statistics. Execution itself is delegated to the
ReleaseEngine.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Dict, List, Optional

from release_wizard.core.errors import NotFoundError, ValidationError
from release_wizard.core.logging import get_service_logger
from release_wizard.engine import ReleaseEngine
from release_wizard.models.queries import (
    ReleaseSortBy, SortOrder, StatisticsGroupBy, ReleaseList, LogPage,
    ReleaseDateCount, BlockSuccessRate, BlockUsageCount, ReleaseStatistics,
)
from release_wizard.models.release import (
    Release, ReleaseStatus, BlockExecution, BlockExecutionStatus, ExecutionLog, LogLevel, UserInput,
)
from release_wizard.models.updates import EventEnvelope
from .project_service import ProjectService

logger = get_service_logger("releases")

MOST_USED_BLOCKS_LIMIT = 10


def _sort_key(sort_by: ReleaseSortBy):
    if sort_by == ReleaseSortBy.NAME:
        return lambda r: r.name.lower()
    if sort_by == ReleaseSortBy.STATUS:
        return lambda r: r.status.value
    if sort_by == ReleaseSortBy.STARTED_AT:
        # Unstarted releases sort as the oldest
        return lambda r: (r.started_at is not None, r.started_at or r.created_at)
    if sort_by == ReleaseSortBy.COMPLETED_AT:
        return lambda r: (r.completed_at is not None, r.completed_at or r.created_at)
    return lambda r: r.created_at


def _bucket(day: date, group_by: StatisticsGroupBy) -> date:
    if group_by == StatisticsGroupBy.WEEK:
        return day - timedelta(days=day.weekday())
    if group_by == StatisticsGroupBy.MONTH:
        return day.replace(day=1)
    return day


def _block_duration(execution: BlockExecution) -> Optional[float]:
    if execution.started_at is None or execution.completed_at is None:
        return None
    return (execution.completed_at - execution.started_at).total_seconds()


class ReleaseService:
    """
    Manages releases on top of the execution engine.

    Responsibilities:
    - Release creation from stored projects
    - Queries (listing, logs, pending inputs, statistics)
    - Forwarding lifecycle and block commands to the engine
    - Opening subscriptions on the event bus
    """

    def __init__(self, engine: ReleaseEngine, project_service: ProjectService):
        self.engine = engine
        self.project_service = project_service
        self.store = engine.store
        logger.info("ReleaseService initialized")

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    async def create_release(
        self,
        project_id: str,
        name: str,
        description: str = "",
        parameter_values: Optional[Dict[str, str]] = None,
        started_by: str = "system"
    ) -> Release:
        """Create a PENDING release from the current version of a project"""
        project = await self.project_service.get_project(project_id)
        release = await self.engine.create_release(
            project, name,
            parameter_values=parameter_values,
            description=description,
            started_by=started_by
        )
        logger.info(f"Created release {release.id} for project {project_id}")
        return release

    async def get_release(self, release_id: str) -> Release:
        return await self.engine.get_release(release_id)

    async def list_releases(
        self,
        project_id: Optional[str] = None,
        status: Optional[ReleaseStatus] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        sort_by: ReleaseSortBy = ReleaseSortBy.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC
    ) -> ReleaseList:
        """
        List releases with filtering, sorting and pagination.

        `total` is the number of matches before limit/offset are applied.
        """
        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must not be negative", field="limit" if limit < 0 else "offset")

        releases = await self.store.list_releases(project_id)
        if status is not None:
            releases = [r for r in releases if r.status == status]
        if search:
            needle = search.lower()
            releases = [
                r for r in releases
                if needle in r.name.lower() or needle in r.description.lower()
            ]

        releases.sort(key=_sort_key(sort_by), reverse=sort_order == SortOrder.DESC)
        total = len(releases)
        page = releases[offset:offset + limit]

        logger.info(f"Listed {len(page)} of {total} releases")
        return ReleaseList(releases=page, total=total)

    async def start_release(self, release_id: str) -> Release:
        return await self.engine.start_release(release_id)

    async def pause_release(self, release_id: str) -> Release:
        return await self.engine.pause_release(release_id)

    async def cancel_release(self, release_id: str) -> Release:
        return await self.engine.cancel_release(release_id)

    async def delete_release(self, release_id: str) -> None:
        await self.engine.delete_release(release_id)

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    async def restart_block(
        self,
        block_execution_id: str,
        parameters: Optional[Dict[str, str]] = None
    ) -> BlockExecution:
        return await self.engine.restart_block(block_execution_id, parameters)

    async def pause_block(self, block_execution_id: str) -> BlockExecution:
        return await self.engine.pause_block(block_execution_id)

    async def cancel_block(self, block_execution_id: str) -> BlockExecution:
        return await self.engine.cancel_block(block_execution_id)

    async def _release_for_block(self, block_execution_id: str) -> Release:
        release = await self.store.find_release_by_block_execution(block_execution_id)
        if release is None:
            raise NotFoundError("BlockExecution", block_execution_id)
        return release

    async def get_block_logs(
        self,
        block_execution_id: str,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
        from_timestamp: Optional[datetime] = None,
        to_timestamp: Optional[datetime] = None
    ) -> LogPage:
        """Stored logs of one block execution, oldest first"""
        release = await self._release_for_block(block_execution_id)
        logs = await self.store.get_logs(release.id, block_execution_id)

        if level is not None:
            logs = [log for log in logs if log.level == level]
        if source is not None:
            logs = [log for log in logs if log.source == source]
        if from_timestamp is not None:
            logs = [log for log in logs if log.timestamp >= from_timestamp]
        if to_timestamp is not None:
            logs = [log for log in logs if log.timestamp <= to_timestamp]

        logs.sort(key=lambda log: log.timestamp)
        return LogPage(logs=logs[offset:offset + limit], total=len(logs))

    # ------------------------------------------------------------------
    # User inputs
    # ------------------------------------------------------------------

    async def get_pending_user_inputs(self, release_id: str) -> List[UserInput]:
        """Inputs the release is currently blocked on"""
        release = await self.get_release(release_id)
        waiting = {
            e.id: e.metadata.get("user_input_id")
            for e in release.block_executions
            if e.status == BlockExecutionStatus.WAITING_FOR_INPUT
        }
        inputs = await self.store.list_user_inputs(release_id)
        return [
            user_input for user_input in inputs
            if user_input.is_pending and waiting.get(user_input.block_execution_id) == user_input.id
        ]

    async def submit_user_input(self, input_id: str, value: str, submitted_by: str = "user") -> UserInput:
        return await self.engine.submit_user_input(input_id, value, submitted_by)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe_release_updates(
        self,
        release_id: str,
        since: Optional[datetime] = None,
        after_sequence: Optional[int] = None
    ) -> AsyncIterator[EventEnvelope]:
        release = await self.get_release(release_id)
        await self.engine.bus.open(release.id, [e.id for e in release.block_executions])
        async for envelope in self.engine.bus.subscribe_release(release.id, since, after_sequence):
            yield envelope

    async def subscribe_block_updates(
        self,
        block_execution_id: str,
        since: Optional[datetime] = None,
        after_sequence: Optional[int] = None
    ) -> AsyncIterator[EventEnvelope]:
        release = await self._release_for_block(block_execution_id)
        await self.engine.bus.open(release.id, [e.id for e in release.block_executions])
        async for envelope in self.engine.bus.subscribe_block(block_execution_id, since, after_sequence):
            yield envelope

    async def stream_block_logs(
        self,
        block_execution_id: str,
        since: Optional[datetime] = None
    ) -> AsyncIterator[ExecutionLog]:
        release = await self._release_for_block(block_execution_id)
        await self.engine.bus.open(release.id, [e.id for e in release.block_executions])
        async for log in self.engine.bus.stream_logs(block_execution_id, since):
            yield log

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_release_statistics(
        self,
        project_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        group_by: StatisticsGroupBy = StatisticsGroupBy.DAY
    ) -> ReleaseStatistics:
        """
        Aggregate a project's releases created within [from_date, to_date].

        Durations are in seconds and only cover finished runs.
        """
        releases = [
            r for r in await self.store.list_releases(project_id)
            if (from_date is None or r.created_at.date() >= from_date)
            and (to_date is None or r.created_at.date() <= to_date)
        ]

        durations = [r.duration_seconds for r in releases if r.duration_seconds is not None]

        by_date: Dict[date, ReleaseDateCount] = {}
        for release in releases:
            bucket = _bucket(release.created_at.date(), group_by)
            entry = by_date.setdefault(bucket, ReleaseDateCount(date=bucket))
            entry.count += 1
            if release.status == ReleaseStatus.SUCCEEDED:
                entry.success_count += 1
            elif release.status == ReleaseStatus.FAILED:
                entry.failure_count += 1

        finished: Dict[str, List[bool]] = defaultdict(list)
        usage: Dict[str, int] = defaultdict(int)
        block_durations: Dict[str, List[float]] = defaultdict(list)
        for release in releases:
            for execution in release.block_executions:
                usage[execution.block_type] += 1
                if execution.status in (BlockExecutionStatus.SUCCEEDED, BlockExecutionStatus.FAILED):
                    finished[execution.block_type].append(execution.status == BlockExecutionStatus.SUCCEEDED)
                duration = _block_duration(execution)
                if duration is not None:
                    block_durations[execution.block_type].append(duration)

        success_rates = []
        for block_type in sorted(finished):
            results = finished[block_type]
            successful = sum(results)
            success_rates.append(BlockSuccessRate(
                block_type=block_type,
                total_executions=len(results),
                successful_executions=successful,
                success_rate=successful / len(results)
            ))

        most_used = sorted(usage.items(), key=lambda item: (-item[1], item[0]))[:MOST_USED_BLOCKS_LIMIT]

        statistics = ReleaseStatistics(
            total_releases=len(releases),
            successful_releases=sum(1 for r in releases if r.status == ReleaseStatus.SUCCEEDED),
            failed_releases=sum(1 for r in releases if r.status == ReleaseStatus.FAILED),
            average_duration=int(sum(durations) / len(durations)) if durations else 0,
            releases_by_date=[by_date[key] for key in sorted(by_date)],
            block_success_rates=success_rates,
            most_used_blocks=[
                BlockUsageCount(
                    block_type=block_type,
                    usage_count=count,
                    average_duration=int(sum(block_durations[block_type]) / len(block_durations[block_type]))
                    if block_durations[block_type] else 0
                )
                for block_type, count in most_used
            ]
        )
        logger.info(f"Computed statistics for project {project_id} over {len(releases)} releases")
        return statistics
