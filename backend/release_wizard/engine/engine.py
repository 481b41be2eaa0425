# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Engine

Entry point for everything that drives releases: creation (with
parameter and graph validation), the inbound operations of the
management layer, crash recovery and status waiting. Each started
release is handed to its own ReleaseRun.
"""

import asyncio
from typing import Dict, List, Optional

from release_wizard.core.config import Config, get_config
from release_wizard.core.errors import (
    ConflictError, InvalidStateError, NotFoundError, ValidationError
)
from release_wizard.core.logging import get_engine_logger, log_event
from release_wizard.events.bus import EventBus
from release_wizard.executors.parameters import check_value, manual_key
from release_wizard.executors.registry import ExecutorRegistry
from release_wizard.graph.exceptions import ValidationIssue
from release_wizard.graph.plan import ExecutionPlan
from release_wizard.graph.validation import build_execution_plan
from release_wizard.integrations import Integrations
from release_wizard.models.project import ManualSource, DefaultValueSource, Project
from release_wizard.models.release import (
    BlockExecution, Release, ReleaseStatus, UserInput
)
from release_wizard.models.updates import ReleaseStatusUpdate
from release_wizard.storage.base import ReleaseStore, ACTIVE_STATUSES
from .retry import RetryPolicy
from .scheduler import ReleaseRun
from .state import transition_release

logger = get_engine_logger()


class ReleaseEngine:
    """
    Release execution engine.

    Storage is passed in explicitly; nothing here reaches for a global
    database handle.
    """

    def __init__(
        self,
        store: ReleaseStore,
        integrations: Optional[Integrations] = None,
        registry: Optional[ExecutorRegistry] = None,
        config: Optional[Config] = None,
        retry_policy: Optional[RetryPolicy] = None,
        bus: Optional[EventBus] = None
    ):
        self.config = config or get_config()
        self.store = store
        self.bus = bus or EventBus(store)
        self.integrations = integrations or Integrations()
        self.registry = registry or ExecutorRegistry()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)

        self._runs: Dict[str, ReleaseRun] = {}
        # Tracked only for releases someone is waiting on
        self._statuses: Dict[str, ReleaseStatus] = {}
        self._status_waiters: Dict[str, int] = {}
        self._status_changed = asyncio.Condition()
        self._lock = asyncio.Lock()

    @property
    def active_release_ids(self) -> List[str]:
        return list(self._runs)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _resolve_release_parameters(
        self,
        project: Project,
        plan: ExecutionPlan,
        values: Dict[str, str]
    ) -> Dict[str, str]:
        """Fill defaults and check every release-time value; raises ValidationError"""
        resolved = dict(values)
        issues: List[ValidationIssue] = []

        for parameter in project.parameters:
            value = resolved.get(parameter.name)
            if not value and parameter.default_value is not None:
                value = parameter.default_value
                resolved[parameter.name] = value
            if not value:
                if not parameter.is_optional:
                    issues.append(ValidationIssue(
                        field=parameter.name,
                        message=f"Missing value for required parameter '{parameter.name}'",
                        code="MISSING_PARAMETER"
                    ))
                continue
            for problem in check_value(value, parameter.type, parameter.validation_rules):
                issues.append(ValidationIssue(
                    field=parameter.name,
                    message=f"Parameter '{parameter.name}': {problem}",
                    code="INVALID_PARAMETER"
                ))

        for block_id in plan.order:
            block = plan.block(block_id)
            for parameter in block.parameters:
                field = manual_key(block.id, parameter.name)
                if isinstance(parameter.source, ManualSource):
                    value = resolved.get(field)
                elif isinstance(parameter.source, DefaultValueSource):
                    value = parameter.source.value
                else:
                    # Checked when the block is dispatched
                    continue
                if not value:
                    if not parameter.is_optional:
                        issues.append(ValidationIssue(
                            field=field,
                            message=f"Missing value for block parameter '{field}'",
                            code="MISSING_PARAMETER"
                        ))
                    continue
                for problem in check_value(value, parameter.type, parameter.validation_rules):
                    issues.append(ValidationIssue(
                        field=field,
                        message=f"Block parameter '{field}': {problem}",
                        code="INVALID_PARAMETER"
                    ))

        if issues:
            raise ValidationError(
                "; ".join(issue.message for issue in issues),
                field=issues[0].field,
                details={"issues": [issue.model_dump() for issue in issues]}
            )
        return resolved

    async def create_release(
        self,
        project: Project,
        name: str,
        parameter_values: Optional[Dict[str, str]] = None,
        description: str = "",
        started_by: str = "system"
    ) -> Release:
        """
        Validate and persist a new PENDING release.

        The project is snapshotted into the release; later edits to the
        project never reach it. Raises GraphValidationError for an invalid
        block graph and ValidationError for bad parameter values.
        """
        if not name or not name.strip():
            raise ValidationError("Release name must not be blank", field="name")

        plan = build_execution_plan(project.block_graph, [p.name for p in project.parameters])
        values = self._resolve_release_parameters(project, plan, parameter_values or {})

        release = Release(
            project_id=project.id,
            name=name.strip(),
            description=description,
            parameter_values=values,
            project=project.model_copy(deep=True),
            started_by=started_by
        )
        for block_id in plan.order:
            block = plan.block(block_id)
            release.block_executions.append(BlockExecution(
                release_id=release.id,
                block_id=block.id,
                block_type=block.type,
                block_name=block.name,
                max_retries=block.max_retries if block.max_retries is not None else self.config.default_max_retries
            ))

        await self.store.save_release(release)
        await self.bus.open(release.id, [e.id for e in release.block_executions])

        log_event(
            logger, "release_created",
            release_id=release.id,
            project_id=project.id,
            block_count=len(release.block_executions)
        )
        return release

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    async def get_release(self, release_id: str) -> Release:
        release = await self.store.get_release(release_id)
        if release is None:
            raise NotFoundError("Release", release_id)
        return release

    def _plan_for(self, release: Release) -> ExecutionPlan:
        return build_execution_plan(release.project.block_graph)

    async def _open(self, release: Release) -> None:
        await self.bus.open(release.id, [e.id for e in release.block_executions])

    async def _live_run_for_block(self, block_execution_id: str, operation: str) -> ReleaseRun:
        for run in self._runs.values():
            if any(e.id == block_execution_id for e in run.release.block_executions):
                return run
        release = await self.store.find_release_by_block_execution(block_execution_id)
        if release is None:
            raise NotFoundError("BlockExecution", block_execution_id)
        raise InvalidStateError("Release", release.id, release.status.value, operation)

    # ------------------------------------------------------------------
    # Release operations (idempotent against repeated delivery)
    # ------------------------------------------------------------------

    async def start_release(self, release_id: str) -> Release:
        """
        Start a PENDING release, or resume one paused by the operator.

        Any other status is a no-op.
        """
        async with self._lock:
            run = self._runs.get(release_id)
            if run is not None:
                await run.resume()
                return await self.get_release(release_id)

            release = await self.get_release(release_id)
            if release.status != ReleaseStatus.PENDING:
                return release

            plan = self._plan_for(release)
            await self._open(release)
            old_status = transition_release(release, ReleaseStatus.RUNNING)
            await self.store.save_release(release)
            await self.bus.publish(ReleaseStatusUpdate(
                release_id=release.id, old_status=old_status, new_status=release.status
            ))
            await self._notify_status(release.id, release.status)
            log_event(logger, "release_started", release_id=release.id)

            run = ReleaseRun(self, release, plan)
            self._runs[release.id] = run
            run.start()
            return release.model_copy(deep=True)

    async def pause_release(self, release_id: str) -> Release:
        run = self._runs.get(release_id)
        if run is not None:
            await run.pause()
            return await self.get_release(release_id)

        release = await self.get_release(release_id)
        if release.status == ReleaseStatus.PAUSED:
            return release
        raise InvalidStateError("Release", release_id, release.status.value, "pause")

    async def cancel_release(self, release_id: str) -> Release:
        """Cancel a release; cancelling a CANCELLED release is a no-op"""
        async with self._lock:
            run = self._runs.get(release_id)
            if run is None:
                release = await self.get_release(release_id)
                if release.status == ReleaseStatus.CANCELLED:
                    return release
                if release.status.is_terminal:
                    raise InvalidStateError("Release", release_id, release.status.value, "cancel")
                # Not scheduled here (PENDING, or live but not recovered): cancel in place
                await self._open(release)
                run = ReleaseRun(self, release, self._plan_for(release))
        await run.cancel()
        log_event(logger, "release_cancelled", release_id=release_id)
        return await self.get_release(release_id)

    async def delete_release(self, release_id: str) -> None:
        release = await self.get_release(release_id)
        run = self._runs.get(release_id)
        # A finished run may still be winding down its loop
        if (run is not None and not run.release.status.is_terminal) or release.status in ACTIVE_STATUSES:
            raise InvalidStateError("Release", release_id, release.status.value, "delete")
        await self.store.delete_release(release_id)
        self.bus.drop(release_id)
        log_event(logger, "release_deleted", release_id=release_id)

    # ------------------------------------------------------------------
    # Block operations
    # ------------------------------------------------------------------

    async def restart_block(
        self,
        block_execution_id: str,
        override_parameters: Optional[Dict[str, str]] = None
    ) -> BlockExecution:
        run = await self._live_run_for_block(block_execution_id, "restart a block of")
        return await run.restart_block(block_execution_id, override_parameters)

    async def pause_block(self, block_execution_id: str) -> BlockExecution:
        run = await self._live_run_for_block(block_execution_id, "pause a block of")
        return await run.pause_block(block_execution_id)

    async def cancel_block(self, block_execution_id: str) -> BlockExecution:
        run = await self._live_run_for_block(block_execution_id, "cancel a block of")
        return await run.cancel_block(block_execution_id)

    async def submit_user_input(self, input_id: str, value: str, submitted_by: str = "user") -> UserInput:
        """
        Resolve a pending UserInput.

        Rejected when the input was already submitted (ConflictError) or its
        block is not WAITING_FOR_INPUT (InvalidStateError).
        """
        user_input = await self.store.get_user_input(input_id)
        if user_input is None:
            raise NotFoundError("UserInput", input_id)
        if not user_input.is_pending:
            raise ConflictError(f"UserInput {input_id} was already submitted", resource="UserInput")

        run = self._runs.get(user_input.release_id)
        if run is None:
            release = await self.get_release(user_input.release_id)
            raise InvalidStateError("Release", release.id, release.status.value, "submit input for")
        return await run.submit_input(input_id, value, submitted_by)

    # ------------------------------------------------------------------
    # Status waiting
    # ------------------------------------------------------------------

    async def _notify_status(self, release_id: str, status: ReleaseStatus) -> None:
        async with self._status_changed:
            if release_id in self._status_waiters:
                self._statuses[release_id] = status
                self._status_changed.notify_all()

    async def wait_for_status(
        self,
        release_id: str,
        *statuses: ReleaseStatus,
        timeout: Optional[float] = None
    ) -> Release:
        """Wait until the release reaches one of `statuses`; raises asyncio.TimeoutError"""
        wanted = set(statuses)

        async def _wait():
            async with self._status_changed:
                self._status_waiters[release_id] = self._status_waiters.get(release_id, 0) + 1
                try:
                    if release_id not in self._statuses:
                        release = await self.get_release(release_id)
                        self._statuses[release_id] = release.status
                    await self._status_changed.wait_for(lambda: self._statuses[release_id] in wanted)
                finally:
                    remaining = self._status_waiters.pop(release_id) - 1
                    if remaining:
                        self._status_waiters[release_id] = remaining
                    else:
                        self._statuses.pop(release_id, None)

        await asyncio.wait_for(_wait(), timeout=timeout)
        return await self.get_release(release_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def recover(self) -> List[str]:
        """
        Resume every RUNNING / PAUSED release found in storage.

        Blocks left RUNNING are treated as a retryable failure, since the
        outcome of their in-flight call is unknown.
        """
        recovered = []
        async with self._lock:
            for release in await self.store.list_active_releases():
                if release.id in self._runs:
                    continue
                await self._open(release)
                run = ReleaseRun(self, release, self._plan_for(release))
                await run.prepare_recovery()
                self._runs[release.id] = run
                run.start()
                recovered.append(release.id)

        if recovered:
            logger.info(f"Recovered {len(recovered)} in-flight releases")
        return recovered

    def _run_finished(self, run: ReleaseRun) -> None:
        if self._runs.get(run.release_id) is run:
            del self._runs[run.release_id]

    async def shutdown(self) -> None:
        """Stop all scheduler loops; persisted state is left for recover()"""
        runs = list(self._runs.values())
        for run in runs:
            await run.stop()
        self._runs.clear()
        logger.info(f"Engine stopped ({len(runs)} releases left for recovery)")
