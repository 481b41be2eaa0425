# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Scheduler

One ReleaseRun per live release. Its loop reacts to messages (a block
attempt finished, a retry timer fired, an operator action happened),
recomputes the READY set, dispatches ready blocks and re-derives the
release status. Block attempts run as separate tasks and report back
through the inbox, so a block that polls for an hour never stalls the
loop.

All mutations of the release and its block executions happen while
holding the run lock, by the loop or by an inbound operation.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Dict, List, Mapping, Optional, Set, Tuple, Union, TYPE_CHECKING

from release_wizard.core.errors import (
    ConflictError, InvalidStateError, NotFoundError, sanitize_error_for_user
)
from release_wizard.core.logging import get_engine_logger, log_event
from release_wizard.executors.context import BlockContext
from release_wizard.executors.outcomes import (
    ExecutionOutcome, Success, Retryable, Fatal, NeedsInput, InputRequest
)
from release_wizard.executors.parameters import ParameterResolutionError, resolve_parameters
from release_wizard.graph.plan import ExecutionPlan
from release_wizard.models.common import new_id, utc_now
from release_wizard.models.project import BlockBase
from release_wizard.models.release import (
    BlockExecution, BlockExecutionStatus as B, ExecutionLog, LogLevel, Release,
    ReleaseStatus as R, UserInput,
)
from release_wizard.models.updates import (
    BlockMetadataUpdate, BlockOutputUpdate, BlockStatusUpdate, ReleaseBlockUpdate,
    ReleaseStatusUpdate, UserInputRequired,
)
from .inputs import evaluate_input
from .state import transition_block, transition_release

if TYPE_CHECKING:
    from .engine import ReleaseEngine

logger = get_engine_logger()


@dataclass
class BlockFinished:
    execution_id: str
    attempt: str
    outcome: ExecutionOutcome


@dataclass
class RetryDue:
    execution_id: str


@dataclass
class Wake:
    reason: str = ""


Message = Union[BlockFinished, RetryDue, Wake]


class ReleaseRun:
    """Scheduler loop and owner of one live release"""

    def __init__(self, engine: "ReleaseEngine", release: Release, plan: ExecutionPlan):
        self.engine = engine
        self.release = release
        self.plan = plan
        self.lock = asyncio.Lock()
        self.inbox: "asyncio.Queue[Message]" = asyncio.Queue()

        self._by_id: Dict[str, BlockExecution] = {e.id: e for e in release.block_executions}
        self._by_block: Dict[str, BlockExecution] = {e.block_id: e for e in release.block_executions}

        self._tasks: Dict[str, asyncio.Task] = {}       # execution id -> in-flight attempt
        self._attempts: Dict[str, str] = {}             # execution id -> live attempt token
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._due: Set[str] = set()                     # RETRYING executions whose backoff elapsed
        self._remote_cancels: List[Tuple[BlockBase, BlockExecution]] = []
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def release_id(self) -> str:
        return self.release.id

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        self._loop_task = asyncio.create_task(self._run(), name=f"release-{self.release.id}")
        return self._loop_task

    def wake(self, reason: str = "") -> None:
        self.inbox.put_nowait(Wake(reason))

    async def _run(self) -> None:
        try:
            async with self.lock:
                await self._tick()
            await self._flush_remote_cancels()

            while not self.release.status.is_terminal:
                message = await self.inbox.get()
                async with self.lock:
                    await self._handle(message)
                    await self._tick()
                await self._flush_remote_cancels()

            logger.info(f"Release {self.release.id} finished with status {self.release.status.value}")
        except asyncio.CancelledError:
            logger.info(f"Scheduler for release {self.release.id} stopped")
            raise
        except Exception:
            logger.exception(f"Scheduler for release {self.release.id} crashed")
            raise
        finally:
            self._release_resources()
            self.engine._run_finished(self)

    def _release_resources(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for task in self._tasks.values():
            task.cancel()

    async def stop(self) -> None:
        """Stop the loop and in-flight attempts without touching persisted state"""
        tasks = list(self._tasks.values())
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _handle(self, message: Message) -> None:
        if isinstance(message, BlockFinished):
            await self._on_block_finished(message)
        elif isinstance(message, RetryDue):
            self._timers.pop(message.execution_id, None)
            execution = self._by_id.get(message.execution_id)
            if execution is not None and execution.status == B.RETRYING:
                self._due.add(execution.id)

    async def _tick(self) -> None:
        """Promote, dispatch, repeat until nothing changes; then derive release status"""
        if self.release.status.is_terminal:
            return
        if not self.release.user_paused:
            while True:
                promoted = await self._promote()
                if self.release.status.is_terminal:
                    return
                dispatched = await self._dispatch_ready()
                if self.release.status.is_terminal:
                    return
                if not promoted and not dispatched:
                    break
        await self._refresh_release_status()

    # ------------------------------------------------------------------
    # Readiness and dispatch
    # ------------------------------------------------------------------

    def _readiness(self, block_id: str) -> Union[bool, str]:
        """True when ready, False when still blocked, an error when it never can be"""
        for predecessor in self.plan.sequential_predecessors[block_id]:
            if self._by_block[predecessor].status != B.SUCCEEDED:
                return False
        for source in self.plan.data_dependencies[block_id]:
            producer = self._by_block[source.block_id]
            if source.output_name in producer.output_values:
                continue
            if producer.status == B.SUCCEEDED:
                return f"Block '{producer.block_name}' succeeded without producing output '{source.output_name}'"
            return False
        return True

    async def _promote(self) -> bool:
        promoted = False
        for block_id in self.plan.order:
            execution = self._by_block[block_id]
            if execution.status != B.WAITING or execution.held:
                continue
            readiness = self._readiness(block_id)
            if readiness is True:
                await self._set_block_status(execution, B.READY)
                promoted = True
            elif isinstance(readiness, str):
                await self._fail_block(execution, readiness)
                return True
        return promoted

    async def _dispatch_ready(self) -> bool:
        dispatched = False
        limit = self.engine.config.max_concurrent_blocks
        for block_id in self.plan.order:
            if limit > 0 and len(self._tasks) >= limit:
                break
            execution = self._by_block[block_id]
            if execution.held:
                continue
            if execution.status == B.READY or (execution.status == B.RETRYING and execution.id in self._due):
                await self._dispatch(execution)
                dispatched = True
                if self.release.status.is_terminal:
                    break
        return dispatched

    def _outputs_by_block(self) -> Mapping[str, Mapping[str, str]]:
        return {e.block_id: e.output_values for e in self.release.block_executions}

    async def _dispatch(self, execution: BlockExecution) -> None:
        block = self.plan.block(execution.block_id)
        self._due.discard(execution.id)

        try:
            parameters = resolve_parameters(
                block,
                self.release.parameter_values,
                self._outputs_by_block(),
                execution.parameter_overrides
            )
        except ParameterResolutionError as e:
            await self._fail_block(execution, e.message)
            return

        execution.parameter_values = parameters
        execution.next_retry_at = None
        await self._set_block_status(execution, B.RUNNING)
        await self._write_log(execution, LogLevel.INFO, f"Attempt {execution.retry_count + 1} started")

        attempt = new_id()
        ctx = BlockContext(
            self.release.id,
            execution,
            parameters,
            self.engine.integrations,
            self.engine.config,
            log_sink=partial(self._log_from_executor, execution.id, attempt),
            metadata_sink=partial(self._metadata_from_executor, execution.id, attempt)
        )
        self._attempts[execution.id] = attempt
        self._tasks[execution.id] = asyncio.create_task(
            self._execute(block, ctx, execution.id, attempt),
            name=f"block-{execution.id}"
        )

    async def _execute(self, block: BlockBase, ctx: BlockContext, execution_id: str, attempt: str) -> None:
        try:
            outcome = await self.engine.registry.execute(block, ctx)
        except Exception as e:
            logger.exception(f"Executor for block {block.id} raised")
            outcome = Fatal(f"Internal error: {sanitize_error_for_user(e)}")
        await self.inbox.put(BlockFinished(execution_id, attempt, outcome))

    def _schedule_retry(self, execution_id: str, delay: float) -> None:
        previous = self._timers.pop(execution_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._timers[execution_id] = loop.call_later(delay, self.inbox.put_nowait, RetryDue(execution_id))

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    async def _on_block_finished(self, message: BlockFinished) -> None:
        execution = self._by_id.get(message.execution_id)
        if (
            execution is None
            or execution.status != B.RUNNING
            or self._attempts.get(execution.id) != message.attempt
        ):
            logger.debug(f"Ignoring stale result for block execution {message.execution_id}")
            return

        self._attempts.pop(execution.id, None)
        self._tasks.pop(execution.id, None)

        outcome = message.outcome
        if not isinstance(outcome, NeedsInput) and outcome.metadata:
            execution.metadata.update(outcome.metadata)

        if isinstance(outcome, Success):
            await self._succeed(execution, outcome.outputs)
        elif isinstance(outcome, NeedsInput):
            await self._request_input(execution, outcome.request)
        elif isinstance(outcome, Retryable):
            await self._retry_or_fail(execution, outcome)
        else:
            await self._fail_block(execution, outcome.error)

    async def _succeed(self, execution: BlockExecution, outputs: Dict[str, str]) -> None:
        execution.output_values.update(outputs)
        execution.error = None
        if outputs:
            await self.engine.bus.publish(BlockOutputUpdate(block_execution_id=execution.id, outputs=dict(outputs)))
        await self._set_block_status(execution, B.SUCCEEDED)
        await self._write_log(execution, LogLevel.INFO, f"Block '{execution.block_name}' succeeded")

    async def _retry_or_fail(self, execution: BlockExecution, outcome: Retryable) -> None:
        if outcome.timed_out:
            execution.timeout_count += 1
            if execution.timeout_count > 1:
                await self._fail_block(execution, f"{outcome.error} (timed out again)")
                return

        policy = self.engine.retry_policy
        execution.retry_count += 1
        execution.error = outcome.error

        if not policy.should_retry(execution.retry_count, execution.max_retries):
            await self._fail_block(
                execution,
                f"{outcome.error} (gave up after {execution.retry_count} attempts)"
            )
            return

        delay = policy.delay_for(execution.retry_count)
        execution.next_retry_at = utc_now() + timedelta(seconds=delay)
        await self._set_block_status(execution, B.RETRYING)
        await self._write_log(
            execution,
            LogLevel.WARNING,
            f"Attempt {execution.retry_count} failed: {outcome.error}; retrying in {delay:.1f}s"
        )
        log_event(
            logger, "block_retry_scheduled", "WARNING",
            release_id=self.release.id,
            block_execution_id=execution.id,
            retry_count=execution.retry_count,
            delay_seconds=delay
        )
        self._schedule_retry(execution.id, delay)

    async def _request_input(self, execution: BlockExecution, request: InputRequest) -> None:
        user_input = UserInput(
            release_id=self.release.id,
            block_execution_id=execution.id,
            prompt=request.prompt,
            input_type=request.input_type,
            options=list(request.options),
            is_required=request.is_required
        )
        await self.engine.store.save_user_input(user_input)
        execution.metadata["user_input_id"] = user_input.id
        await self._set_block_status(execution, B.WAITING_FOR_INPUT)
        await self.engine.bus.publish(UserInputRequired(release_id=self.release.id, user_input=user_input))
        await self._write_log(execution, LogLevel.INFO, f"Waiting for input: {request.prompt}")

    async def _fail_block(self, execution: BlockExecution, error: str) -> None:
        execution.error = error
        await self._set_block_status(execution, B.FAILED)
        await self._write_log(execution, LogLevel.ERROR, error)
        await self._fail_release(execution)

    async def _fail_release(self, failed: BlockExecution) -> None:
        """A single failed block fails the whole release"""
        for execution in self.release.block_executions:
            if not execution.status.is_terminal:
                await self._cancel_execution(execution, f"Cancelled because block '{failed.block_name}' failed")
        self.release.error = f"Block '{failed.block_name}' failed: {failed.error}"
        await self._set_release_status(R.FAILED)

    async def _cancel_execution(self, execution: BlockExecution, reason: str) -> None:
        task = self._tasks.pop(execution.id, None)
        self._attempts.pop(execution.id, None)
        if task is not None:
            task.cancel()
        timer = self._timers.pop(execution.id, None)
        if timer is not None:
            timer.cancel()
        self._due.discard(execution.id)

        if execution.status in (B.RUNNING, B.RETRYING):
            self._remote_cancels.append((self.plan.block(execution.block_id), execution.model_copy(deep=True)))

        await self._set_block_status(execution, B.CANCELLED)
        await self._write_log(execution, LogLevel.WARNING, reason)

    async def _flush_remote_cancels(self) -> None:
        """Best-effort cancel of remote jobs; runs outside the run lock"""
        pending, self._remote_cancels = self._remote_cancels, []
        for block, execution in pending:
            await self.engine.registry.cancel_remote(block, execution, self.engine.integrations)

    # ------------------------------------------------------------------
    # Persistence and events
    # ------------------------------------------------------------------

    async def _save(self) -> None:
        self.release.updated_at = utc_now()
        await self.engine.store.save_release(self.release)

    async def _publish_block(self, execution: BlockExecution) -> None:
        await self.engine.bus.publish(ReleaseBlockUpdate(
            release_id=self.release.id,
            block_execution=execution.model_copy(deep=True)
        ))

    async def _set_block_status(self, execution: BlockExecution, new_status: B) -> None:
        old_status = transition_block(execution, new_status)
        await self._save()
        await self.engine.bus.publish(BlockStatusUpdate(
            block_execution_id=execution.id,
            old_status=old_status,
            new_status=new_status
        ))
        await self._publish_block(execution)
        log_event(
            logger, "block_status_changed",
            release_id=self.release.id,
            block_id=execution.block_id,
            block_execution_id=execution.id,
            old_status=old_status.value,
            new_status=new_status.value
        )

    async def _set_release_status(self, new_status: R) -> None:
        if self.release.status == new_status:
            return
        old_status = transition_release(self.release, new_status)
        await self._save()
        await self.engine.bus.publish(ReleaseStatusUpdate(
            release_id=self.release.id,
            old_status=old_status,
            new_status=new_status
        ))
        log_event(
            logger, "release_status_changed",
            release_id=self.release.id,
            old_status=old_status.value,
            new_status=new_status.value
        )
        await self.engine._notify_status(self.release.id, new_status)

    async def _refresh_release_status(self) -> None:
        executions = self.release.block_executions
        if all(e.status == B.SUCCEEDED for e in executions):
            await self._set_release_status(R.SUCCEEDED)
            return
        if all(e.status.is_terminal for e in executions):
            # A failed block fails the release at once, so the rest were cancelled
            await self._set_release_status(R.CANCELLED)
            return
        if self.release.user_paused:
            await self._set_release_status(R.PAUSED)
            return

        progressing = any(
            e.status == B.RUNNING or (e.status in (B.READY, B.RETRYING) and not e.held)
            for e in executions
        )
        # Otherwise everything left waits on input, a held block or a cancelled predecessor
        await self._set_release_status(R.RUNNING if progressing else R.PAUSED)

    async def _write_log(
        self,
        execution: BlockExecution,
        level: LogLevel,
        message: str,
        source: str = "system"
    ) -> None:
        log = ExecutionLog(block_execution_id=execution.id, level=level, message=message, source=source)
        await self.engine.store.append_log(self.release.id, log)
        await self.engine.bus.publish(log)

    async def _log_from_executor(
        self,
        execution_id: str,
        attempt: str,
        level: LogLevel,
        message: str,
        source: str
    ) -> None:
        async with self.lock:
            if self._attempts.get(execution_id) != attempt:
                logger.debug(f"Dropping log from stale attempt of {execution_id}: {message}")
                return
            await self._write_log(self._by_id[execution_id], level, message, source)

    async def _metadata_from_executor(self, execution_id: str, attempt: str, values: Dict[str, str]) -> None:
        async with self.lock:
            if self._attempts.get(execution_id) != attempt:
                return
            execution = self._by_id[execution_id]
            execution.metadata.update(values)
            execution.updated_at = utc_now()
            await self._save()
            await self.engine.bus.publish(BlockMetadataUpdate(block_execution_id=execution_id, metadata=dict(values)))

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    def _require_execution(self, execution_id: str) -> BlockExecution:
        execution = self._by_id.get(execution_id)
        if execution is None:
            raise NotFoundError("BlockExecution", execution_id)
        return execution

    def _require_live(self, operation: str) -> None:
        if self.release.status.is_terminal:
            raise InvalidStateError("Release", self.release.id, self.release.status.value, operation)

    async def prepare_recovery(self) -> None:
        """Re-arm persisted state after an engine restart; called before start()"""
        async with self.lock:
            for execution in self.release.block_executions:
                if execution.status == B.READY:
                    await self._set_block_status(execution, B.WAITING)
                elif execution.status == B.RUNNING:
                    # Outcome of the in-flight call is unknown
                    attempt = new_id()
                    self._attempts[execution.id] = attempt
                    await self._write_log(
                        execution, LogLevel.WARNING, "Engine restarted while the block was running"
                    )
                    self.inbox.put_nowait(BlockFinished(
                        execution.id, attempt, Retryable("Engine restarted while the block was running")
                    ))
                elif execution.status == B.RETRYING:
                    remaining = 0.0
                    if execution.next_retry_at is not None:
                        remaining = (execution.next_retry_at - utc_now()).total_seconds()
                    if remaining > 0:
                        self._schedule_retry(execution.id, remaining)
                    else:
                        self._due.add(execution.id)

    async def pause(self) -> None:
        async with self.lock:
            self._require_live("pause")
            if self.release.user_paused:
                return
            self.release.user_paused = True
            await self._save()
            await self._refresh_release_status()

    async def resume(self) -> None:
        async with self.lock:
            if not self.release.user_paused:
                return
            self.release.user_paused = False
            await self._save()
        self.wake("resume")

    async def cancel(self) -> None:
        async with self.lock:
            if self.release.status == R.CANCELLED:
                return
            self._require_live("cancel")
            for execution in self.release.block_executions:
                if not execution.status.is_terminal:
                    await self._cancel_execution(execution, "Release cancelled")
            await self._set_release_status(R.CANCELLED)
        await self._flush_remote_cancels()
        self.wake("cancel")

    async def pause_block(self, execution_id: str) -> BlockExecution:
        async with self.lock:
            self._require_live("pause a block of")
            execution = self._require_execution(execution_id)
            if execution.held:
                return execution.model_copy(deep=True)
            if execution.status not in (B.WAITING, B.READY, B.RETRYING):
                raise InvalidStateError("BlockExecution", execution.id, execution.status.value, "pause")

            execution.held = True
            execution.updated_at = utc_now()
            await self._save()
            await self._publish_block(execution)
            await self._write_log(execution, LogLevel.INFO, "Block paused by operator")
            await self._refresh_release_status()
            return execution.model_copy(deep=True)

    async def restart_block(self, execution_id: str, overrides: Optional[Dict[str, str]] = None) -> BlockExecution:
        async with self.lock:
            self._require_live("restart a block of")
            execution = self._require_execution(execution_id)
            if execution.status not in (B.WAITING, B.READY, B.RETRYING, B.CANCELLED):
                raise InvalidStateError("BlockExecution", execution.id, execution.status.value, "restart")

            if overrides is not None:
                execution.parameter_overrides = dict(overrides)
            execution.held = False

            if execution.status == B.RETRYING:
                timer = self._timers.pop(execution.id, None)
                if timer is not None:
                    timer.cancel()
                self._due.add(execution.id)
            elif execution.status == B.CANCELLED:
                execution.retry_count = 0
                execution.timeout_count = 0
                execution.error = None
                execution.metadata = {}
                execution.output_values = {}
                execution.parameter_values = {}
                execution.started_at = None
                await self._set_block_status(execution, B.WAITING)

            execution.updated_at = utc_now()
            await self._save()
            await self._publish_block(execution)
            await self._write_log(execution, LogLevel.INFO, "Block restarted by operator")
            snapshot = execution.model_copy(deep=True)
        self.wake("restart_block")
        return snapshot

    async def cancel_block(self, execution_id: str) -> BlockExecution:
        async with self.lock:
            self._require_live("cancel a block of")
            execution = self._require_execution(execution_id)
            if execution.status != B.CANCELLED:
                if execution.status.is_terminal:
                    raise InvalidStateError("BlockExecution", execution.id, execution.status.value, "cancel")
                await self._cancel_execution(execution, "Block cancelled by operator")
                await self._refresh_release_status()
            snapshot = execution.model_copy(deep=True)
        await self._flush_remote_cancels()
        self.wake("cancel_block")
        return snapshot

    async def submit_input(self, input_id: str, value: str, submitted_by: str) -> UserInput:
        async with self.lock:
            self._require_live("submit input for")
            user_input = await self.engine.store.get_user_input(input_id)
            if user_input is None:
                raise NotFoundError("UserInput", input_id)
            if not user_input.is_pending:
                raise ConflictError(f"UserInput {input_id} was already submitted", resource="UserInput")

            execution = self._require_execution(user_input.block_execution_id)
            if (
                execution.status != B.WAITING_FOR_INPUT
                or execution.metadata.get("user_input_id") != user_input.id
            ):
                raise InvalidStateError(
                    "BlockExecution", execution.id, execution.status.value, "submit input for"
                )

            normalized, outcome = evaluate_input(user_input, value)
            user_input.submitted_value = normalized
            user_input.submitted_by = submitted_by
            user_input.submitted_at = utc_now()
            await self.engine.store.save_user_input(user_input)

            await self._set_block_status(execution, B.RUNNING)
            await self._write_log(execution, LogLevel.INFO, f"Input submitted by {submitted_by}: {normalized}")

            attempt = new_id()
            self._attempts[execution.id] = attempt
            self.inbox.put_nowait(BlockFinished(execution.id, attempt, outcome))
            return user_input
