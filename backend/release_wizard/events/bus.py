# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Event Bus

Every release has one ordered, durable event log. Publishing appends an
envelope with the next sequence number; each subscriber owns its own
cursor into that log, so a reconnecting client replays what it missed
instead of depending on a live broadcast.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set, Union

from release_wizard.core.errors import NotFoundError
from release_wizard.core.logging import get_service_logger
from release_wizard.models.release import ExecutionLog
from release_wizard.models.updates import (
    EventEnvelope, ReleaseLogUpdate, ReleaseStatusUpdate, ReleaseBlockUpdate, UserInputRequired,
    BlockStatusUpdate, BlockLogUpdate, BlockMetadataUpdate, BlockOutputUpdate,
)
from release_wizard.storage.base import ReleaseStore

logger = get_service_logger("event_bus")


RELEASE_UPDATE_TYPES = (ReleaseStatusUpdate, ReleaseBlockUpdate, ReleaseLogUpdate, UserInputRequired)
BLOCK_UPDATE_TYPES = (BlockStatusUpdate, BlockLogUpdate, BlockMetadataUpdate, BlockOutputUpdate)

Publishable = Union[
    ReleaseStatusUpdate, ReleaseBlockUpdate, ReleaseLogUpdate, UserInputRequired,
    BlockStatusUpdate, BlockLogUpdate, BlockMetadataUpdate, BlockOutputUpdate,
    ExecutionLog,
]


class EventBus:
    """
    Per-release append log with independent subscriber cursors.

    A release's log stays in memory while it is live or followed. Once its
    terminal status is published and the last follower is gone, the log is
    evicted and reloaded from the store on the next access.
    """

    def __init__(self, store: ReleaseStore):
        self.store = store
        self._logs: Dict[str, List[EventEnvelope]] = {}
        self._conditions: Dict[str, asyncio.Condition] = {}
        self._block_index: Dict[str, str] = {}  # block_execution_id -> release_id
        self._release_blocks: Dict[str, Set[str]] = {}
        self._followers: Dict[str, int] = {}
        self._finished: Set[str] = set()

    def _condition(self, release_id: str) -> asyncio.Condition:
        if release_id not in self._conditions:
            self._conditions[release_id] = asyncio.Condition()
        return self._conditions[release_id]

    @asynccontextmanager
    async def _locked(self, release_id: str) -> AsyncIterator[asyncio.Condition]:
        """Hold the release's current condition; evicts an idle finished release on the way out"""
        while True:
            condition = self._condition(release_id)
            await condition.acquire()
            # An eviction may have replaced the condition while we queued for it
            if self._conditions.get(release_id) is condition:
                break
            condition.release()
        try:
            yield condition
        finally:
            self._evict_if_idle(release_id)
            condition.release()

    def _evict_if_idle(self, release_id: str) -> None:
        if release_id not in self._finished or self._followers.get(release_id):
            return
        self.drop(release_id)
        logger.debug(f"Evicted event log of finished release {release_id}")

    async def _ensure_loaded(self, release_id: str) -> List[EventEnvelope]:
        """Load the persisted log once; caller holds the release's condition"""
        if release_id not in self._logs:
            events = await self.store.load_events(release_id)
            if any(envelope.is_terminal_status for envelope in events):
                self._finished.add(release_id)
            self._logs[release_id] = events
        return self._logs[release_id]

    async def open(self, release_id: str, block_execution_ids: Iterable[str]) -> None:
        """Register a release and its block executions before publishing for it"""
        blocks = self._release_blocks.setdefault(release_id, set())
        for block_execution_id in block_execution_ids:
            self._block_index[block_execution_id] = release_id
            blocks.add(block_execution_id)

    def drop(self, release_id: str) -> None:
        """Forget a release's in-memory state; the persisted log is untouched"""
        self._logs.pop(release_id, None)
        self._conditions.pop(release_id, None)
        self._followers.pop(release_id, None)
        self._finished.discard(release_id)
        for block_execution_id in self._release_blocks.pop(release_id, set()):
            self._block_index.pop(block_execution_id, None)

    def release_for_block(self, block_execution_id: str) -> Optional[str]:
        return self._block_index.get(block_execution_id)

    async def _release_of_block(self, block_execution_id: str) -> str:
        release_id = self._block_index.get(block_execution_id)
        if release_id is not None:
            return release_id
        release = await self.store.find_release_by_block_execution(block_execution_id)
        if release is None:
            raise NotFoundError("BlockExecution", block_execution_id)
        return release.id

    def _envelope_fields(self, update: Publishable) -> Dict:
        if isinstance(update, ExecutionLog):
            release_id = self._block_index.get(update.block_execution_id)
            if release_id is None:
                raise NotFoundError("BlockExecution", update.block_execution_id)
            return {
                "release_id": release_id,
                "block_execution_id": update.block_execution_id,
                "release_update": ReleaseLogUpdate(release_id=release_id, log=update, timestamp=update.timestamp),
                "block_update": BlockLogUpdate(
                    block_execution_id=update.block_execution_id, log=update, timestamp=update.timestamp
                ),
                "log": update,
            }
        if isinstance(update, BLOCK_UPDATE_TYPES):
            release_id = self._block_index.get(update.block_execution_id)
            if release_id is None:
                raise NotFoundError("BlockExecution", update.block_execution_id)
            return {
                "release_id": release_id,
                "block_execution_id": update.block_execution_id,
                "block_update": update,
            }
        if isinstance(update, ReleaseBlockUpdate):
            return {
                "release_id": update.release_id,
                "block_execution_id": update.block_execution.id,
                "release_update": update,
            }
        if isinstance(update, ReleaseLogUpdate):
            return {
                "release_id": update.release_id,
                "block_execution_id": update.log.block_execution_id,
                "release_update": update,
                "log": update.log,
            }
        if isinstance(update, UserInputRequired):
            return {
                "release_id": update.release_id,
                "block_execution_id": update.user_input.block_execution_id,
                "release_update": update,
            }
        if isinstance(update, ReleaseStatusUpdate):
            return {"release_id": update.release_id, "release_update": update}
        raise TypeError(f"Cannot publish {type(update).__name__}")

    async def publish(self, update: Publishable) -> EventEnvelope:
        """
        Append an update to its release's log and wake subscribers.

        Returns the stored envelope with its sequence number.
        """
        fields = self._envelope_fields(update)
        release_id = fields["release_id"]
        async with self._locked(release_id) as condition:
            events = await self._ensure_loaded(release_id)
            envelope = EventEnvelope(sequence=len(events) + 1, **fields)
            await self.store.append_event(envelope)
            events.append(envelope)
            if envelope.is_terminal_status:
                self._finished.add(release_id)
            condition.notify_all()
        return envelope

    async def _follow(
        self,
        release_id: str,
        since: Optional[datetime] = None,
        after_sequence: Optional[int] = None
    ) -> AsyncIterator[EventEnvelope]:
        """
        Replay the release's log from the requested cursor, then follow live
        events. Completes after the terminal release status event.
        """
        # Registered before the first await, so the log cannot be evicted under us
        self._followers[release_id] = self._followers.get(release_id, 0) + 1
        try:
            cursor = 0
            while True:
                async with self._locked(release_id) as condition:
                    events = await self._ensure_loaded(release_id)
                    await condition.wait_for(lambda: len(events) > cursor)
                    batch = events[cursor:]
                    cursor = len(events)

                for envelope in batch:
                    if after_sequence is not None and envelope.sequence <= after_sequence:
                        continue
                    if since is not None and envelope.timestamp < since:
                        continue
                    yield envelope
                    if envelope.is_terminal_status:
                        return

                # A terminal event filtered out by the cursor still ends the stream
                if any(envelope.is_terminal_status for envelope in batch):
                    return
        finally:
            remaining = self._followers.pop(release_id, 1) - 1
            if remaining:
                self._followers[release_id] = remaining
            condition = self._conditions.get(release_id)
            # A holder of the lock evicts on its own way out
            if condition is None or not condition.locked():
                self._evict_if_idle(release_id)

    async def subscribe_release(
        self,
        release_id: str,
        since: Optional[datetime] = None,
        after_sequence: Optional[int] = None
    ) -> AsyncIterator[EventEnvelope]:
        """Release-level updates: status, block snapshots, logs, input requests"""
        async for envelope in self._follow(release_id, since, after_sequence):
            if envelope.release_update is not None:
                yield envelope

    async def subscribe_block(
        self,
        block_execution_id: str,
        since: Optional[datetime] = None,
        after_sequence: Optional[int] = None
    ) -> AsyncIterator[EventEnvelope]:
        """Block-level updates of one block execution"""
        release_id = await self._release_of_block(block_execution_id)
        async for envelope in self._follow(release_id, since, after_sequence):
            if envelope.block_update is not None and envelope.block_execution_id == block_execution_id:
                yield envelope

    async def stream_logs(
        self,
        block_execution_id: str,
        since: Optional[datetime] = None
    ) -> AsyncIterator[ExecutionLog]:
        """Execution logs of one block execution"""
        release_id = await self._release_of_block(block_execution_id)
        async for envelope in self._follow(release_id, since):
            if envelope.log is not None and envelope.block_execution_id == block_execution_id:
                yield envelope.log
