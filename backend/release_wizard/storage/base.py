# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Store interface.

Durable records the engine needs: releases (with their block executions),
append-only execution logs, user inputs and the per-release event log
that subscribers replay from.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from release_wizard.models.release import Release, ReleaseStatus, ExecutionLog, UserInput
from release_wizard.models.updates import EventEnvelope


ACTIVE_STATUSES = (ReleaseStatus.RUNNING, ReleaseStatus.PAUSED)


class ReleaseStore(ABC):

    # -- Releases --

    @abstractmethod
    async def save_release(self, release: Release) -> None:
        ...

    @abstractmethod
    async def get_release(self, release_id: str) -> Optional[Release]:
        ...

    @abstractmethod
    async def list_releases(self, project_id: Optional[str] = None) -> List[Release]:
        """All releases, newest first"""

    @abstractmethod
    async def delete_release(self, release_id: str) -> bool:
        """Delete a release with its logs, inputs and events"""

    async def list_active_releases(self) -> List[Release]:
        """Releases a restarted engine must resume"""
        return [r for r in await self.list_releases() if r.status in ACTIVE_STATUSES]

    async def find_release_by_block_execution(self, block_execution_id: str) -> Optional[Release]:
        for release in await self.list_releases():
            if release.get_block_execution(block_execution_id) is not None:
                return release
        return None

    # -- Execution logs --

    @abstractmethod
    async def append_log(self, release_id: str, log: ExecutionLog) -> None:
        ...

    @abstractmethod
    async def get_logs(self, release_id: str, block_execution_id: Optional[str] = None) -> List[ExecutionLog]:
        """Logs in append order, optionally for one block execution"""

    # -- User inputs --

    @abstractmethod
    async def save_user_input(self, user_input: UserInput) -> None:
        ...

    @abstractmethod
    async def get_user_input(self, input_id: str) -> Optional[UserInput]:
        ...

    @abstractmethod
    async def list_user_inputs(self, release_id: str) -> List[UserInput]:
        ...

    # -- Event log --

    @abstractmethod
    async def append_event(self, envelope: EventEnvelope) -> None:
        ...

    @abstractmethod
    async def load_events(self, release_id: str) -> List[EventEnvelope]:
        ...
