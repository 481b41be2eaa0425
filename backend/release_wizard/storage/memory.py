# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""In-memory release store for tests and ephemeral runs."""

from typing import Dict, List, Optional

from release_wizard.models.release import Release, ExecutionLog, UserInput
from release_wizard.models.updates import EventEnvelope
from .base import ReleaseStore


class InMemoryReleaseStore(ReleaseStore):
    """Stores deep copies so callers never share mutable records with the store"""

    def __init__(self):
        self._releases: Dict[str, Release] = {}
        self._logs: Dict[str, List[ExecutionLog]] = {}
        self._inputs: Dict[str, UserInput] = {}
        self._events: Dict[str, List[EventEnvelope]] = {}

    async def save_release(self, release: Release) -> None:
        self._releases[release.id] = release.model_copy(deep=True)

    async def get_release(self, release_id: str) -> Optional[Release]:
        release = self._releases.get(release_id)
        return release.model_copy(deep=True) if release else None

    async def list_releases(self, project_id: Optional[str] = None) -> List[Release]:
        releases = [
            r.model_copy(deep=True) for r in self._releases.values()
            if project_id is None or r.project_id == project_id
        ]
        return sorted(releases, key=lambda r: r.created_at, reverse=True)

    async def delete_release(self, release_id: str) -> bool:
        if self._releases.pop(release_id, None) is None:
            return False
        self._logs.pop(release_id, None)
        self._events.pop(release_id, None)
        self._inputs = {k: v for k, v in self._inputs.items() if v.release_id != release_id}
        return True

    async def append_log(self, release_id: str, log: ExecutionLog) -> None:
        self._logs.setdefault(release_id, []).append(log.model_copy())

    async def get_logs(self, release_id: str, block_execution_id: Optional[str] = None) -> List[ExecutionLog]:
        return [
            log.model_copy() for log in self._logs.get(release_id, [])
            if block_execution_id is None or log.block_execution_id == block_execution_id
        ]

    async def save_user_input(self, user_input: UserInput) -> None:
        self._inputs[user_input.id] = user_input.model_copy(deep=True)

    async def get_user_input(self, input_id: str) -> Optional[UserInput]:
        user_input = self._inputs.get(input_id)
        return user_input.model_copy(deep=True) if user_input else None

    async def list_user_inputs(self, release_id: str) -> List[UserInput]:
        inputs = [i.model_copy(deep=True) for i in self._inputs.values() if i.release_id == release_id]
        return sorted(inputs, key=lambda i: i.created_at)

    async def append_event(self, envelope: EventEnvelope) -> None:
        self._events.setdefault(envelope.release_id, []).append(envelope)

    async def load_events(self, release_id: str) -> List[EventEnvelope]:
        return list(self._events.get(release_id, []))
