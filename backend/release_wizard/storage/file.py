# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
File Release Store - all release history in plain text files.

Storage structure:
    volumes/releases/
    └── {release_id}/
        ├── release.json      (release + block executions, rewritten on save)
        ├── inputs.json       (user inputs keyed by id)
        ├── logs.jsonl        (append-only execution logs)
        └── events.jsonl      (append-only event log)

Thread-safe with async file locking to prevent race conditions.
"""

import asyncio
import json
import shutil
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
import aiofiles.os

from release_wizard.core.logging import get_service_logger
from release_wizard.models.release import Release, ExecutionLog, UserInput
from release_wizard.models.updates import EventEnvelope
from .base import ReleaseStore

logger = get_service_logger("release_store")


class FileReleaseStore(ReleaseStore):

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        # Async locks for file operations
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, file_path: Path) -> asyncio.Lock:
        """Get or create lock for a specific file"""
        key = str(file_path)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _release_dir(self, release_id: str) -> Path:
        return self.base_dir / release_id

    async def _write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        async with self._get_lock(path):
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, path)

    async def _append(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with self._get_lock(path):
            async with aiofiles.open(path, "a") as f:
                await f.write(line + "\n")

    async def _read(self, path: Path) -> Optional[str]:
        if not path.exists():
            return None
        async with self._get_lock(path):
            async with aiofiles.open(path, "r") as f:
                return await f.read()

    async def _read_lines(self, path: Path) -> List[str]:
        content = await self._read(path)
        if not content:
            return []
        return [line for line in content.splitlines() if line.strip()]

    # -- Releases --

    async def save_release(self, release: Release) -> None:
        await self._write(self._release_dir(release.id) / "release.json", release.model_dump_json(indent=2))

    async def get_release(self, release_id: str) -> Optional[Release]:
        content = await self._read(self._release_dir(release_id) / "release.json")
        if content is None:
            return None
        return Release.model_validate_json(content)

    async def list_releases(self, project_id: Optional[str] = None) -> List[Release]:
        releases = []
        for release_dir in self.base_dir.iterdir():
            if not release_dir.is_dir():
                continue
            try:
                release = await self.get_release(release_dir.name)
            except ValueError as e:
                logger.warning(f"Skipping unreadable release {release_dir.name}: {e}")
                continue
            if release is None:
                continue
            if project_id is None or release.project_id == project_id:
                releases.append(release)
        return sorted(releases, key=lambda r: r.created_at, reverse=True)

    async def delete_release(self, release_id: str) -> bool:
        release_dir = self._release_dir(release_id)
        if not release_dir.exists():
            return False
        await asyncio.to_thread(shutil.rmtree, release_dir)
        self._locks = {k: v for k, v in self._locks.items() if not k.startswith(str(release_dir))}
        return True

    # -- Execution logs --

    async def append_log(self, release_id: str, log: ExecutionLog) -> None:
        await self._append(self._release_dir(release_id) / "logs.jsonl", log.model_dump_json())

    async def get_logs(self, release_id: str, block_execution_id: Optional[str] = None) -> List[ExecutionLog]:
        logs = [
            ExecutionLog.model_validate_json(line)
            for line in await self._read_lines(self._release_dir(release_id) / "logs.jsonl")
        ]
        if block_execution_id is not None:
            logs = [log for log in logs if log.block_execution_id == block_execution_id]
        return logs

    # -- User inputs --

    async def _load_inputs(self, release_id: str) -> Dict[str, UserInput]:
        content = await self._read(self._release_dir(release_id) / "inputs.json")
        if not content:
            return {}
        return {key: UserInput.model_validate(value) for key, value in json.loads(content).items()}

    async def save_user_input(self, user_input: UserInput) -> None:
        inputs = await self._load_inputs(user_input.release_id)
        inputs[user_input.id] = user_input
        content = json.dumps({key: value.model_dump(mode="json") for key, value in inputs.items()}, indent=2)
        await self._write(self._release_dir(user_input.release_id) / "inputs.json", content)

    async def get_user_input(self, input_id: str) -> Optional[UserInput]:
        for release_dir in self.base_dir.iterdir():
            if release_dir.is_dir():
                inputs = await self._load_inputs(release_dir.name)
                if input_id in inputs:
                    return inputs[input_id]
        return None

    async def list_user_inputs(self, release_id: str) -> List[UserInput]:
        inputs = await self._load_inputs(release_id)
        return sorted(inputs.values(), key=lambda i: i.created_at)

    # -- Event log --

    async def append_event(self, envelope: EventEnvelope) -> None:
        await self._append(self._release_dir(envelope.release_id) / "events.jsonl", envelope.model_dump_json())

    async def load_events(self, release_id: str) -> List[EventEnvelope]:
        return [
            EventEnvelope.model_validate_json(line)
            for line in await self._read_lines(self._release_dir(release_id) / "events.jsonl")
        ]
