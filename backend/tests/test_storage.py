# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tests for the release stores

Every test runs against both the in-memory and the file backend.
"""

from datetime import timedelta

import pytest

from release_wizard.models.common import utc_now
from release_wizard.models.release import (
    BlockExecution, ExecutionLog, LogLevel, Release, ReleaseStatus, UserInput
)
from release_wizard.models.updates import EventEnvelope, ReleaseStatusUpdate
from release_wizard.storage import FileReleaseStore, InMemoryReleaseStore

from tests.builders import make_project, slack_block


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryReleaseStore()
    return FileReleaseStore(tmp_path / "releases")


def make_release(project_id="p1", name="1.0", status=ReleaseStatus.PENDING, age_minutes=0) -> Release:
    release = Release(
        project_id=project_id,
        name=name,
        status=status,
        project=make_project([slack_block("a")]),
        created_at=utc_now() - timedelta(minutes=age_minutes)
    )
    release.block_executions.append(
        BlockExecution(release_id=release.id, block_id="a", block_type="SLACK_MESSAGE")
    )
    return release


class TestReleases:

    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        release = make_release()
        await store.save_release(release)

        loaded = await store.get_release(release.id)

        assert loaded == release
        assert await store.get_release("missing") is None

    @pytest.mark.asyncio
    async def test_saved_copy_is_detached(self, store):
        """Should not reflect caller mutations until saved again"""
        release = make_release()
        await store.save_release(release)

        release.name = "changed"
        assert (await store.get_release(release.id)).name == "1.0"

        await store.save_release(release)
        assert (await store.get_release(release.id)).name == "changed"

    @pytest.mark.asyncio
    async def test_list_newest_first_and_by_project(self, store):
        old = make_release(name="old", age_minutes=10)
        new = make_release(name="new")
        other = make_release(project_id="p2", name="other", age_minutes=5)
        for release in (old, new, other):
            await store.save_release(release)

        assert [r.name for r in await store.list_releases()] == ["new", "other", "old"]
        assert [r.name for r in await store.list_releases("p1")] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_active_releases(self, store):
        for status in ReleaseStatus:
            await store.save_release(make_release(name=status.value, status=status))

        active = await store.list_active_releases()

        assert sorted(r.name for r in active) == ["PAUSED", "RUNNING"]

    @pytest.mark.asyncio
    async def test_find_by_block_execution(self, store):
        release = make_release()
        await store.save_release(release)

        found = await store.find_release_by_block_execution(release.block_executions[0].id)

        assert found.id == release.id
        assert await store.find_release_by_block_execution("missing") is None

    @pytest.mark.asyncio
    async def test_delete_removes_everything(self, store):
        release = make_release()
        execution_id = release.block_executions[0].id
        await store.save_release(release)
        await store.append_log(release.id, ExecutionLog(block_execution_id=execution_id, message="hi"))
        user_input = UserInput(release_id=release.id, block_execution_id=execution_id, prompt="ok?")
        await store.save_user_input(user_input)

        assert await store.delete_release(release.id) is True

        assert await store.get_release(release.id) is None
        assert await store.get_logs(release.id) == []
        assert await store.get_user_input(user_input.id) is None
        assert await store.delete_release(release.id) is False


class TestLogsAndInputs:

    @pytest.mark.asyncio
    async def test_logs_keep_append_order(self, store):
        release = make_release()
        await store.save_release(release)
        first, second = "exec-1", "exec-2"
        await store.append_log(release.id, ExecutionLog(block_execution_id=first, message="one"))
        await store.append_log(release.id, ExecutionLog(block_execution_id=second, message="two", level=LogLevel.ERROR))
        await store.append_log(release.id, ExecutionLog(block_execution_id=first, message="three"))

        assert [log.message for log in await store.get_logs(release.id)] == ["one", "two", "three"]
        assert [log.message for log in await store.get_logs(release.id, first)] == ["one", "three"]
        assert (await store.get_logs(release.id, second))[0].level == LogLevel.ERROR

    @pytest.mark.asyncio
    async def test_user_input_update_replaces_record(self, store):
        release = make_release()
        await store.save_release(release)
        user_input = UserInput(release_id=release.id, block_execution_id="exec-1", prompt="Ship it?")
        await store.save_user_input(user_input)
        assert (await store.get_user_input(user_input.id)).is_pending

        user_input.submitted_value = "true"
        user_input.submitted_by = "alice"
        user_input.submitted_at = utc_now()
        await store.save_user_input(user_input)

        [stored] = await store.list_user_inputs(release.id)
        assert stored.submitted_value == "true"
        assert not stored.is_pending


class TestEvents:

    @pytest.mark.asyncio
    async def test_events_round_trip_in_order(self, store):
        release = make_release()
        await store.save_release(release)
        for sequence, (old, new) in enumerate(
            [(ReleaseStatus.PENDING, ReleaseStatus.RUNNING), (ReleaseStatus.RUNNING, ReleaseStatus.SUCCEEDED)],
            start=1
        ):
            await store.append_event(EventEnvelope(
                sequence=sequence,
                release_id=release.id,
                release_update=ReleaseStatusUpdate(release_id=release.id, old_status=old, new_status=new)
            ))

        events = await store.load_events(release.id)

        assert [e.sequence for e in events] == [1, 2]
        assert isinstance(events[1].release_update, ReleaseStatusUpdate)
        assert events[1].is_terminal_status
        assert await store.load_events("missing") == []


class TestFileStore:

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        """Should read back what an earlier process wrote"""
        release = make_release(status=ReleaseStatus.RUNNING)
        await FileReleaseStore(tmp_path).save_release(release)

        reopened = FileReleaseStore(tmp_path)

        assert (await reopened.get_release(release.id)).status == ReleaseStatus.RUNNING
        assert [r.id for r in await reopened.list_active_releases()] == [release.id]

    @pytest.mark.asyncio
    async def test_skips_unreadable_release(self, tmp_path):
        store = FileReleaseStore(tmp_path)
        good = make_release()
        await store.save_release(good)
        broken = tmp_path / "broken"
        broken.mkdir()
        (broken / "release.json").write_text("{not json")

        assert [r.id for r in await store.list_releases()] == [good.id]
