# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tests for ProjectService and ReleaseService
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from release_wizard.core.errors import NotFoundError, ValidationError
from release_wizard.engine import ReleaseEngine
from release_wizard.integrations import Integrations
from release_wizard.models.project import ProjectParameter
from release_wizard.models.queries import ReleaseSortBy, SortOrder, StatisticsGroupBy
from release_wizard.models.release import (
    BlockExecution, BlockExecutionStatus as B, ExecutionLog, LogLevel, Release, ReleaseStatus as R, UserInput
)
from release_wizard.services import ProjectService, ReleaseService
from release_wizard.storage import InMemoryReleaseStore

from tests.builders import fake_slack, fast_config, make_project, seq, slack_block, user_action_block


@pytest.fixture
def project_service(tmp_path):
    return ProjectService(tmp_path / "projects")


@pytest.fixture
def engine():
    return ReleaseEngine(
        InMemoryReleaseStore(),
        integrations=Integrations(slack=fake_slack()),
        config=fast_config()
    )


@pytest.fixture
def release_service(engine, project_service):
    return ReleaseService(engine, project_service)


def at(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def stored_release(project, name, status=R.SUCCEEDED, created_at=None, duration=None, blocks=()):
    """
    Hand-built release record; `blocks` holds (block_type, status, seconds)
    """
    created_at = created_at or at(2025, 3, 3)
    release = Release(
        project_id=project.id,
        name=name,
        status=status,
        project=project,
        created_at=created_at
    )
    if duration is not None:
        release.started_at = created_at
        release.completed_at = created_at + timedelta(seconds=duration)
    for index, (block_type, block_status, seconds) in enumerate(blocks):
        execution = BlockExecution(
            release_id=release.id, block_id=f"b{index}", block_type=block_type, status=block_status
        )
        if seconds is not None:
            execution.started_at = created_at
            execution.completed_at = created_at + timedelta(seconds=seconds)
        release.block_executions.append(execution)
    return release


class TestProjectService:

    @pytest.mark.asyncio
    async def test_create_get_list_delete(self, project_service):
        beta = await project_service.create_project(make_project([slack_block("a")], name="beta"))
        alpha = await project_service.create_project(make_project([slack_block("a")], name="Alpha"))

        assert beta.version == 1
        assert (await project_service.get_project(beta.id)).name == "beta"
        assert [p.name for p in await project_service.list_projects()] == ["Alpha", "beta"]
        assert [p.name for p in await project_service.list_projects(search="ALP")] == ["Alpha"]

        await project_service.delete_project(alpha.id)
        with pytest.raises(NotFoundError):
            await project_service.get_project(alpha.id)
        with pytest.raises(NotFoundError):
            await project_service.delete_project(alpha.id)

    @pytest.mark.asyncio
    async def test_create_twice_is_refused(self, project_service):
        project = make_project([slack_block("a")])
        await project_service.create_project(project)

        with pytest.raises(ValidationError):
            await project_service.create_project(project)

    @pytest.mark.asyncio
    async def test_invalid_graph_is_not_saved(self, project_service):
        project = make_project([slack_block("a"), slack_block("b")], [seq("a", "b"), seq("b", "a")])

        with pytest.raises(ValidationError) as exc_info:
            await project_service.create_project(project)

        assert exc_info.value.details["issues"][0]["code"] == "CYCLE"
        assert await project_service.list_projects() == []

    def test_validate_reports_every_problem(self, project_service):
        project = make_project(
            [slack_block("a")],
            parameters=[ProjectParameter(name="version"), ProjectParameter(name="version")],
            name=" "
        )

        result = project_service.validate_project(project)

        assert not result.is_valid
        assert {issue.code for issue in result.errors} == {"REQUIRED", "DUPLICATE_PARAMETER"}
        assert result.order == []

    def test_validate_valid_project(self, project_service):
        result = project_service.validate_project(
            make_project([slack_block("a"), slack_block("b")], [seq("a", "b")])
        )

        assert result.is_valid
        assert result.order == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, project_service):
        created = await project_service.create_project(make_project([slack_block("a")]))
        changed = created.model_copy(update={"name": "Renamed"})

        updated = await project_service.update_project(created.id, changed)

        assert updated.version == 2
        assert updated.created_at == created.created_at
        assert (await project_service.get_project(created.id)).name == "Renamed"

    @pytest.mark.asyncio
    async def test_skips_unreadable_files(self, project_service):
        await project_service.create_project(make_project([slack_block("a")]))
        (project_service.projects_dir / "junk.json").write_text("{")

        assert len(await project_service.list_projects()) == 1


class TestReleaseQueries:

    @pytest.mark.asyncio
    async def test_create_from_stored_project(self, release_service, project_service):
        project = await project_service.create_project(
            make_project([slack_block("a")], parameters=[ProjectParameter(name="version")])
        )

        release = await release_service.create_release(
            project.id, "1.0", description="first", parameter_values={"version": "1.0"}
        )

        assert release.status == R.PENDING
        assert release.project.id == project.id
        with pytest.raises(NotFoundError):
            await release_service.create_release("missing", "1.0")

    @pytest.mark.asyncio
    async def test_list_filters_sorts_and_pages(self, release_service, engine):
        project = make_project([slack_block("a")])
        other = make_project([slack_block("a")], name="Other")
        for release in (
            stored_release(project, "alpha", R.SUCCEEDED, at(2025, 3, 1)),
            stored_release(project, "beta", R.FAILED, at(2025, 3, 2)),
            stored_release(project, "gamma", R.SUCCEEDED, at(2025, 3, 3)),
            stored_release(other, "delta", R.SUCCEEDED, at(2025, 3, 4)),
        ):
            await engine.store.save_release(release)

        newest = await release_service.list_releases(project_id=project.id)
        assert [r.name for r in newest.releases] == ["gamma", "beta", "alpha"]
        assert newest.total == 3

        succeeded = await release_service.list_releases(status=R.SUCCEEDED, sort_by=ReleaseSortBy.NAME,
                                                        sort_order=SortOrder.ASC)
        assert [r.name for r in succeeded.releases] == ["alpha", "delta", "gamma"]

        page = await release_service.list_releases(limit=2, offset=1, sort_by=ReleaseSortBy.NAME,
                                                   sort_order=SortOrder.ASC)
        assert [r.name for r in page.releases] == ["beta", "delta"]
        assert page.total == 4

        assert (await release_service.list_releases(search="ELT")).total == 1

        with pytest.raises(ValidationError):
            await release_service.list_releases(limit=-1)

    @pytest.mark.asyncio
    async def test_block_logs_filtering(self, release_service, engine):
        release = stored_release(make_project([slack_block("a")]), "1.0", blocks=[("SLACK_MESSAGE", B.SUCCEEDED, 1)])
        await engine.store.save_release(release)
        execution_id = release.block_executions[0].id
        base = at(2025, 3, 3)
        for minute, level, source in [
            (2, LogLevel.INFO, "system"),
            (0, LogLevel.INFO, "slack"),
            (1, LogLevel.ERROR, "slack"),
        ]:
            await engine.store.append_log(release.id, ExecutionLog(
                block_execution_id=execution_id,
                level=level,
                source=source,
                message=f"m{minute}",
                timestamp=base + timedelta(minutes=minute)
            ))

        everything = await release_service.get_block_logs(execution_id)
        assert [log.message for log in everything.logs] == ["m0", "m1", "m2"]

        errors = await release_service.get_block_logs(execution_id, level=LogLevel.ERROR)
        assert [log.message for log in errors.logs] == ["m1"]

        slack = await release_service.get_block_logs(execution_id, source="slack", limit=1, offset=1)
        assert [log.message for log in slack.logs] == ["m1"]
        assert slack.total == 2

        recent = await release_service.get_block_logs(execution_id, from_timestamp=base + timedelta(minutes=1))
        assert recent.total == 2

        with pytest.raises(NotFoundError):
            await release_service.get_block_logs("missing")

    @pytest.mark.asyncio
    async def test_pending_inputs_from_live_release(self, release_service, project_service):
        project = await project_service.create_project(
            make_project([user_action_block("approve"), slack_block("notify")], [seq("approve", "notify")])
        )
        release = await release_service.create_release(project.id, "1.0")
        await release_service.start_release(release.id)
        await release_service.engine.wait_for_status(release.id, R.PAUSED, timeout=5)

        [pending] = await release_service.get_pending_user_inputs(release.id)
        assert pending.prompt == "Approve the release?"

        await release_service.submit_user_input(pending.id, "yes")
        await release_service.engine.wait_for_status(release.id, R.SUCCEEDED, timeout=5)
        assert await release_service.get_pending_user_inputs(release.id) == []

    @pytest.mark.asyncio
    async def test_stale_inputs_are_not_pending(self, release_service, engine):
        release = stored_release(make_project([slack_block("a")]), "1.0", R.PAUSED,
                                 blocks=[("USER_ACTION", B.WAITING_FOR_INPUT, None)])
        execution = release.block_executions[0]
        current = UserInput(release_id=release.id, block_execution_id=execution.id, prompt="now?")
        stale = UserInput(release_id=release.id, block_execution_id=execution.id, prompt="before?")
        execution.metadata["user_input_id"] = current.id
        await engine.store.save_release(release)
        await engine.store.save_user_input(stale)
        await engine.store.save_user_input(current)

        assert [i.id for i in await release_service.get_pending_user_inputs(release.id)] == [current.id]

    @pytest.mark.asyncio
    async def test_subscription_replays_finished_release(self, release_service, project_service):
        project = await project_service.create_project(make_project([slack_block("a")]))
        release = await release_service.create_release(project.id, "1.0")
        await release_service.start_release(release.id)
        await release_service.engine.wait_for_status(release.id, R.SUCCEEDED, timeout=5)

        events = [e async for e in release_service.subscribe_release_updates(release.id)]
        logs = [log async for log in release_service.stream_block_logs(release.block_executions[0].id)]

        assert events[-1].release_update.new_status == R.SUCCEEDED
        assert [e.sequence for e in events] == sorted(e.sequence for e in events)
        assert any("succeeded" in log.message for log in logs)


class TestReleaseStatistics:

    @pytest.mark.asyncio
    async def test_aggregates(self, release_service, engine):
        project = make_project([slack_block("a")])
        for release in (
            stored_release(project, "r1", R.SUCCEEDED, at(2025, 3, 3), duration=60, blocks=[
                ("SLACK_MESSAGE", B.SUCCEEDED, 2), ("TEAMCITY_BUILD", B.SUCCEEDED, 40),
            ]),
            stored_release(project, "r2", R.FAILED, at(2025, 3, 5), duration=120, blocks=[
                ("SLACK_MESSAGE", B.SUCCEEDED, 4), ("TEAMCITY_BUILD", B.FAILED, 100),
            ]),
            stored_release(project, "r3", R.CANCELLED, at(2025, 3, 11), blocks=[
                ("SLACK_MESSAGE", B.CANCELLED, None),
            ]),
            stored_release(project, "r4", R.SUCCEEDED, at(2025, 5, 1), duration=30),
        ):
            await engine.store.save_release(release)

        stats = await release_service.get_release_statistics(
            project.id, from_date=date(2025, 3, 1), to_date=date(2025, 3, 31)
        )

        assert (stats.total_releases, stats.successful_releases, stats.failed_releases) == (3, 1, 1)
        assert stats.average_duration == 90
        assert [(d.date, d.count, d.success_count, d.failure_count) for d in stats.releases_by_date] == [
            (date(2025, 3, 3), 1, 1, 0),
            (date(2025, 3, 5), 1, 0, 1),
            (date(2025, 3, 11), 1, 0, 0),
        ]

        rates = {r.block_type: r for r in stats.block_success_rates}
        assert rates["SLACK_MESSAGE"].total_executions == 2
        assert rates["SLACK_MESSAGE"].success_rate == 1.0
        assert rates["TEAMCITY_BUILD"].success_rate == 0.5

        assert [(u.block_type, u.usage_count, u.average_duration) for u in stats.most_used_blocks] == [
            ("SLACK_MESSAGE", 3, 3),
            ("TEAMCITY_BUILD", 2, 70),
        ]

    @pytest.mark.asyncio
    async def test_week_and_month_buckets(self, release_service, engine):
        project = make_project([slack_block("a")])
        for name, created in [("r1", at(2025, 3, 3)), ("r2", at(2025, 3, 9)), ("r3", at(2025, 3, 10))]:
            await engine.store.save_release(stored_release(project, name, created_at=created))

        weekly = await release_service.get_release_statistics(project.id, group_by=StatisticsGroupBy.WEEK)
        monthly = await release_service.get_release_statistics(project.id, group_by=StatisticsGroupBy.MONTH)

        assert [(d.date, d.count) for d in weekly.releases_by_date] == [
            (date(2025, 3, 3), 2), (date(2025, 3, 10), 1)
        ]
        assert [(d.date, d.count) for d in monthly.releases_by_date] == [(date(2025, 3, 1), 3)]

    @pytest.mark.asyncio
    async def test_empty_project(self, release_service):
        stats = await release_service.get_release_statistics("nothing")

        assert stats.total_releases == 0
        assert stats.average_duration == 0
        assert stats.most_used_blocks == []
