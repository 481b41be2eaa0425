# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit tests for the external-system adapters

HTTP behaviour is faked with httpx.MockTransport; nothing leaves the process.
"""

import base64
import json
from datetime import datetime, timezone

import httpx
import pytest

from release_wizard.integrations import (
    AdapterError, AdapterErrorKind, GitHubAdapter, MavenCentralAdapter, SlackAdapter, TeamCityAdapter
)
from release_wizard.integrations.base import classify_status
from release_wizard.integrations.maven_central import DeploymentState


def make_adapter(adapter_cls, handler, **client_kwargs):
    client = httpx.AsyncClient(
        base_url="https://example.test",
        transport=httpx.MockTransport(handler),
        **client_kwargs
    )
    return adapter_cls(client, rate_limit_delay=0)


class TestClassification:
    """HTTP status to error kind"""

    @pytest.mark.parametrize("status", [408, 425, 429, 500, 502, 503])
    def test_transient_statuses(self, status):
        assert classify_status(status) == AdapterErrorKind.TRANSIENT

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent_statuses(self, status):
        assert classify_status(status) == AdapterErrorKind.PERMANENT

    def test_only_permanent_is_not_retryable(self):
        assert AdapterErrorKind.TRANSIENT.is_retryable
        assert AdapterErrorKind.UNKNOWN.is_retryable
        assert not AdapterErrorKind.PERMANENT.is_retryable

    def test_error_carries_system_and_status(self):
        error = AdapterError.permanent("github", "bad token", 401)
        assert error.message == "github: bad token"
        assert error.http_status == 401
        assert error.to_dict()["details"]["kind"] == "PERMANENT"


class TestBaseAdapter:
    """Transport failures and body decoding"""

    @pytest.mark.asyncio
    async def test_connect_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_adapter(TeamCityAdapter, handler) as teamcity:
            with pytest.raises(AdapterError) as exc_info:
                await teamcity.get_build_status("1")
        assert exc_info.value.kind == AdapterErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async with make_adapter(TeamCityAdapter, handler) as teamcity:
            with pytest.raises(AdapterError) as exc_info:
                await teamcity.get_build_status("1")
        assert exc_info.value.kind == AdapterErrorKind.TRANSIENT
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        async with make_adapter(TeamCityAdapter, lambda request: httpx.Response(503, text="busy")) as teamcity:
            with pytest.raises(AdapterError) as exc_info:
                await teamcity.get_build_status("1")
        assert exc_info.value.kind == AdapterErrorKind.TRANSIENT
        assert exc_info.value.http_status == 503

    @pytest.mark.asyncio
    async def test_auth_error_is_permanent(self):
        async with make_adapter(TeamCityAdapter, lambda request: httpx.Response(401)) as teamcity:
            with pytest.raises(AdapterError) as exc_info:
                await teamcity.test_connection()
        assert exc_info.value.kind == AdapterErrorKind.PERMANENT

    @pytest.mark.asyncio
    async def test_undecodable_body_is_unknown(self):
        async with make_adapter(TeamCityAdapter, lambda request: httpx.Response(200, text="<html>")) as teamcity:
            with pytest.raises(AdapterError) as exc_info:
                await teamcity.get_build_status("1")
        assert exc_info.value.kind == AdapterErrorKind.UNKNOWN


class TestSlackAdapter:
    """Slack Web API"""

    @pytest.mark.asyncio
    async def test_post_message(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "channel": "C1", "ts": "111.222"})

        async with make_adapter(SlackAdapter, handler) as slack:
            message = await slack.post_message("#releases", "Shipped", thread_ts="100.1")

        assert message.ts == "111.222"
        assert message.channel == "C1"
        assert seen["path"] == "/chat.postMessage"
        assert seen["body"] == {"channel": "#releases", "text": "Shipped", "thread_ts": "100.1"}

    @pytest.mark.asyncio
    async def test_ok_false_is_permanent(self):
        handler = lambda request: httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
        async with make_adapter(SlackAdapter, handler) as slack:
            with pytest.raises(AdapterError) as exc_info:
                await slack.post_message("#nope", "hi")
        assert exc_info.value.kind == AdapterErrorKind.PERMANENT
        assert "channel_not_found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_ratelimited_is_transient(self):
        handler = lambda request: httpx.Response(200, json={"ok": False, "error": "ratelimited"})
        async with make_adapter(SlackAdapter, handler) as slack:
            with pytest.raises(AdapterError) as exc_info:
                await slack.post_message("#releases", "hi")
        assert exc_info.value.kind == AdapterErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_list_channels(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.params["types"] == "public_channel,private_channel"
            return httpx.Response(200, json={
                "ok": True,
                "channels": [{"id": "C1", "name": "releases", "is_member": True}, {"id": "C2"}]
            })

        async with make_adapter(SlackAdapter, handler) as slack:
            channels = await slack.list_channels()

        assert [c.id for c in channels] == ["C1", "C2"]
        assert channels[0].is_member

    @pytest.mark.asyncio
    async def test_connection_and_update(self):
        def handler(request):
            if request.url.path == "/auth.test":
                return httpx.Response(200, json={"ok": True, "team": "Acme", "user_id": "U1"})
            return httpx.Response(200, json={"ok": True, "channel": "C1", "ts": "1.2"})

        async with make_adapter(SlackAdapter, handler) as slack:
            info = await slack.test_connection()
            updated = await slack.update_message("C1", "1.2", "edited")

        assert info.team == "Acme"
        assert info.user_id == "U1"
        assert updated.ts == "1.2"


class TestTeamCityAdapter:
    """TeamCity REST API"""

    @pytest.mark.asyncio
    async def test_trigger_build_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": 42, "state": "queued", "webUrl": "https://tc/42"})

        async with make_adapter(TeamCityAdapter, handler) as teamcity:
            build = await teamcity.trigger_build("Proj_Build", branch="release/1.0", properties={"env.V": "1.0"})

        assert build.id == "42"
        assert build.web_url == "https://tc/42"
        assert seen["path"] == "/app/rest/buildQueue"
        assert seen["body"] == {
            "buildType": {"id": "Proj_Build"},
            "branchName": "release/1.0",
            "properties": {"property": [{"name": "env.V", "value": "1.0"}]},
        }

    @pytest.mark.asyncio
    async def test_build_status(self):
        def handler(request):
            assert request.url.path == "/app/rest/builds/id:42"
            return httpx.Response(200, json={
                "id": 42, "number": "17", "state": "finished", "status": "FAILURE", "statusText": "Tests failed"
            })

        async with make_adapter(TeamCityAdapter, handler) as teamcity:
            build = await teamcity.get_build_status("42")

        assert build.is_finished
        assert not build.is_successful
        assert build.status_text == "Tests failed"

    @pytest.mark.asyncio
    async def test_cancel_build_accepts_empty_body(self):
        async with make_adapter(TeamCityAdapter, lambda request: httpx.Response(204)) as teamcity:
            assert await teamcity.cancel_build("42") is None

    @pytest.mark.asyncio
    async def test_payload_without_id_is_unknown(self):
        async with make_adapter(TeamCityAdapter, lambda request: httpx.Response(200, json={"state": "queued"})) as teamcity:
            with pytest.raises(AdapterError) as exc_info:
                await teamcity.trigger_build("Proj_Build")
        assert exc_info.value.kind == AdapterErrorKind.UNKNOWN


RELEASE_JSON = {
    "id": 7,
    "tag_name": "v1.0.0",
    "name": "v1.0.0",
    "html_url": "https://github.com/acme/app/releases/tag/v1.0.0",
    "draft": False,
    "prerelease": False,
    "published_at": "2025-01-01T10:00:00Z",
}


class TestGitHubAdapter:
    """GitHub REST API"""

    @pytest.mark.asyncio
    async def test_create_release(self):
        def handler(request):
            assert request.url.path == "/repos/acme/app/releases"
            assert json.loads(request.content)["target_commitish"] == "main"
            return httpx.Response(201, json=RELEASE_JSON)

        async with make_adapter(GitHubAdapter, handler) as github:
            release = await github.create_release("acme/app", "v1.0.0", target_commitish="main")

        assert release.id == 7
        assert release.is_published

    @pytest.mark.asyncio
    async def test_create_release_returns_existing_tag(self):
        """A second attempt for the same tag must not create another release"""
        def handler(request):
            if request.method == "POST":
                return httpx.Response(422, json={
                    "message": "Validation Failed",
                    "errors": [{"resource": "Release", "code": "already_exists", "field": "tag_name"}]
                })
            assert request.url.path == "/repos/acme/app/releases/tags/v1.0.0"
            return httpx.Response(200, json=RELEASE_JSON)

        async with make_adapter(GitHubAdapter, handler) as github:
            release = await github.create_release("acme/app", "v1.0.0", target_commitish="main")

        assert release.id == 7

    @pytest.mark.asyncio
    async def test_other_validation_errors_propagate(self):
        handler = lambda request: httpx.Response(422, json={"message": "Validation Failed", "errors": []})
        async with make_adapter(GitHubAdapter, handler) as github:
            with pytest.raises(AdapterError) as exc_info:
                await github.create_release("acme/app", "v1.0.0", target_commitish="main")
        assert exc_info.value.kind == AdapterErrorKind.PERMANENT

    @pytest.mark.asyncio
    async def test_release_by_missing_tag_is_none(self):
        async with make_adapter(GitHubAdapter, lambda request: httpx.Response(404, json={})) as github:
            assert await github.get_release_by_tag("acme/app", "v9") is None

    @pytest.mark.asyncio
    async def test_dispatch_and_find_run(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "POST":
                return httpx.Response(204)
            return httpx.Response(200, json={"workflow_runs": [
                {"id": 99, "status": "in_progress", "html_url": "https://github.com/acme/app/actions/runs/99"}
            ]})

        async with make_adapter(GitHubAdapter, handler) as github:
            await github.dispatch_workflow("acme/app", "release.yml", "main", {"version": "1.0"})
            run = await github.find_dispatched_run(
                "acme/app", "release.yml", "main", datetime(2025, 1, 1, tzinfo=timezone.utc)
            )

        assert json.loads(requests[0].content) == {"ref": "main", "inputs": {"version": "1.0"}}
        assert requests[1].url.params["created"] == ">=2025-01-01T00:00:00Z"
        assert requests[1].url.params["event"] == "workflow_dispatch"
        assert run.id == 99
        assert not run.is_completed

    @pytest.mark.asyncio
    async def test_find_run_before_it_exists(self):
        handler = lambda request: httpx.Response(200, json={"workflow_runs": []})
        async with make_adapter(GitHubAdapter, handler) as github:
            run = await github.find_dispatched_run(
                "acme/app", "release.yml", "main", datetime(2025, 1, 1, tzinfo=timezone.utc)
            )
        assert run is None


class TestMavenCentralAdapter:
    """Central Publisher Portal API"""

    def test_create_uses_bearer_user_token(self):
        adapter = MavenCentralAdapter.create("user", "secret", rate_limit_delay=0)
        expected = base64.b64encode(b"user:secret").decode()
        assert adapter.client.headers["Authorization"] == f"Bearer {expected}"

    @pytest.mark.asyncio
    async def test_deployment_status(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.params["id"] == "dep-1"
            return httpx.Response(200, json={
                "deploymentId": "dep-1",
                "deploymentName": "acme-1.0",
                "deploymentState": "PUBLISHED",
                "purls": ["pkg:maven/com.acme/app@1.0"],
            })

        async with make_adapter(MavenCentralAdapter, handler) as maven:
            status = await maven.check_deployment_status("dep-1")

        assert status.state == DeploymentState.PUBLISHED
        assert status.is_published
        assert status.purls == ["pkg:maven/com.acme/app@1.0"]

    @pytest.mark.asyncio
    async def test_unknown_state(self):
        handler = lambda request: httpx.Response(200, json={"deploymentState": "EXPLODED"})
        async with make_adapter(MavenCentralAdapter, handler) as maven:
            with pytest.raises(AdapterError) as exc_info:
                await maven.check_deployment_status("dep-1")
        assert exc_info.value.kind == AdapterErrorKind.UNKNOWN
