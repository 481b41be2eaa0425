# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
GitHub REST adapter: workflow dispatch / runs and releases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from .base import BaseAdapter
from .errors import AdapterError


class GitHubUser(BaseModel):
    login: str
    id: int = 0
    name: Optional[str] = None


class GitHubWorkflowRun(BaseModel):
    id: int
    status: str  # queued, in_progress, completed, ...
    conclusion: Optional[str] = None  # success, failure, cancelled, ...
    html_url: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_successful(self) -> bool:
        return self.is_completed and self.conclusion == "success"


class GitHubRelease(BaseModel):
    id: int
    tag_name: str
    name: Optional[str] = None
    html_url: str = ""
    draft: bool = False
    prerelease: bool = False
    published_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return not self.draft and self.published_at is not None


class GitHubAdapter(BaseAdapter):
    system = "github"

    @classmethod
    def create(
        cls,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        rate_limit_delay: float = 1.0
    ) -> "GitHubAdapter":
        client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        return cls(client, rate_limit_delay)

    async def test_connection(self) -> GitHubUser:
        body = await self._request("GET", "/user")
        user = GitHubUser(**body)
        self.logger.info(f"GitHub connection test successful: user={user.login}")
        return user

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def dispatch_workflow(
        self,
        repository: str,
        workflow_id: str,
        ref: str,
        inputs: Optional[Dict[str, str]] = None
    ) -> None:
        """Dispatch a workflow; GitHub answers 204 without the run id"""
        await self._request(
            "POST",
            f"/repos/{repository}/actions/workflows/{workflow_id}/dispatches",
            json={"ref": ref, "inputs": inputs or {}}
        )
        self.logger.info(f"Dispatched workflow {workflow_id} on {repository}@{ref}")

    async def find_dispatched_run(
        self,
        repository: str,
        workflow_id: str,
        ref: str,
        created_after: datetime
    ) -> Optional[GitHubWorkflowRun]:
        """Newest workflow_dispatch run on `ref` created at or after `created_after`"""
        body = await self._request(
            "GET",
            f"/repos/{repository}/actions/workflows/{workflow_id}/runs",
            params={
                "event": "workflow_dispatch",
                "branch": ref,
                "created": f">={created_after.strftime('%Y-%m-%dT%H:%M:%SZ')}",
                "per_page": 10,
            }
        )
        runs: List[Dict[str, Any]] = (body or {}).get("workflow_runs", [])
        if not runs:
            return None
        return GitHubWorkflowRun(**runs[0])

    async def get_workflow_run(self, repository: str, run_id: int) -> GitHubWorkflowRun:
        body = await self._request("GET", f"/repos/{repository}/actions/runs/{run_id}")
        return GitHubWorkflowRun(**body)

    async def cancel_workflow_run(self, repository: str, run_id: int) -> None:
        await self._request("POST", f"/repos/{repository}/actions/runs/{run_id}/cancel")
        self.logger.info(f"Cancelled workflow run {run_id} on {repository}")

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    async def create_release(
        self,
        repository: str,
        tag_name: str,
        target_commitish: str,
        name: Optional[str] = None,
        body: str = "",
        draft: bool = False,
        prerelease: bool = False
    ) -> GitHubRelease:
        """
        Create a release, or return the existing one for the same tag.

        A re-attempt after an unknown outcome therefore never creates a
        second release.
        """
        payload = {
            "tag_name": tag_name,
            "target_commitish": target_commitish,
            "name": name or tag_name,
            "body": body,
            "draft": draft,
            "prerelease": prerelease,
        }
        try:
            response = await self._request("POST", f"/repos/{repository}/releases", json=payload)
        except AdapterError as e:
            if e.http_status == 422 and "already_exists" in e.message:
                existing = await self.get_release_by_tag(repository, tag_name)
                if existing is not None:
                    self.logger.info(f"Release {tag_name} already exists on {repository}")
                    return existing
            raise
        release = GitHubRelease(**response)
        self.logger.info(f"Created release {release.tag_name} on {repository}")
        return release

    async def get_release_by_tag(self, repository: str, tag_name: str) -> Optional[GitHubRelease]:
        try:
            body = await self._request("GET", f"/repos/{repository}/releases/tags/{tag_name}")
        except AdapterError as e:
            if e.http_status == 404:
                return None
            raise
        return GitHubRelease(**body)

    async def get_release(self, repository: str, release_id: int) -> GitHubRelease:
        body = await self._request("GET", f"/repos/{repository}/releases/{release_id}")
        return GitHubRelease(**body)
