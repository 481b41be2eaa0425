# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
TeamCity REST adapter.
"""

from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from .base import BaseAdapter
from .errors import AdapterError


class TeamCityServerInfo(BaseModel):
    version: str = ""
    build_number: str = ""
    web_url: str = ""


class TeamCityBuild(BaseModel):
    """Build as reported by /app/rest/builds and /app/rest/buildQueue"""
    id: str
    number: Optional[str] = None
    state: str = "queued"  # queued, running, finished
    status: Optional[str] = None  # SUCCESS, FAILURE, UNKNOWN
    status_text: Optional[str] = None
    web_url: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.state == "finished"

    @property
    def is_successful(self) -> bool:
        return self.is_finished and self.status == "SUCCESS"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TeamCityBuild":
        return cls(
            id=str(data["id"]),
            number=data.get("number"),
            state=data.get("state", "queued"),
            status=data.get("status"),
            status_text=data.get("statusText"),
            web_url=data.get("webUrl"),
        )


class TeamCityAdapter(BaseAdapter):
    system = "teamcity"

    @classmethod
    def create(
        cls,
        server_url: str,
        token: str,
        timeout: float = 30.0,
        rate_limit_delay: float = 1.0
    ) -> "TeamCityAdapter":
        client = httpx.AsyncClient(
            base_url=server_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            }
        )
        return cls(client, rate_limit_delay)

    def _build_from(self, body: Any) -> TeamCityBuild:
        if not isinstance(body, dict) or "id" not in body:
            raise AdapterError.unknown(self.system, f"Unexpected build payload: {str(body)[:200]}")
        return TeamCityBuild.from_api(body)

    async def test_connection(self) -> TeamCityServerInfo:
        body = await self._request("GET", "/app/rest/server")
        body = body or {}
        info = TeamCityServerInfo(
            version=body.get("version", ""),
            build_number=body.get("buildNumber", ""),
            web_url=body.get("webUrl", "")
        )
        self.logger.info(f"TeamCity connection test successful: version={info.version}")
        return info

    async def trigger_build(
        self,
        build_config_id: str,
        branch: Optional[str] = None,
        properties: Optional[Dict[str, str]] = None
    ) -> TeamCityBuild:
        payload: Dict[str, Any] = {"buildType": {"id": build_config_id}}
        if branch:
            payload["branchName"] = branch
        if properties:
            payload["properties"] = {
                "property": [{"name": name, "value": value} for name, value in properties.items()]
            }
        body = await self._request("POST", "/app/rest/buildQueue", json=payload)
        build = self._build_from(body)
        self.logger.info(f"Triggered TeamCity build {build.id} for {build_config_id}")
        return build

    async def get_build_status(self, build_id: str) -> TeamCityBuild:
        body = await self._request("GET", f"/app/rest/builds/id:{build_id}")
        return self._build_from(body)

    async def cancel_build(self, build_id: str, comment: str = "Cancelled by Release Wizard") -> None:
        await self._request(
            "POST",
            f"/app/rest/builds/id:{build_id}",
            json={"comment": comment, "readdIntoQueue": False}
        )
        self.logger.info(f"Cancelled TeamCity build {build_id}")
