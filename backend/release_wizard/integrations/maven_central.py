# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Maven Central Publisher Portal adapter.

Authenticates with a portal user token: Bearer base64(username:password).
"""

import base64
from enum import Enum
from typing import Dict, List, Any

import httpx
from pydantic import BaseModel

from .base import BaseAdapter
from .errors import AdapterError


class DeploymentState(str, Enum):
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    VALIDATED = "VALIDATED"
    PUBLISHING = "PUBLISHING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


class DeploymentStatus(BaseModel):
    deployment_id: str
    deployment_name: str = ""
    state: DeploymentState
    purls: List[str] = []
    errors: Dict[str, Any] = {}

    @property
    def is_published(self) -> bool:
        return self.state == DeploymentState.PUBLISHED

    @property
    def is_failed(self) -> bool:
        return self.state == DeploymentState.FAILED


class MavenCentralAdapter(BaseAdapter):
    system = "maven"

    @classmethod
    def create(
        cls,
        username: str,
        password: str,
        base_url: str = "https://central.sonatype.com",
        timeout: float = 30.0,
        rate_limit_delay: float = 1.0
    ) -> "MavenCentralAdapter":
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            }
        )
        return cls(client, rate_limit_delay)

    async def test_connection(self) -> Dict[str, Any]:
        """Authenticated probe; the portal rejects bad tokens with 401"""
        body = await self._request(
            "GET",
            "/api/v1/publisher/published",
            params={"namespace": "io.github.rwizard", "name": "probe", "version": "0.0.0"}
        )
        self.logger.info("Maven Central connection test successful")
        return body or {}

    async def check_deployment_status(self, deployment_id: str) -> DeploymentStatus:
        body = await self._request("POST", "/api/v1/publisher/status", params={"id": deployment_id})
        if not isinstance(body, dict) or "deploymentState" not in body:
            raise AdapterError.unknown(self.system, f"Unexpected status payload: {str(body)[:200]}")
        try:
            state = DeploymentState(body["deploymentState"])
        except ValueError:
            raise AdapterError.unknown(self.system, f"Unknown deployment state: {body['deploymentState']}")
        return DeploymentStatus(
            deployment_id=body.get("deploymentId", deployment_id),
            deployment_name=body.get("deploymentName", ""),
            state=state,
            purls=body.get("purls") or [],
            errors=body.get("errors") or {}
        )
