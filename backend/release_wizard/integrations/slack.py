# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Slack Web API adapter.

Slack answers most failures with HTTP 200 and {"ok": false, "error": ...},
so the body is inspected in addition to the status code.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from .base import BaseAdapter
from .errors import AdapterError


TRANSIENT_SLACK_ERRORS = {
    "ratelimited",
    "internal_error",
    "fatal_error",
    "service_unavailable",
    "request_timeout",
}


class SlackTeamInfo(BaseModel):
    team: str = ""
    team_id: str = ""
    user: str = ""
    user_id: str = ""
    url: str = ""


class SlackChannel(BaseModel):
    id: str
    name: str = ""
    is_private: bool = False
    is_member: bool = False


class SlackMessage(BaseModel):
    channel: str
    ts: str


class SlackAdapter(BaseAdapter):
    system = "slack"

    @classmethod
    def create(
        cls,
        token: str,
        base_url: str = "https://slack.com/api",
        timeout: float = 30.0,
        rate_limit_delay: float = 1.0
    ) -> "SlackAdapter":
        client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json; charset=utf-8",
            }
        )
        return cls(client, rate_limit_delay)

    async def _call(self, method: str, http_method: str = "POST", **payload: Any) -> Dict[str, Any]:
        if http_method == "GET":
            body = await self._request("GET", f"/{method}", params=payload or None)
        else:
            body = await self._request("POST", f"/{method}", json=payload)

        if not isinstance(body, dict):
            raise AdapterError.unknown(self.system, f"{method} returned no JSON object")
        if not body.get("ok", False):
            error = body.get("error", "unknown_error")
            if error in TRANSIENT_SLACK_ERRORS:
                self.logger.warning(f"{method} failed: {error}")
                raise AdapterError.transient(self.system, f"{method} failed: {error}")
            self.logger.error(f"{method} failed: {error}")
            raise AdapterError.permanent(self.system, f"{method} failed: {error}")
        return body

    async def test_connection(self) -> SlackTeamInfo:
        body = await self._call("auth.test")
        info = SlackTeamInfo(**{k: body.get(k, "") for k in SlackTeamInfo.model_fields})
        self.logger.info(f"Slack connection test successful: team={info.team}")
        return info

    async def list_channels(self, limit: int = 200) -> List[SlackChannel]:
        body = await self._call(
            "conversations.list",
            http_method="GET",
            types="public_channel,private_channel",
            exclude_archived="true",
            limit=limit
        )
        return [
            SlackChannel(
                id=channel["id"],
                name=channel.get("name", ""),
                is_private=channel.get("is_private", False),
                is_member=channel.get("is_member", False)
            )
            for channel in body.get("channels", [])
        ]

    async def post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> SlackMessage:
        payload: Dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        body = await self._call("chat.postMessage", **payload)
        return SlackMessage(channel=body.get("channel", channel), ts=body["ts"])

    async def update_message(self, channel: str, ts: str, text: str) -> SlackMessage:
        body = await self._call("chat.update", channel=channel, ts=ts, text=text)
        return SlackMessage(channel=body.get("channel", channel), ts=body.get("ts", ts))
