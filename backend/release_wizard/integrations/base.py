# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Base adapter for external systems.

Owns the httpx client, applies the fixed courtesy delay before every
outbound call and maps transport / HTTP failures onto AdapterError.
Adapters never retry; retry is decided per block execution by the engine.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from release_wizard.core.logging import get_integration_logger
from .errors import AdapterError, AdapterErrorKind


TRANSIENT_STATUS_CODES = {408, 425, 429}


def classify_status(status_code: int) -> AdapterErrorKind:
    """Map an HTTP error status onto the adapter error taxonomy"""
    if status_code in TRANSIENT_STATUS_CODES or status_code >= 500:
        return AdapterErrorKind.TRANSIENT
    return AdapterErrorKind.PERMANENT


class BaseAdapter:
    """
    Common plumbing for the Slack, TeamCity, GitHub and Maven Central adapters.

    The httpx.AsyncClient is injected so tests can pass one built on
    httpx.MockTransport; the adapter closes it in aclose().
    """

    system = "external"

    def __init__(self, client: httpx.AsyncClient, rate_limit_delay: float = 1.0):
        self.client = client
        self.rate_limit_delay = rate_limit_delay
        self.logger = get_integration_logger(self.system)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        """Send one request; raise AdapterError on transport failure or HTTP error"""
        await asyncio.sleep(self.rate_limit_delay)

        try:
            response = await self.client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            self.logger.warning(f"{method} {path} timed out: {e}")
            raise AdapterError.transient(self.system, f"Request timed out: {method} {path}")
        except httpx.TransportError as e:
            self.logger.warning(f"{method} {path} failed: {e}")
            raise AdapterError.transient(self.system, f"Connection failed: {e}")

        if response.is_error:
            kind = classify_status(response.status_code)
            message = f"{method} {path} returned HTTP {response.status_code}: {response.text[:500]}"
            if kind == AdapterErrorKind.TRANSIENT:
                self.logger.warning(message)
            else:
                self.logger.error(message)
            raise AdapterError(kind, self.system, message, response.status_code)

        return response

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """Send one request and decode its JSON body (None for empty bodies)"""
        response = await self._send(method, path, params=params, json=json, headers=headers)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise AdapterError.unknown(
                self.system,
                f"Undecodable response from {method} {path}: {response.text[:200]}",
                response.status_code
            )
