# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Adapters for the external systems a release talks to.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import AdapterError, AdapterErrorKind
from .base import BaseAdapter
from .slack import SlackAdapter
from .teamcity import TeamCityAdapter
from .github import GitHubAdapter
from .maven_central import MavenCentralAdapter


@dataclass
class Integrations:
    """Adapters available to executors; a missing one fails its blocks permanently"""
    slack: Optional[SlackAdapter] = None
    teamcity: Optional[TeamCityAdapter] = None
    github: Optional[GitHubAdapter] = None
    maven_central: Optional[MavenCentralAdapter] = None

    async def aclose(self) -> None:
        for adapter in (self.slack, self.teamcity, self.github, self.maven_central):
            if adapter is not None:
                await adapter.aclose()


__all__ = [
    "AdapterError",
    "AdapterErrorKind",
    "BaseAdapter",
    "SlackAdapter",
    "TeamCityAdapter",
    "GitHubAdapter",
    "MavenCentralAdapter",
    "Integrations",
]
