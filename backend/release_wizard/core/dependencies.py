# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Component wiring for Release Wizard.

Builds storage, adapters, the engine and the services from configuration.
Follows the principle: modular architecture with clear dependencies, no
hidden globals beyond the config itself.
"""

from dataclasses import dataclass
from typing import Optional

from release_wizard.core.config import (
    Config, get_config,
    get_slack_bot_token, get_teamcity_token, get_github_token, get_maven_central_credentials,
)
from release_wizard.core.errors import ConfigurationError
from release_wizard.core.logging import get_logger

logger = get_logger(__name__)


def get_current_config() -> Config:
    """
    Get current application configuration.

    Returns:
        Config: Application configuration
    """
    return get_config()


def get_release_store(config: Optional[Config] = None):
    """Get the ReleaseStore selected by storage.backend"""
    config = config or get_current_config()
    if config.storage_backend == "memory":
        from release_wizard.storage.memory import InMemoryReleaseStore
        return InMemoryReleaseStore()
    if config.storage_backend == "file":
        from release_wizard.storage.file import FileReleaseStore
        return FileReleaseStore(config.storage_dir)
    raise ConfigurationError(f"Unknown storage backend: {config.storage_backend}")


def get_integrations(config: Optional[Config] = None):
    """
    Build the adapters whose secrets are present in the environment.

    A system without credentials is left out; its blocks fail permanently.
    """
    from release_wizard.integrations import (
        Integrations, SlackAdapter, TeamCityAdapter, GitHubAdapter, MavenCentralAdapter
    )
    config = config or get_current_config()
    http = {"timeout": config.http_timeout, "rate_limit_delay": config.rate_limit_delay}
    integrations = Integrations()

    slack_token = get_slack_bot_token()
    if slack_token:
        integrations.slack = SlackAdapter.create(slack_token, base_url=config.slack_api_url, **http)

    teamcity_token = get_teamcity_token()
    if teamcity_token and config.teamcity_url:
        integrations.teamcity = TeamCityAdapter.create(config.teamcity_url, teamcity_token, **http)
    elif teamcity_token:
        logger.warning("TEAMCITY_TOKEN is set but integrations.teamcity.server_url is not configured")

    github_token = get_github_token()
    if github_token:
        integrations.github = GitHubAdapter.create(github_token, base_url=config.github_api_url, **http)

    maven_credentials = get_maven_central_credentials()
    if maven_credentials:
        username, password = maven_credentials
        integrations.maven_central = MavenCentralAdapter.create(
            username, password, base_url=config.maven_central_url, **http
        )

    enabled = [name for name in ("slack", "teamcity", "github", "maven_central") if getattr(integrations, name)]
    logger.info(f"Integrations enabled: {', '.join(enabled) or 'none'}")
    return integrations


def get_release_engine(config: Optional[Config] = None, store=None, integrations=None):
    """Get a ReleaseEngine; missing collaborators are built from config"""
    from release_wizard.engine import ReleaseEngine
    config = config or get_current_config()
    return ReleaseEngine(
        store=store if store is not None else get_release_store(config),
        integrations=integrations if integrations is not None else get_integrations(config),
        config=config
    )


def get_project_service(config: Optional[Config] = None):
    """Get ProjectService instance."""
    from release_wizard.services.project_service import ProjectService
    config = config or get_current_config()
    return ProjectService(projects_dir=config.projects_dir)


def get_release_service(engine, project_service=None, config: Optional[Config] = None):
    """Get ReleaseService instance."""
    from release_wizard.services.release_service import ReleaseService
    return ReleaseService(engine, project_service or get_project_service(config))


@dataclass
class Application:
    """Fully wired components sharing one store and one engine"""
    config: Config
    engine: "ReleaseEngine"
    projects: "ProjectService"
    releases: "ReleaseService"

    async def startup(self) -> None:
        """Resume releases left RUNNING or PAUSED by a previous process"""
        await self.engine.recover()

    async def shutdown(self) -> None:
        await self.engine.shutdown()
        await self.engine.integrations.aclose()


def create_application(config: Optional[Config] = None, store=None, integrations=None) -> Application:
    config = config or get_current_config()
    engine = get_release_engine(config, store=store, integrations=integrations)
    projects = get_project_service(config)
    return Application(
        config=config,
        engine=engine,
        projects=projects,
        releases=get_release_service(engine, projects, config)
    )
