# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Release Wizard Configuration - Single source of truth.
YAML is king. Env vars ONLY for secrets.

- ALL configuration in plain text (YAML)
- NO hidden state - everything inspectable via `cat`, `grep`
"""

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable application configuration.
    All values from YAML. No hidden state.
    """

    # -- Storage --
    storage_backend: str = "file"  # "file" or "memory"
    storage_path: str = "./volumes/releases"
    projects_path: str = "./volumes/projects"

    # -- Logging --
    log_level: str = "INFO"
    log_format: str = "json"

    # -- HTTP --
    http_timeout: float = 30.0
    rate_limit_delay: float = 1.0  # fixed courtesy delay before each outbound call

    # -- Polling (TeamCity / GitHub) --
    poll_interval: float = 10.0
    poll_timeout: float = 3600.0  # used when a block declares no timeout

    # -- Retry --
    retry_base_delay: float = 5.0
    retry_max_delay: float = 300.0
    default_max_retries: int = 3

    # -- Scheduling --
    max_concurrent_blocks: int = 4  # per release

    # -- External systems --
    slack_api_url: str = "https://slack.com/api"
    github_api_url: str = "https://api.github.com"
    maven_central_url: str = "https://central.sonatype.com"
    teamcity_url: Optional[str] = None

    @property
    def storage_dir(self) -> Path:
        return Path(self.storage_path)

    @property
    def projects_dir(self) -> Path:
        return Path(self.projects_path)


# =============================================================================
# SECRETS - The ONLY thing from environment variables
# =============================================================================

def get_slack_bot_token() -> Optional[str]:
    """Tokens cannot be in version control."""
    return os.getenv("SLACK_BOT_TOKEN")


def get_teamcity_token() -> Optional[str]:
    """Tokens cannot be in version control."""
    return os.getenv("TEAMCITY_TOKEN")


def get_github_token() -> Optional[str]:
    """Tokens cannot be in version control."""
    return os.getenv("GITHUB_TOKEN")


def get_maven_central_credentials() -> Optional[tuple]:
    """Portal user token pair, or None when either half is missing."""
    username = os.getenv("MAVEN_CENTRAL_USERNAME")
    password = os.getenv("MAVEN_CENTRAL_PASSWORD")
    if not username or not password:
        return None
    return username, password


# =============================================================================
# LOADER
# =============================================================================

def load_config(path: str = "configs/release-wizard.yaml") -> Config:
    """
    Load configuration from YAML.
    Returns defaults if file doesn't exist.
    """
    if not Path(path).exists():
        return Config()

    with open(path) as f:
        y = yaml.safe_load(f) or {}

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    defaults = Config()
    return Config(
        # Storage
        storage_backend=get(y, "storage", "backend") or defaults.storage_backend,
        storage_path=get(y, "storage", "path") or defaults.storage_path,
        projects_path=get(y, "storage", "projects_path") or defaults.projects_path,

        # Logging
        log_level=os.getenv("LOG_LEVEL") or get(y, "logging", "level") or defaults.log_level,
        log_format=get(y, "logging", "format") or defaults.log_format,

        # HTTP
        http_timeout=get(y, "http", "timeout", default=defaults.http_timeout),
        rate_limit_delay=get(y, "http", "rate_limit_delay", default=defaults.rate_limit_delay),

        # Polling
        poll_interval=get(y, "polling", "interval", default=defaults.poll_interval),
        poll_timeout=get(y, "polling", "timeout", default=defaults.poll_timeout),

        # Retry
        retry_base_delay=get(y, "retry", "base_delay", default=defaults.retry_base_delay),
        retry_max_delay=get(y, "retry", "max_delay", default=defaults.retry_max_delay),
        default_max_retries=get(y, "retry", "max_retries", default=defaults.default_max_retries),

        # Scheduling
        max_concurrent_blocks=get(y, "engine", "max_concurrent_blocks",
                                  default=defaults.max_concurrent_blocks),

        # External systems
        slack_api_url=get(y, "integrations", "slack", "api_url") or defaults.slack_api_url,
        github_api_url=get(y, "integrations", "github", "api_url") or defaults.github_api_url,
        maven_central_url=get(y, "integrations", "maven_central", "url") or defaults.maven_central_url,
        teamcity_url=get(y, "integrations", "teamcity", "server_url"),
    )


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        config_path = os.getenv("RWIZARD_CONFIG_PATH", "configs/release-wizard.yaml")
        _config = load_config(config_path)
    return _config


def reload_config() -> Config:
    """Force reload configuration."""
    global _config
    _config = None
    return get_config()
