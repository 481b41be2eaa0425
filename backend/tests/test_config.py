# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tests for configuration loading, logging helpers and component wiring
"""

import json
import logging

import pytest

from release_wizard.core.config import Config, load_config
from release_wizard.core.dependencies import (
    create_application, get_integrations, get_release_store
)
from release_wizard.core.errors import ConfigurationError, NotFoundError, sanitize_error_for_user
from release_wizard.core.logging import JSONFormatter, log_event
from release_wizard.integrations import Integrations
from release_wizard.storage import FileReleaseStore, InMemoryReleaseStore

SECRETS = [
    "SLACK_BOT_TOKEN", "TEAMCITY_TOKEN", "GITHUB_TOKEN",
    "MAVEN_CENTRAL_USERNAME", "MAVEN_CENTRAL_PASSWORD", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in SECRETS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path, clean_env):
        assert load_config(str(tmp_path / "absent.yaml")) == Config()

    def test_reads_sections(self, tmp_path, clean_env):
        path = tmp_path / "release-wizard.yaml"
        path.write_text(
            "storage:\n"
            "  backend: memory\n"
            "  path: /data/releases\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  format: text\n"
            "polling:\n"
            "  interval: 2\n"
            "retry:\n"
            "  base_delay: 1\n"
            "  max_retries: 5\n"
            "engine:\n"
            "  max_concurrent_blocks: 8\n"
            "integrations:\n"
            "  teamcity:\n"
            "    server_url: https://tc.example.com\n"
        )

        config = load_config(str(path))

        assert config.storage_backend == "memory"
        assert str(config.storage_dir) == "/data/releases"
        assert config.log_level == "DEBUG"
        assert config.log_format == "text"
        assert config.poll_interval == 2
        assert config.retry_base_delay == 1
        assert config.default_max_retries == 5
        assert config.max_concurrent_blocks == 8
        assert config.teamcity_url == "https://tc.example.com"
        # Untouched sections keep their defaults
        assert config.http_timeout == Config().http_timeout
        assert config.slack_api_url == "https://slack.com/api"

    def test_empty_file(self, tmp_path, clean_env):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(str(path)) == Config()

    def test_log_level_from_env(self, tmp_path, clean_env):
        path = tmp_path / "release-wizard.yaml"
        path.write_text("logging:\n  level: INFO\n")
        clean_env.setenv("LOG_LEVEL", "WARNING")

        assert load_config(str(path)).log_level == "WARNING"

    def test_config_is_frozen(self):
        config = Config()
        with pytest.raises(AttributeError):
            config.poll_interval = 1


class TestWiring:

    def test_store_selection(self, tmp_path):
        assert isinstance(get_release_store(Config(storage_backend="memory")), InMemoryReleaseStore)

        file_store = get_release_store(Config(storage_backend="file", storage_path=str(tmp_path / "r")))
        assert isinstance(file_store, FileReleaseStore)
        assert (tmp_path / "r").is_dir()

        with pytest.raises(ConfigurationError):
            get_release_store(Config(storage_backend="postgres"))

    @pytest.mark.asyncio
    async def test_integrations_follow_secrets(self, clean_env):
        clean_env.setenv("SLACK_BOT_TOKEN", "xoxb-test")
        clean_env.setenv("MAVEN_CENTRAL_USERNAME", "user")

        integrations = get_integrations(Config())
        try:
            assert integrations.slack is not None
            assert integrations.slack.client.base_url.host == "slack.com"
            assert integrations.teamcity is None
            assert integrations.github is None
            # Half a credential pair is no credential
            assert integrations.maven_central is None
        finally:
            await integrations.aclose()

    @pytest.mark.asyncio
    async def test_teamcity_needs_server_url(self, clean_env, caplog):
        clean_env.setenv("TEAMCITY_TOKEN", "tc-token")

        with caplog.at_level(logging.WARNING):
            missing = get_integrations(Config())
        assert missing.teamcity is None
        assert "server_url" in caplog.text

        configured = get_integrations(Config(teamcity_url="https://tc.example.com"))
        try:
            assert configured.teamcity.client.base_url.host == "tc.example.com"
        finally:
            await configured.aclose()

    @pytest.mark.asyncio
    async def test_application_lifecycle(self, tmp_path):
        config = Config(storage_backend="memory", projects_path=str(tmp_path / "projects"))
        app = create_application(config, integrations=Integrations())

        await app.startup()
        assert app.releases.engine is app.engine
        assert app.releases.store is app.engine.store
        with pytest.raises(NotFoundError):
            await app.projects.get_project("missing")
        await app.shutdown()


class TestLogging:

    def test_json_formatter_includes_extra_fields(self):
        logger = logging.getLogger("rwizard.test.json")
        record = logger.makeRecord(
            logger.name, logging.INFO, __file__, 1, "release_started", (), None,
            extra={"release_id": "r1"}
        )

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "release_started"
        assert payload["level"] == "INFO"
        assert payload["release_id"] == "r1"

    def test_log_event_passes_fields(self, caplog):
        logger = logging.getLogger("rwizard.test.events")

        with caplog.at_level(logging.INFO, logger=logger.name):
            log_event(logger, "block_retry_scheduled", "WARNING", retry_count=2)

        [record] = caplog.records
        assert record.levelname == "WARNING"
        assert record.retry_count == 2

    def test_sanitize_error_truncates(self):
        message = sanitize_error_for_user(RuntimeError("x" * 600))

        assert message.startswith("RuntimeError: ")
        assert message.endswith("...")
        assert len(message) < 600
