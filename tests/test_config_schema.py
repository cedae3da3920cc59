"""Tests for the unified config schema and adapter functions.

Covers the Pydantic section models in config_schema.py (UnifiedConfig,
JiraConfig, SyncConfig, LoggingConfig), the build_config() factory, and
the to_legacy_config() adapter that feeds the REST client.
"""

import logging

import pytest
from pydantic import ValidationError

from jira_sync_mcp.config_schema import (
    JiraConfig,
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_legacy_config,
)

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    def test_zero_config_defaults(self):
        config = UnifiedConfig()
        assert config.jira.domain is None
        assert config.jira.api_version == 2
        assert config.sync.project_id == "default"
        assert config.sync.resolve_conflicts == "manual"
        assert config.logging.level == "INFO"

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.jira = JiraConfig(domain="x")


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class TestJiraConfig:
    def test_all_fields_optional(self):
        jira = JiraConfig()
        assert jira.email is None
        assert jira.api_token is None
        assert jira.insecure is False
        assert jira.timeout == 60.0

    def test_api_version_restricted(self):
        assert JiraConfig(api_version=3).api_version == 3
        with pytest.raises(ValidationError):
            JiraConfig(api_version=1)

    @pytest.mark.parametrize("timeout", [0, 601])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            JiraConfig(timeout=timeout)


class TestSyncConfig:
    def test_defaults(self):
        sync = SyncConfig()
        assert sync.issue_type == "Story"
        assert sync.apply_remote_on_pull_conflict is False
        assert sync.store_path == ".jira_sync/store.json"
        assert sync.chunk_size == 10
        assert sync.chunk_delay == 1.0
        assert sync.min_request_interval == 0.1
        assert sync.status_cache_ttl == 300.0
        assert sync.connect_timeout == 10.0
        assert sync.run_timeout is None

    @pytest.mark.parametrize("policy", ["local", "remote", "manual"])
    def test_conflict_policies(self, policy):
        assert SyncConfig(resolve_conflicts=policy).resolve_conflicts == policy

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(resolve_conflicts="newest")

    @pytest.mark.parametrize(
        "field, value",
        [
            ("chunk_size", 0),
            ("chunk_delay", -1),
            ("connect_timeout", 0),
            ("run_timeout", 0),
        ],
    )
    def test_numeric_bounds(self, field, value):
        with pytest.raises(ValidationError):
            SyncConfig(**{field: value})


class TestLoggingConfig:
    def test_defaults(self):
        log = LoggingConfig()
        assert log.level == "INFO"
        assert log.file is None

    def test_custom_values(self):
        log = LoggingConfig(level="DEBUG", file="/tmp/jira_sync.log")
        assert log.level == "DEBUG"
        assert log.file == "/tmp/jira_sync.log"


# ---------------------------------------------------------------------------
# build_config()
# ---------------------------------------------------------------------------


class TestBuildConfig:
    def test_empty_dict_returns_defaults(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections_fill_defaults(self):
        config = build_config({"sync": {"issue_type": "Task"}})
        assert config.sync.issue_type == "Task"
        assert config.sync.chunk_size == 10
        assert config.jira == JiraConfig()

    def test_full_raw_dict(self):
        config = build_config(
            {
                "jira": {
                    "domain": "acme.atlassian.net",
                    "email": "bot@example.com",
                    "api_token": "t",
                    "project_key": "ABC",
                    "api_version": 3,
                },
                "sync": {"project_id": "p1", "resolve_conflicts": "local"},
                "logging": {"level": "WARNING"},
            }
        )
        assert config.jira.project_key == "ABC"
        assert config.jira.api_version == 3
        assert config.sync.project_id == "p1"
        assert config.sync.resolve_conflicts == "local"
        assert config.logging.level == "WARNING"

    def test_unknown_sections_ignored_with_warning(self, caplog):
        with caplog.at_level(
            logging.WARNING, logger="jira_sync_mcp.config_schema"
        ):
            config = build_config({"trac": {"url": "x"}, "sync": {}})
        assert config == UnifiedConfig()
        assert "trac" in caplog.text

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"chunk_size": "many"}})


# ---------------------------------------------------------------------------
# to_legacy_config()
# ---------------------------------------------------------------------------


class TestToLegacyConfig:
    def _unified(self) -> UnifiedConfig:
        return build_config(
            {
                "jira": {
                    "domain": "acme.atlassian.net",
                    "email": "bot@example.com",
                    "api_token": "yaml-token",
                    "project_key": "ABC",
                    "api_version": 3,
                    "timeout": 30,
                }
            }
        )

    def test_values_copied(self):
        config = to_legacy_config(self._unified())
        assert config.domain == "acme.atlassian.net"
        assert config.email == "bot@example.com"
        assert config.api_token == "yaml-token"
        assert config.project_key == "ABC"
        assert config.api_version == 3
        assert config.timeout == 30.0
        assert config.insecure is False

    def test_cli_overrides_win(self):
        config = to_legacy_config(
            self._unified(),
            cli_overrides={"api_token": "cli-token", "insecure": True},
        )
        assert config.api_token == "cli-token"
        assert config.insecure is True
        assert config.domain == "acme.atlassian.net"

    def test_zero_config_gives_empty_strings(self):
        config = to_legacy_config(UnifiedConfig())
        assert config.domain == ""
        assert config.email == ""
        assert config.api_token == ""
        assert config.project_key is None
