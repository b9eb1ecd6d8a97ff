"""Tests for MCP server configuration.

These tests cover:
1. Default values
2. Environment variable loading
3. Validation of protocol metadata and policy bounds
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from library_circulation_mcp.circulation.policy import PolicyConfig
from library_circulation_mcp.config import ServerConfig, get_config, reset_config


class TestServerConfig:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.delenv("LIBRARY_CIRCULATION_DATABASE_PATH")
        monkeypatch.delenv("LIBRARY_CIRCULATION_SQLITE_BUSY_TIMEOUT")
        monkeypatch.chdir(tmp_path)

        config = ServerConfig()

        assert config.server_name == "library-circulation"
        assert config.transport == "stdio"
        assert config.sqlite_busy_timeout == 15.0
        assert config.database_path == (tmp_path / "data" / "circulation.db").absolute()
        assert config.database_path.parent.is_dir()
        assert config.policy_defaults() == PolicyConfig()

    def test_environment_overrides(self, monkeypatch, isolated_environment: Path):
        monkeypatch.setenv("LIBRARY_CIRCULATION_TRANSPORT", "streamable_http")
        monkeypatch.setenv("LIBRARY_CIRCULATION_HTTP_PORT", "9090")
        monkeypatch.setenv("LIBRARY_CIRCULATION_MAX_ACTIVE_LOANS", "2")
        monkeypatch.setenv("LIBRARY_CIRCULATION_FINE_ENABLED", "true")

        config = ServerConfig()

        assert config.transport == "streamable_http"
        assert config.http_port == 9090
        assert config.database_path == isolated_environment
        assert config.get_database_url() == f"sqlite:///{isolated_environment}"
        policy = config.policy_defaults()
        assert policy.max_active_loans == 2
        assert policy.fine_enabled is True

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("server_name", "Library Circulation"),
            ("server_name", "ab"),
            ("server_version", "one"),
            ("transport", "websocket"),
            ("http_port", 80),
            ("loan_days_default", 0),
            ("max_active_loans", -1),
            ("log_level", "TRACE"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            ServerConfig(**{field: value})

    def test_development_mode(self):
        assert ServerConfig(debug=True).is_development
        assert ServerConfig(log_level="DEBUG").is_development
        assert not ServerConfig().is_development

    def test_server_info(self):
        assert ServerConfig().server_info == {
            "name": "library-circulation",
            "version": "0.1.0",
            "transport": "stdio",
        }


def test_get_config_is_cached_until_reset(monkeypatch):
    first = get_config()
    assert get_config() is first

    monkeypatch.setenv("LIBRARY_CIRCULATION_LOAN_DAYS_DEFAULT", "30")
    assert get_config().loan_days_default == 15
    reset_config()
    assert get_config().loan_days_default == 30
