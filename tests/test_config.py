"""
Tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from obsidian_mcp.config import ConfigError, SecurityPolicy, Settings, load_settings

CONFIG_YAML = """\
obsidian_api:
  base_url: http://127.0.0.1:27124
  token: from-file
mcp:
  host: 0.0.0.0
  port: 9000
security:
  enable_auth: true
  auth_token: s3cret
  allowed_ips:
    - 127.0.0.1
    - 10.0.0.0/8
  enable_rate_limit: true
  rate_limit: 30
  enable_cors: true
  allowed_origins:
    - https://a.com
"""


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml", environ={})

        assert settings.obsidian_api.base_url == "http://localhost:27123"
        assert settings.mcp.port == 8080
        assert settings.mcp.max_body_size == 1024 * 1024
        assert settings.security == SecurityPolicy()
        assert settings.audit.enabled is False

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")

        settings = load_settings(path, environ={})

        assert settings.obsidian_api.token == "from-file"
        assert settings.mcp.host == "0.0.0.0"
        assert settings.mcp.port == 9000
        assert settings.security.enable_auth is True
        assert settings.security.allowed_ips == ("127.0.0.1", "10.0.0.0/8")
        assert settings.security.rate_limit == 30
        assert settings.security.allowed_origins == ("https://a.com",)

    def test_legacy_environment_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")

        settings = load_settings(path, environ={
            "OBSIDIAN_API_TOKEN": "from-env",
            "OBSIDIAN_API_BASE_URL": "http://vault:27123",
            "ENABLE_AUDIT_LOG": "true",
        })

        assert settings.obsidian_api.token == "from-env"
        assert settings.obsidian_api.base_url == "http://vault:27123"
        assert settings.audit.enabled is True

    def test_audit_flag_requires_exact_true(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml", environ={"ENABLE_AUDIT_LOG": "1"})

        assert settings.audit.enabled is False

    def test_prefixed_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OBSIDIAN_MCP_SECURITY__ENABLE_AUTH", "true")
        monkeypatch.setenv("OBSIDIAN_MCP_MCP__PORT", "8181")

        settings = load_settings(tmp_path / "absent.yaml", environ={})

        assert settings.security.enable_auth is True
        assert settings.mcp.port == 8181

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML, encoding="utf-8")
        monkeypatch.setenv("OBSIDIAN_MCP_SECURITY__ENABLE_AUTH", "false")
        monkeypatch.setenv("OBSIDIAN_MCP_MCP__PORT", "8181")

        settings = load_settings(path, environ={})

        assert settings.security.enable_auth is False
        assert settings.mcp.port == 8181
        # Keys the environment does not name still come from the file
        assert settings.security.auth_token == "s3cret"
        assert settings.security.rate_limit == 30
        assert settings.mcp.host == "0.0.0.0"

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("security: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="failed to read config file"):
            load_settings(path, environ={})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, environ={})

    def test_invalid_cidr(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("security:\n  allowed_ips: ['10.0.0.0/99']\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="invalid CIDR"):
            load_settings(path, environ={})

    def test_rate_limit_must_be_positive(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("security:\n  rate_limit: 0\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_settings(path, environ={})


class TestSecurityPolicy:

    def test_frozen(self):
        policy = SecurityPolicy(enable_auth=True, auth_token="t")

        with pytest.raises(ValidationError):
            policy.auth_token = "other"

    def test_settings_nests_policy(self):
        settings = Settings(security=SecurityPolicy(enable_cors=True))

        assert settings.security.enable_cors is True
