"""
Configuration module for Obsidian MCP Gateway.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use OBSIDIAN_MCP_ prefix with "__" between nested sections
(e.g., OBSIDIAN_MCP_SECURITY__ENABLE_AUTH=true). Settings can also be read from a
YAML file (config.yaml by default).
"""

import ipaddress
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_CONFIG_PATH = Path("config.yaml")

MAX_BODY_SIZE = 1 * 1024 * 1024  # 1MB in bytes


class ConfigError(Exception):
    """Raised when the configuration file or values are invalid."""
    pass


class SecurityPolicy(BaseModel):
    """Admission policy shared read-only by every request handler."""

    model_config = ConfigDict(frozen=True)

    enable_auth: bool = False
    auth_token: str = ""
    allowed_ips: tuple[str, ...] = ()
    enable_rate_limit: bool = False
    rate_limit: int = Field(default=60, ge=1)  # requests per minute
    enable_cors: bool = False
    allowed_origins: tuple[str, ...] = ()

    @field_validator("allowed_ips")
    @classmethod
    def _check_cidrs(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for entry in value:
            if "/" in entry:
                try:
                    ipaddress.ip_network(entry, strict=False)
                except ValueError as e:
                    raise ValueError(f"invalid CIDR in allowed_ips: {entry!r} ({e})") from e
        return value


class ObsidianAPISettings(BaseModel):
    """Connection to the Obsidian Local REST API plugin."""

    base_url: str = "http://localhost:27123"
    token: str = ""
    timeout: float = Field(default=30.0, gt=0)


class MCPSettings(BaseModel):
    """Listening socket and request limits for the gateway."""

    host: str = "localhost"
    port: int = 8080
    description: str = "Obsidian MCP Server - Access and manage your Obsidian vault"
    max_body_size: int = Field(default=MAX_BODY_SIZE, gt=0)


class AuditSettings(BaseModel):
    enabled: bool = False


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - OBSIDIAN_MCP_OBSIDIAN_API__BASE_URL: Base URL of the vault REST API
    - OBSIDIAN_MCP_OBSIDIAN_API__TOKEN: Bearer token for the vault REST API
    - OBSIDIAN_MCP_MCP__PORT: Port for the HTTP transport
    - OBSIDIAN_MCP_SECURITY__ENABLE_AUTH: Require a bearer token from clients
    - OBSIDIAN_MCP_LOG_LEVEL: Log level (debug, info, warning, error)
    - OBSIDIAN_MCP_LOG_FORMAT: console or json

    The legacy variables OBSIDIAN_API_TOKEN, OBSIDIAN_API_BASE_URL and
    ENABLE_AUDIT_LOG are honoured by load_settings().

    Precedence, highest first: legacy variables, OBSIDIAN_MCP_* variables,
    init kwargs (the YAML file in load_settings()), defaults.
    """

    obsidian_api: ObsidianAPISettings = Field(default_factory=ObsidianAPISettings)
    mcp: MCPSettings = Field(default_factory=MCPSettings)
    security: SecurityPolicy = Field(default_factory=SecurityPolicy)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    log_level: str = "info"
    log_format: Literal["console", "json"] = "console"

    model_config = SettingsConfigDict(env_prefix="OBSIDIAN_MCP_", env_nested_delimiter="__")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: env vars > init kwargs (config.yaml) > file secrets."""
        return (
            env_settings,
            init_settings,
            file_secret_settings,
        )


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read the YAML config file. A missing file yields an empty mapping."""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping at the top level")
    return data


def _apply_legacy_env(settings: Settings, environ: dict[str, str]) -> Settings:
    obsidian_api = settings.obsidian_api
    if token := environ.get("OBSIDIAN_API_TOKEN"):
        obsidian_api = obsidian_api.model_copy(update={"token": token})
    if base_url := environ.get("OBSIDIAN_API_BASE_URL"):
        obsidian_api = obsidian_api.model_copy(update={"base_url": base_url})

    audit = settings.audit
    if environ.get("ENABLE_AUDIT_LOG") == "true":
        audit = audit.model_copy(update={"enabled": True})

    return settings.model_copy(update={"obsidian_api": obsidian_api, "audit": audit})


def load_settings(path: Path | str = DEFAULT_CONFIG_PATH, environ: dict[str, str] | None = None) -> Settings:
    """Load settings from the YAML file, the environment and legacy overrides.

    Args:
        path: YAML config file; skipped if it does not exist
        environ: Environment mapping for the legacy overrides (defaults to os.environ)

    Returns:
        The loaded Settings

    Raises:
        ConfigError: If the file is malformed or a value fails validation
    """
    data = _read_yaml(Path(path))
    try:
        settings = Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

    return _apply_legacy_env(settings, dict(os.environ) if environ is None else environ)
