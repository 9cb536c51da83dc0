"""
Main entry point for Obsidian MCP Gateway.

This module provides the main() function and server initialization.
"""

import argparse
import asyncio
import sys

import structlog
import uvicorn

from .audit import AuditSink
from .config import DEFAULT_CONFIG_PATH, ConfigError, Settings, load_settings
from .http_app import create_app
from .logging import configure_logging
from .protocol import Dispatcher
from .stdio import run_stdio
from .vault import VaultClient

logger = structlog.get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="obsidian-mcp", description="MCP gateway for an Obsidian vault")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="YAML config file (default: config.yaml)")
    parser.add_argument("--transport", choices=["http", "stdio"], default="http")
    parser.add_argument("--host", help="Override mcp.host")
    parser.add_argument("--port", type=int, help="Override mcp.port")
    return parser.parse_args(argv)


def log_security_settings(settings: Settings) -> None:
    policy = settings.security
    if policy.enable_auth:
        logger.info("security_feature_enabled", feature="authentication")
    if policy.allowed_ips:
        logger.info("security_feature_enabled", feature="ip_allow_list", allowed_ips=list(policy.allowed_ips))
    if policy.enable_rate_limit:
        logger.info("security_feature_enabled", feature="rate_limit", requests_per_minute=policy.rate_limit)
    if policy.enable_cors:
        logger.info("security_feature_enabled", feature="cors", allowed_origins=list(policy.allowed_origins))
    if settings.audit.enabled:
        logger.info("security_feature_enabled", feature="audit_log")


async def _run_stdio(settings: Settings) -> None:
    api = settings.obsidian_api
    async with VaultClient(api.base_url, api.token, api.timeout) as vault:
        await run_stdio(Dispatcher(vault, AuditSink(settings.audit.enabled)))


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        configure_logging()
        logger.error("config_load_failed", error=str(e))
        return 1

    configure_logging(settings.log_level, settings.log_format)

    if args.transport == "stdio":
        logger.info("server_starting", transport="stdio", vault_url=settings.obsidian_api.base_url)
        asyncio.run(_run_stdio(settings))
        return 0

    host = args.host or settings.mcp.host
    port = args.port or settings.mcp.port
    logger.info("server_starting", transport="http", host=host, port=port, vault_url=settings.obsidian_api.base_url)
    log_security_settings(settings)

    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
