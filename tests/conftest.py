"""
Pytest configuration and fixtures for obsidian-mcp tests.
"""

import json

import pytest
import structlog
from structlog.testing import LogCapture


class FakeVault:
    """In-memory stand-in for VaultClient that records every forwarded call."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.error: Exception | None = None

    async def _answer(self, call: tuple, text: str) -> str:
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return text

    async def get_note(self, path: str) -> str:
        return await self._answer(("get_note", path), f"# Note: {path}\n\nbody")

    async def create_note(self, path: str, content: str) -> str:
        return await self._answer(("create_note", path, content), f"Successfully created note: {path}")

    async def update_note(self, path: str, content: str) -> str:
        return await self._answer(("update_note", path, content), f"Successfully updated note: {path}")

    async def delete_note(self, path: str) -> str:
        return await self._answer(("delete_note", path), f"Successfully deleted note: {path}")

    async def list_notes(self, folder: str = "") -> str:
        return await self._answer(("list_notes", folder), "Found 1 notes:\n- a.md\n")

    async def search_notes(self, query: str) -> str:
        return await self._answer(("search_notes", query), f'No notes found matching "{query}".')

    async def get_vault_info(self) -> str:
        return await self._answer(("get_vault_info",), "# Vault Information\n\n")


class VirtualClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def rpc(method: str, params=None, request_id=1) -> bytes:
    """Encode a JSON-RPC request body."""
    payload = {"jsonrpc": "2.0", "method": method}
    if request_id is not None:
        payload["id"] = request_id
    if params is not None:
        payload["params"] = params
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def fake_vault():
    return FakeVault()


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def audit_log():
    """Capture audit lines instead of writing them to stderr."""
    return LogCapture()


@pytest.fixture
def audit_sink(audit_log):
    from obsidian_mcp.audit import AuditSink

    return AuditSink(True, audit_logger=structlog.wrap_logger(structlog.PrintLogger(), processors=[audit_log]))


@pytest.fixture
def call_ctx():
    from obsidian_mcp.protocol import CallContext

    return CallContext(client_ip="10.0.0.5", path="/")


@pytest.fixture
def dispatcher(fake_vault, audit_sink):
    from obsidian_mcp.protocol import Dispatcher

    return Dispatcher(fake_vault, audit_sink)


@pytest.fixture
def make_client(fake_vault, audit_sink):
    """Build a TestClient around the HTTP app with the given security policy."""
    from starlette.testclient import TestClient

    from obsidian_mcp.config import MCPSettings, SecurityPolicy, Settings
    from obsidian_mcp.http_app import create_app
    from obsidian_mcp.ratelimit import RateLimiter

    def _make(max_body_size: int | None = None, rate_limiter: RateLimiter | None = None, **policy) -> TestClient:
        mcp_settings = MCPSettings(max_body_size=max_body_size) if max_body_size else MCPSettings()
        settings = Settings(security=SecurityPolicy(**policy), mcp=mcp_settings)
        app = create_app(settings, vault=fake_vault, rate_limiter=rate_limiter, audit=audit_sink)
        return TestClient(app)

    return _make
