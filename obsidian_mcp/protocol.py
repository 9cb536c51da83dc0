"""
JSON-RPC dispatcher for Obsidian MCP Gateway.

Parses envelopes, routes initialize / tools/list / tools/call, validates tool
arguments and formats result or error envelopes. Holds no per-request state.
"""

import json
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import Any

import structlog
from mcp.types import (
    Implementation,
    InitializeResult,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from pydantic import ValidationError

from .audit import AuditSink
from .models import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RpcError,
    RpcRequest,
    ToolCall,
)
from .tools import ToolError, Vault, execute_tool, list_tools, text_result
from .validation import PathValidationError, sanitize_content, validate_arguments
from .vault import VaultError

logger = structlog.get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "obsidian-mcp-server"

METHOD_INITIALIZE = "initialize"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"


def _server_version() -> str:
    try:
        return version("obsidian-mcp")
    except PackageNotFoundError:
        return "1.0.0"


@dataclass(frozen=True)
class CallContext:
    """Who is calling and on which endpoint, for the audit trail."""

    client_ip: str
    path: str


class RpcFailure(Exception):
    """A JSON-RPC error to send back in place of a result."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def result_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": RpcError(code=code, message=message).model_dump(),
    }


def is_error(response: dict[str, Any] | None) -> bool:
    return response is not None and "error" in response


def initialize_result() -> dict[str, Any]:
    """The fixed capability descriptor returned by initialize."""
    result = InitializeResult(
        protocolVersion=PROTOCOL_VERSION,
        capabilities=ServerCapabilities(
            tools=ToolsCapability(listChanged=False),
            resources=ResourcesCapability(subscribe=False, listChanged=False),
        ),
        serverInfo=Implementation(name=SERVER_NAME, version=_server_version()),
    )
    return result.model_dump(by_alias=True, exclude_none=True)


class Dispatcher:
    """Routes JSON-RPC requests to the tool pipeline."""

    def __init__(self, vault: Vault, audit: AuditSink):
        self.vault = vault
        self.audit = audit

    async def handle(self, body: bytes | str, ctx: CallContext, method: str | None = None) -> dict[str, Any] | None:
        """Handle one JSON-RPC message.

        Args:
            body: Raw request body
            ctx: Caller identity for audit entries
            method: Route by this method instead of the envelope's (fixed sub-paths)

        Returns:
            The response envelope, or None for a notification
        """
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            if method == METHOD_TOOLS_CALL:
                self.audit.failure(ctx.client_ip, "parse_error", ctx.path)
            return error_response(None, PARSE_ERROR, "Parse error")

        if isinstance(payload, dict) and method:
            # Sub-path endpoints route by URL, so the envelope may omit method
            payload.setdefault("method", method)

        try:
            request = RpcRequest.model_validate(payload)
        except ValidationError:
            envelope = payload if isinstance(payload, dict) else {}
            request_id = envelope.get("id")
            if (method or envelope.get("method")) == METHOD_TOOLS_CALL:
                self.audit.failure(ctx.client_ip, "invalid_request", ctx.path)
            return error_response(request_id, INVALID_REQUEST, "Invalid Request")

        if request.is_notification:
            logger.debug("notification_received", method=request.method)
            return None

        route = method or request.method
        try:
            result = await self._route(route, request, ctx)
        except RpcFailure as e:
            return error_response(request.id, e.code, e.message)

        return result_response(request.id, result)

    async def _route(self, method: str, request: RpcRequest, ctx: CallContext) -> Any:
        if method == METHOD_INITIALIZE:
            return initialize_result()

        elif method == METHOD_TOOLS_LIST:
            return {"tools": list_tools()}

        elif method == METHOD_TOOLS_CALL:
            return await self.call_tool(request.params, ctx)

        raise RpcFailure(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def call_tool(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        """Validate and execute a tools/call request.

        Every attempt leaves exactly one audit entry.
        """
        if not isinstance(params, dict):
            self.audit.failure(ctx.client_ip, "invalid_params", ctx.path)
            raise RpcFailure(INVALID_PARAMS, "Invalid params")

        name = params.get("name")
        if not isinstance(name, str):
            self.audit.failure(ctx.client_ip, "missing_tool_name", ctx.path)
            raise RpcFailure(INVALID_PARAMS, "Missing tool name")

        arguments = params.get("arguments")
        call = ToolCall(name=name, arguments=arguments if isinstance(arguments, dict) else {})

        try:
            validate_arguments(call.arguments)
        except PathValidationError as e:
            self.audit.failure(ctx.client_ip, f"invalid_path_{call.name}", ctx.path)
            raise RpcFailure(INVALID_PARAMS, f"Invalid path: {e}") from e

        content = call.arguments.get("content")
        if isinstance(content, str):
            call.arguments["content"] = sanitize_content(content)

        try:
            text = await execute_tool(self.vault, call.name, call.arguments)
        except (ToolError, VaultError) as e:
            logger.info("tool_failed", tool=call.name, error=str(e))
            self.audit.failure(ctx.client_ip, call.name, ctx.path)
            raise RpcFailure(INTERNAL_ERROR, str(e)) from e
        except Exception:
            logger.exception("tool_crashed", tool=call.name)
            self.audit.failure(ctx.client_ip, call.name, ctx.path)
            raise RpcFailure(INTERNAL_ERROR, "Internal error") from None

        self.audit.success(ctx.client_ip, call.name, ctx.path)
        return text_result(text)
