"""
Pydantic models for Obsidian MCP Gateway.

Contains the JSON-RPC envelope, tool call and audit event models, plus the
result type returned by admission stages.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

JSONRPC_VERSION = "2.0"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RpcRequest(BaseModel):
    """A JSON-RPC request. A missing or null id marks a notification.

    The id is opaque and echoed back exactly as received.
    """

    jsonrpc: Literal["2.0"]
    method: str
    id: Any = None
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class RpcError(BaseModel):
    """Model for the error member of a JSON-RPC response."""

    code: int
    message: str


class ToolCall(BaseModel):
    """Model for the params of a tools/call request."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class AuditEvent(BaseModel):
    """Model for one audit line."""

    timestamp: str
    ip: str
    action: str
    result: Literal["success", "failed"]
    path: str


@dataclass
class RequestContext:
    """Per-request state shared by the admission stages.

    headers must be case-insensitive (starlette Headers). client_ip is filled
    in once by the access gate; response_headers collects headers the stages
    want added to the final response.
    """

    method: str
    path: str
    headers: Mapping[str, str]
    peer: str | None = None
    client_ip: str = ""
    response_headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GateResult:
    """Returned by an admission stage to stop a request.

    status is the HTTP status to answer with, reason the audit tag.
    """

    status: int
    message: str
    reason: str

    @property
    def is_rejection(self) -> bool:
        return self.status >= 400
