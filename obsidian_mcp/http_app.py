"""
HTTP transport for Obsidian MCP Gateway.

Starlette application exposing the JSON-RPC endpoint at "/" and at the fixed
sub-paths /mcp/initialize, /mcp/tools/list and /mcp/tools/call. Every route
except /health passes the admission middleware first.
"""

import contextlib
from collections.abc import AsyncIterator
from functools import partial

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route
from starlette.types import ASGIApp

from .audit import AuditSink
from .config import Settings
from .models import GateResult, RequestContext
from .protocol import (
    METHOD_INITIALIZE,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    CallContext,
    Dispatcher,
    is_error,
)
from .ratelimit import RateLimiter
from .security import AccessGate, Stage, get_client_ip
from .tools import Vault
from .validation import BodyTooLargeError, check_content_type, check_declared_size, read_body
from .vault import VaultClient

logger = structlog.get_logger(__name__)

PUBLIC_PATHS = frozenset({"/health"})


def _peer(request: Request) -> str | None:
    return request.client.host if request.client else None


class AdmissionMiddleware(BaseHTTPMiddleware):
    """Runs the access gate, then the transport hygiene stages.

    A stage result short-circuits the request; rejections are audited.
    """

    def __init__(self, app: ASGIApp, gate: AccessGate, audit: AuditSink, max_body_size: int):
        super().__init__(app)
        self.gate = gate
        self.audit = audit
        self.hygiene_stages: list[Stage] = [
            check_content_type,
            partial(check_declared_size, limit=max_body_size),
        ]

    def _check_hygiene(self, ctx: RequestContext) -> GateResult | None:
        for stage in self.hygiene_stages:
            result = stage(ctx)
            if result is not None:
                logger.warning(
                    "request_rejected",
                    client_ip=ctx.client_ip,
                    path=ctx.path,
                    status=result.status,
                    reason=result.reason,
                )
                return result
        return None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        ctx = RequestContext(
            method=request.method,
            path=request.url.path,
            headers=request.headers,
            peer=_peer(request),
        )

        result = self.gate.admit(ctx) or self._check_hygiene(ctx)
        if result is not None:
            if result.is_rejection:
                self.audit.failure(ctx.client_ip, result.reason, ctx.path)
            return PlainTextResponse(result.message, status_code=result.status, headers=ctx.response_headers)

        request.state.client_ip = ctx.client_ip
        response = await call_next(request)
        response.headers.update(ctx.response_headers)
        return response


async def health(request: Request) -> Response:
    return JSONResponse({"status": "healthy"})


async def handle_rpc(request: Request, method: str | None = None) -> Response:
    """Read a bounded body and hand it to the dispatcher."""
    app_state = request.app.state
    client_ip = getattr(request.state, "client_ip", None) or get_client_ip(request.headers, _peer(request))
    path = request.url.path

    try:
        body = await read_body(request, app_state.max_body_size)
    except BodyTooLargeError:
        logger.warning("request_rejected", client_ip=client_ip, path=path, status=413, reason="body_too_large")
        app_state.audit.failure(client_ip, "body_too_large", path)
        return PlainTextResponse("Request Entity Too Large", status_code=413)

    response = await app_state.dispatcher.handle(body, CallContext(client_ip=client_ip, path=path), method)
    if response is None:
        return Response(status_code=200)

    return JSONResponse(response, status_code=400 if is_error(response) else 200)


def create_app(
    settings: Settings,
    vault: Vault | None = None,
    rate_limiter: RateLimiter | None = None,
    audit: AuditSink | None = None,
) -> Starlette:
    """Build the Starlette application.

    Args:
        settings: Loaded settings
        vault: Vault backend; a VaultClient is created (and closed on shutdown) if omitted
        rate_limiter: Shared limiter; a fresh one is created if omitted
        audit: Audit sink; defaults to one driven by settings.audit.enabled

    Returns:
        The ASGI application
    """
    owned_vault = None
    if vault is None:
        owned_vault = VaultClient(
            settings.obsidian_api.base_url,
            settings.obsidian_api.token,
            settings.obsidian_api.timeout,
        )
        vault = owned_vault

    if audit is None:
        audit = AuditSink(settings.audit.enabled)

    gate = AccessGate(settings.security, rate_limiter)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        if owned_vault is not None:
            await owned_vault.aclose()

    app = Starlette(
        routes=[
            Route("/", handle_rpc, methods=["POST"]),
            Route("/mcp/initialize", partial(handle_rpc, method=METHOD_INITIALIZE), methods=["POST"]),
            Route("/mcp/tools/list", partial(handle_rpc, method=METHOD_TOOLS_LIST), methods=["POST"]),
            Route("/mcp/tools/call", partial(handle_rpc, method=METHOD_TOOLS_CALL), methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                AdmissionMiddleware,
                gate=gate,
                audit=audit,
                max_body_size=settings.mcp.max_body_size,
            ),
        ],
        lifespan=lifespan,
    )

    app.state.dispatcher = Dispatcher(vault, audit)
    app.state.audit = audit
    app.state.gate = gate
    app.state.max_body_size = settings.mcp.max_body_size
    return app
