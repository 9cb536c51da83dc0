"""
Access gate for Obsidian MCP Gateway.

The gate is an ordered list of stages sharing one RequestContext:

    IP allow-list -> bearer token -> rate limit -> CORS

Each stage returns None to let the request through or a GateResult to stop
it. Stages disabled by the SecurityPolicy are not installed at all.
"""

import hmac
import ipaddress
from collections.abc import Callable, Mapping, Sequence

import structlog

from .config import SecurityPolicy
from .models import GateResult, RequestContext
from .ratelimit import RateLimiter

logger = structlog.get_logger(__name__)

Stage = Callable[[RequestContext], GateResult | None]

CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"


# ============== Helper Functions ==============

def get_client_ip(headers: Mapping[str, str], peer: str | None) -> str:
    """Resolve the client IP.

    Priority: first X-Forwarded-For entry, then X-Real-IP, then the transport
    peer address.
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return peer or "unknown"


def is_ip_allowed(client_ip: str, allowed_ips: Sequence[str]) -> bool:
    """Check client_ip against literal, "*" and CIDR entries.

    An empty allow-list admits every client.
    """
    if not allowed_ips:
        return True

    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        address = None

    for allowed in allowed_ips:
        if allowed == "*" or allowed == client_ip:
            return True

        if "/" in allowed and address is not None:
            try:
                if address in ipaddress.ip_network(allowed, strict=False):
                    return True
            except ValueError:
                continue

    return False


def is_origin_allowed(origin: str | None, allowed_origins: Sequence[str]) -> bool:
    """Check an Origin header against the allowed origins.

    An empty list allows any origin; a request without Origin never matches.
    """
    if not origin:
        return False
    if not allowed_origins:
        return True
    return any(allowed == "*" or allowed == origin for allowed in allowed_origins)


def secure_compare(a: str, b: str) -> bool:
    """Compare two secrets in constant time.

    hmac.compare_digest inspects every byte regardless of where the first
    mismatch is.
    """
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ============== Access Gate ==============

class AccessGate:
    """Ordered admission stages driven by a SecurityPolicy."""

    def __init__(self, policy: SecurityPolicy, rate_limiter: RateLimiter | None = None):
        self.policy = policy
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.stages: list[Stage] = self._build_stages()

    def _build_stages(self) -> list[Stage]:
        stages: list[Stage] = []
        if self.policy.allowed_ips:
            stages.append(self.check_ip)
        if self.policy.enable_auth:
            stages.append(self.check_auth)
        if self.policy.enable_rate_limit:
            stages.append(self.check_rate)
        if self.policy.enable_cors:
            stages.append(self.negotiate_cors)
        return stages

    def check_ip(self, ctx: RequestContext) -> GateResult | None:
        if not is_ip_allowed(ctx.client_ip, self.policy.allowed_ips):
            return GateResult(403, "Forbidden: IP not allowed", "ip_forbidden")
        return None

    def check_auth(self, ctx: RequestContext) -> GateResult | None:
        auth_header = ctx.headers.get("authorization", "")
        expected = "Bearer " + self.policy.auth_token

        if not secure_compare(auth_header, expected):
            return GateResult(401, "Unauthorized", "unauthorized")
        return None

    def check_rate(self, ctx: RequestContext) -> GateResult | None:
        if not self.rate_limiter.allow(ctx.client_ip, self.policy.rate_limit):
            return GateResult(429, "Too Many Requests", "rate_limited")
        return None

    def negotiate_cors(self, ctx: RequestContext) -> GateResult | None:
        """Add CORS headers for allowed origins and answer preflights.

        A non-matching origin only loses the headers; enforcement is left to
        the browser.
        """
        origin = ctx.headers.get("origin")
        if is_origin_allowed(origin, self.policy.allowed_origins):
            ctx.response_headers["Access-Control-Allow-Origin"] = origin
            ctx.response_headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
            ctx.response_headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS

        if ctx.method == "OPTIONS":
            return GateResult(200, "", "cors_preflight")
        return None

    def admit(self, ctx: RequestContext) -> GateResult | None:
        """Run the stages in order, stopping at the first result."""
        ctx.client_ip = get_client_ip(ctx.headers, ctx.peer)

        for stage in self.stages:
            result = stage(ctx)
            if result is not None:
                if result.is_rejection:
                    logger.warning(
                        "request_rejected",
                        client_ip=ctx.client_ip,
                        path=ctx.path,
                        status=result.status,
                        reason=result.reason,
                    )
                return result
        return None
