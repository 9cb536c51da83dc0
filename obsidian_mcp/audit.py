"""
Audit sink for Obsidian MCP Gateway.

Emits one JSON line on stderr per dispatched call or admission rejection.
The stream is write-only: nothing in the gateway reads it back.
"""

import sys
from datetime import datetime, timezone
from typing import Any

import structlog

from .models import AuditEvent

logger = structlog.get_logger(__name__)

AUDIT_EVENT = "AUDIT"


def _default_audit_logger() -> Any:
    # Own processor chain and wrapper: audit lines are plain JSON whatever
    # log_format says, and log_level never filters them.
    return structlog.wrap_logger(
        structlog.PrintLogger(file=sys.stderr),
        processors=[structlog.processors.JSONRenderer()],
        wrapper_class=structlog.BoundLogger,
    )


def utc_timestamp(now: datetime | None = None) -> str:
    """Format a UTC instant as RFC 3339 with second precision."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class AuditSink:
    """Best-effort audit log of (client IP, action, outcome)."""

    def __init__(self, enabled: bool, audit_logger: Any | None = None):
        self.enabled = enabled
        self._logger = audit_logger if audit_logger is not None else _default_audit_logger()

    def record(self, ip: str, action: str, result: str, path: str) -> None:
        """Emit one audit line. Never raises."""
        if not self.enabled:
            return

        try:
            event = AuditEvent(
                timestamp=utc_timestamp(),
                ip=ip,
                action=action,
                result=result,
                path=path,
            )
            self._logger.info(AUDIT_EVENT, **event.model_dump())
        except Exception as e:
            logger.warning("audit_write_failed", action=action, error=str(e))

    def success(self, ip: str, action: str, path: str) -> None:
        self.record(ip, action, "success", path)

    def failure(self, ip: str, action: str, path: str) -> None:
        self.record(ip, action, "failed", path)
