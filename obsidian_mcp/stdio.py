"""
stdio transport for Obsidian MCP Gateway.

Reads one JSON-RPC message per line from stdin and writes one response per
line to stdout, through the same Dispatcher as the HTTP transport. There are
no headers on this transport, so the admission gate does not apply.

The mcp SDK's stdio_server is not used: it parses each line into SDK message
types itself and passes malformed lines to the session as exceptions, while
the Dispatcher must answer those lines with -32700 and audit them the same
way on both transports.
"""

import json
import sys
from io import TextIOWrapper
from typing import Any

import anyio
import structlog

from .protocol import CallContext, Dispatcher

logger = structlog.get_logger(__name__)

STDIO_CLIENT = "stdio"


async def serve_lines(dispatcher: Dispatcher, stdin: Any, stdout: Any) -> None:
    """Dispatch every non-blank line of stdin until EOF.

    stdin and stdout are async text streams (anyio wrapped files).
    """
    ctx = CallContext(client_ip=STDIO_CLIENT, path=STDIO_CLIENT)

    async for line in stdin:
        if not line.strip():
            continue

        response = await dispatcher.handle(line, ctx)
        if response is None:
            continue

        await stdout.write(json.dumps(response) + "\n")
        await stdout.flush()


async def run_stdio(dispatcher: Dispatcher) -> None:
    stdin = anyio.wrap_file(TextIOWrapper(sys.stdin.buffer, encoding="utf-8"))
    stdout = anyio.wrap_file(TextIOWrapper(sys.stdout.buffer, encoding="utf-8"))

    logger.info("stdio_transport_started")
    await serve_lines(dispatcher, stdin, stdout)
    logger.info("stdio_transport_closed")
