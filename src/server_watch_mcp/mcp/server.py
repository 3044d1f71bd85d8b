"""MCP server for server-watch-mcp - lets AI assistants read the supervised process's output."""

import json
import logging
from typing import Any, Optional

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from ..formatting import format_entries
from ..queries import BOTH_STREAMS, DEFAULT_LIMIT, recent_logs, search_logs
from ..store import LogStore
from ..supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

SERVER_NAME = "server-watch-mcp"

TOOLS = [
    types.Tool(
        name="get_logs",
        description="Get the most recent output lines of the supervised process. Use this to see what the server is printing right now.",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of log lines to return (default: 100)",
                    "default": DEFAULT_LIMIT,
                    "minimum": 0,
                },
                "stream": {
                    "type": "string",
                    "enum": ["stdout", "stderr", BOTH_STREAMS],
                    "description": "Which output stream to read: stdout, stderr, or both (default: both)",
                    "default": BOTH_STREAMS,
                },
                "include_timestamps": {
                    "type": "boolean",
                    "description": "Prefix each line with its ISO-8601 capture time",
                    "default": False,
                },
            },
        },
    ),
    types.Tool(
        name="search_logs",
        description="Search all captured output lines for a case-insensitive substring. Use this to find errors, warnings, or specific messages.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Text to search for (case-insensitive)",
                },
                "include_timestamps": {
                    "type": "boolean",
                    "description": "Prefix each line with its ISO-8601 capture time",
                    "default": False,
                },
            },
            "required": ["query"],
        },
    ),
    types.Tool(
        name="get_status",
        description="Get the lifecycle state of the supervised process: running, exited (with code or signal), or failed to start.",
        inputSchema={
            "type": "object",
            "properties": {},
        },
    ),
]


def _text(text: str) -> list[types.TextContent]:
    return [types.TextContent(type="text", text=text)]


async def call_tool(
    store: LogStore,
    supervisor: Optional[ProcessSupervisor],
    name: str,
    arguments: Optional[dict[str, Any]],
) -> list[types.TextContent]:
    """Run one tool against the shared store. Empty results are empty text, not errors."""
    if arguments is None:
        arguments = {}

    if name == "get_logs":
        limit = int(arguments.get("limit", DEFAULT_LIMIT))
        stream = arguments.get("stream") or BOTH_STREAMS
        include_timestamps = bool(arguments.get("include_timestamps", False))
        entries = recent_logs(store, limit=limit, stream=stream)
        return _text(format_entries(entries, include_timestamps=include_timestamps))

    elif name == "search_logs":
        query = arguments.get("query") or ""
        include_timestamps = bool(arguments.get("include_timestamps", False))
        entries = search_logs(store, query)
        return _text(format_entries(entries, include_timestamps=include_timestamps))

    elif name == "get_status":
        status = supervisor.status() if supervisor is not None else {"state": "never-started"}
        status["buffered_entries"] = len(store)
        status["buffer_capacity"] = store.capacity
        status["evicted_entries"] = store.total_appended - len(store)
        return _text(json.dumps(status, indent=2))

    else:
        raise ValueError(f"Unknown tool: {name}")


def create_server(store: LogStore, supervisor: Optional[ProcessSupervisor] = None) -> Server:
    """Build the MCP server bound to one store and supervisor.

    The same instance serves every transport, so all sessions see one log.
    """
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """List available MCP tools."""
        return TOOLS

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict | None
    ) -> list[types.TextContent]:
        """Handle tool calls."""
        logger.debug("Tool call %s %r", name, arguments)
        return await call_tool(store, supervisor, name, arguments)

    return server


async def run_stdio(server: Server) -> None:
    """Serve MCP over the host's stdin/stdout until stdin closes."""
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options()
        )
