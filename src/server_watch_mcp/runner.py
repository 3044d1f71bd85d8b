# Wires the store, supervisor and listeners together for one server run

import asyncio
import logging
import sys
from typing import Sequence

import uvicorn

from .config import ServerWatchConfig
from .mcp.server import create_server, run_stdio
from .store import LogStore
from .supervisor import ProcessSupervisor
from .web.server import create_app

logger = logging.getLogger(__name__)

TRANSPORTS = ("http", "stdio")
SHUTDOWN_GRACE = 5


async def serve(
	command: str,
	args: Sequence[str],
	cfg: ServerWatchConfig,
	transport: str = "http",
	exit_with_child: bool = False,
) -> int:
	"""Supervise ``command`` and serve its logs until the host shuts down.

	With ``exit_with_child`` the listeners stop once the child reaches a
	terminal state and the child's mapped exit code is returned. Otherwise the
	query surface keeps running regardless of what happens to the child.
	"""
	if transport not in TRANSPORTS:
		raise ValueError(f"Unknown transport: {transport}")

	store = LogStore(cfg.buffer_size)
	stdio = transport == "stdio"
	# stdout carries the protocol in stdio mode, so child output goes to stderr
	supervisor = ProcessSupervisor(
		store,
		command,
		args,
		passthrough_stdin=not stdio,
		stdout_sink=sys.stderr.buffer if stdio else None,
	)
	mcp_server = create_server(store, supervisor)

	uv_server = None
	if stdio:
		listener = asyncio.create_task(run_stdio(mcp_server))
		logger.info("MCP server running on stdio")
	else:
		app = create_app(store, supervisor, mcp_server)
		uv_server = uvicorn.Server(uvicorn.Config(
			app,
			host=cfg.host,
			port=cfg.port,
			log_level="warning",
			# open SSE sessions must not block shutdown
			timeout_graceful_shutdown=SHUTDOWN_GRACE,
		))
		listener = asyncio.create_task(uv_server.serve())
		logger.info("MCP server running on http://localhost:%d", cfg.port)

	child = asyncio.create_task(supervisor.run())
	try:
		if exit_with_child:
			await asyncio.wait({child, listener}, return_when=asyncio.FIRST_COMPLETED)
			if child.done():
				_stop_listener(listener, uv_server)
				await asyncio.gather(listener, return_exceptions=True)
				return supervisor.exit_code
			await listener
			return 0

		child.add_done_callback(_report_child_done)
		await listener
		return 0
	finally:
		await supervisor.terminate()
		if not child.done():
			child.cancel()


def _stop_listener(listener: asyncio.Task, uv_server) -> None:
	if uv_server is not None:
		uv_server.should_exit = True
	else:
		listener.cancel()


def _report_child_done(task: asyncio.Task) -> None:
	if not task.cancelled():
		logger.info("MCP server continues running; captured logs remain available")
