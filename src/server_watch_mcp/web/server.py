# HTTP listeners: MCP transports plus a small JSON API over the same log store

import contextlib
import logging
from typing import Optional

from fastapi import FastAPI, Query
from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Mount, Route

from ..queries import BOTH_STREAMS, DEFAULT_LIMIT, recent_logs, search_logs
from ..store import LogStore
from ..supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"
SSE_PATH = "/sse"
MESSAGES_PATH = "/messages/"


class _StreamableHTTPEndpoint:
	"""ASGI app handing /mcp requests to the session manager."""

	def __init__(self, session_manager: StreamableHTTPSessionManager):
		self.session_manager = session_manager

	async def __call__(self, scope, receive, send):
		await self.session_manager.handle_request(scope, receive, send)


def create_app(store: LogStore, supervisor: Optional[ProcessSupervisor], mcp_server: Server) -> FastAPI:
	# Stateless request/response mode: no session bookkeeping between requests
	session_manager = StreamableHTTPSessionManager(app=mcp_server, stateless=True)
	# Legacy mode: one long-lived SSE stream per session, messages posted separately
	sse = SseServerTransport(MESSAGES_PATH)

	async def handle_sse(request: Request):
		logger.debug("SSE session opened from %s", request.client.host if request.client else "unknown")
		async with sse.connect_sse(request.scope, request.receive, request._send) as (read_stream, write_stream):
			await mcp_server.run(
				read_stream,
				write_stream,
				mcp_server.create_initialization_options(),
			)
		return Response()

	@contextlib.asynccontextmanager
	async def lifespan(app):
		async with session_manager.run():
			yield

	app = FastAPI(title="server-watch-mcp", lifespan=lifespan)

	@app.get("/health")
	def health():
		return {"status": "ok"}

	@app.get("/api/logs")
	def logs(
		limit: int = Query(DEFAULT_LIMIT, ge=0),
		stream: str = Query(BOTH_STREAMS, pattern="^(stdout|stderr|both)$"),
	):
		entries = recent_logs(store, limit=limit, stream=stream)
		return {"results": [entry.to_dict() for entry in entries]}

	@app.get("/api/search")
	def search(q: str = ""):
		entries = search_logs(store, q)
		return {"results": [entry.to_dict() for entry in entries]}

	@app.get("/api/status")
	def status():
		if supervisor is None:
			return {"state": "never-started"}
		return supervisor.status()

	app.router.routes.extend([
		Route(MCP_PATH, endpoint=_StreamableHTTPEndpoint(session_manager)),
		Route(SSE_PATH, endpoint=handle_sse, methods=["GET"]),
		Mount(MESSAGES_PATH, app=sse.handle_post_message),
	])
	return app
