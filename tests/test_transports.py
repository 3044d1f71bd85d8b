"""MCP clients talking to a live HTTP listener over both transports."""

import asyncio
import contextlib

import pytest
import uvicorn
from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client

from server_watch_mcp.mcp.server import create_server
from server_watch_mcp.web.server import create_app

pytestmark = pytest.mark.integration


@contextlib.asynccontextmanager
async def _listening(store):
    app = create_app(store, None, create_server(store))
    uv_server = uvicorn.Server(uvicorn.Config(
        app,
        host="127.0.0.1",
        port=0,
        log_level="warning",
        timeout_graceful_shutdown=1,
    ))
    task = asyncio.create_task(uv_server.serve())
    try:
        for _ in range(250):
            if uv_server.started:
                break
            await asyncio.sleep(0.02)
        assert uv_server.started
        port = uv_server.servers[0].sockets[0].getsockname()[1]
        yield f"http://127.0.0.1:{port}"
    finally:
        uv_server.should_exit = True
        await asyncio.wait_for(task, timeout=10)


@contextlib.asynccontextmanager
async def _sse_session(base_url):
    async with sse_client(f"{base_url}/sse") as (read_stream, write_stream):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            yield session


@contextlib.asynccontextmanager
async def _http_session(base_url):
    async with streamablehttp_client(f"{base_url}/mcp") as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            yield session


async def _call(session, name, arguments):
    result = await session.call_tool(name, arguments)
    assert not result.isError
    return result.content[0].text


@pytest.mark.asyncio
class TestTransports:
    """Test tool calls over streamable HTTP and the legacy SSE stream."""

    async def test_streamable_http_get_logs(self, filled_store):
        async with _listening(filled_store) as base_url:
            async with _http_session(base_url) as session:
                text = await _call(session, "get_logs", {"limit": 2})
        assert text == "ERR: warning: deprecated option\nrequest failed with err=ECONNRESET"

    async def test_streamable_http_lists_tools(self, store):
        async with _listening(store) as base_url:
            async with _http_session(base_url) as session:
                tools = await session.list_tools()
        assert {tool.name for tool in tools.tools} >= {"get_logs", "search_logs"}

    async def test_sse_search_logs(self, filled_store):
        async with _listening(filled_store) as base_url:
            async with _sse_session(base_url) as session:
                text = await _call(session, "search_logs", {"query": "err"})
        assert text == "ERR: Error: database timeout\nrequest failed with err=ECONNRESET"

    async def test_sse_empty_store(self, store):
        async with _listening(store) as base_url:
            async with _sse_session(base_url) as session:
                text = await _call(session, "get_logs", {})
        assert text == ""

    async def test_two_sessions_share_one_store(self, store):
        store.append("stdout", "booting")
        async with _listening(store) as base_url:
            async with _sse_session(base_url) as sse_session, _http_session(base_url) as http_session:
                assert await _call(sse_session, "get_logs", {}) == "booting"
                assert await _call(http_session, "get_logs", {}) == "booting"

                store.append("stderr", "connection refused")
                expected = "booting\nERR: connection refused"
                assert await _call(sse_session, "get_logs", {}) == expected
                assert await _call(http_session, "get_logs", {}) == expected
                assert await _call(http_session, "search_logs", {"query": "REFUSED"}) == "ERR: connection refused"
