"""Tests for MCP SDK sessions against an in-memory server."""

from __future__ import annotations

from contextlib import asynccontextmanager

import anyio
import httpx
import pytest
from mcp.server.fastmcp import FastMCP
from mcp.shared.memory import create_client_server_memory_streams

from mcpbrowser.core import ConnectionFailureError
from mcpbrowser.mcp import ConnectionManager, McpSession, ProviderConfig, TransportKind
from mcpbrowser.mcp import session as session_module


def build_server() -> FastMCP:
    server = FastMCP("calculator")

    @server.tool()
    def add(a: int, b: int) -> int:
        """Add two numbers."""
        return a + b

    @server.tool()
    def explode() -> str:
        """Always fails."""
        raise ValueError("kaboom")

    return server


@asynccontextmanager
async def memory_transport(server: FastMCP):
    async with create_client_server_memory_streams() as (client_streams, server_streams):
        async with anyio.create_task_group() as tg:
            tg.start_soon(
                lambda: server._mcp_server.run(
                    server_streams[0],
                    server_streams[1],
                    server._mcp_server.create_initialization_options(),
                    raise_exceptions=True,
                )
            )
            try:
                yield client_streams
            finally:
                tg.cancel_scope.cancel()


@asynccontextmanager
async def refused_transport(*args, **kwargs):
    raise httpx.ConnectError("connection refused")
    yield  # pragma: no cover


NETWORK = ProviderConfig(
    id="calc", name="Calculator", transport=TransportKind.NETWORK, url="http://calc.test/mcp"
)


@pytest.mark.asyncio
async def test_session_lists_and_calls_tools() -> None:
    server = build_server()
    session = McpSession("calc", request_timeout=5)
    await session.start(lambda: memory_transport(server), connect_timeout=5)
    try:
        assert session.alive
        tools = {tool.name: tool for tool in await session.list_tools()}
        assert set(tools) == {"add", "explode"}
        assert tools["add"].description == "Add two numbers."
        assert set(tools["add"].input_schema["properties"]) == {"a", "b"}

        result = await session.call_tool("add", {"a": 2, "b": 3})
        assert result.is_error is False
        assert result.content[0]["type"] == "text"
        assert result.content[0]["text"] == "5"

        failed = await session.call_tool("explode", {})
        assert failed.is_error is True
        assert "kaboom" in failed.content[0]["text"]
    finally:
        await session.aclose()

    assert not session.alive
    with pytest.raises(ConnectionFailureError):
        await session.list_tools()


@pytest.mark.asyncio
async def test_session_can_be_closed_from_another_task() -> None:
    server = build_server()
    session = McpSession("calc", request_timeout=5)
    await session.start(lambda: memory_transport(server), connect_timeout=5)

    async with anyio.create_task_group() as tg:
        tg.start_soon(session.aclose)

    assert not session.alive


@pytest.mark.asyncio
async def test_failed_handshake_raises() -> None:
    session = McpSession("calc", request_timeout=5)
    with pytest.raises(httpx.ConnectError):
        await session.start(refused_transport, connect_timeout=5)
    assert not session.alive


@pytest.mark.asyncio
async def test_network_falls_back_to_sse(monkeypatch: pytest.MonkeyPatch) -> None:
    server = build_server()
    monkeypatch.setattr(session_module, "streamablehttp_client", refused_transport)
    monkeypatch.setattr(
        session_module, "sse_client", lambda url, **kwargs: memory_transport(server)
    )

    session = await session_module.connect_session(NETWORK, connect_timeout=5, request_timeout=5)
    try:
        assert [tool.name for tool in await session.list_tools()] == ["add", "explode"]
    finally:
        await session.aclose()


@pytest.mark.asyncio
async def test_network_reports_both_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(session_module, "streamablehttp_client", refused_transport)
    monkeypatch.setattr(session_module, "sse_client", refused_transport)

    with pytest.raises(ConnectionFailureError) as exc_info:
        await session_module.connect_session(NETWORK, connect_timeout=5, request_timeout=5)

    message = exc_info.value.message
    assert "streamable HTTP" in message
    assert "SSE" in message


@pytest.mark.asyncio
async def test_manager_with_real_sessions(monkeypatch: pytest.MonkeyPatch) -> None:
    server = build_server()
    monkeypatch.setattr(
        session_module, "streamablehttp_client", lambda url, **kwargs: memory_transport(server)
    )
    manager = ConnectionManager(connect_timeout=5, request_timeout=5)
    await manager.set_providers([NETWORK])
    try:
        catalog = await manager.list_capabilities()
        assert [tool.name for tool in catalog] == ["calc__add", "calc__explode"]
        assert await manager.invoke("calc__add", {"a": 40, "b": 2}) == [
            {"type": "text", "text": "42"}
        ]
    finally:
        await manager.close_all()
