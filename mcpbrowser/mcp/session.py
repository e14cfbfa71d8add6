"""
Sessions with individual MCP servers.

Uses the official MCP SDK for the wire protocol. Each live session runs in
its own owner task which enters the transport and ``ClientSession`` context
managers and keeps them open until the session is closed. The SDK's
transports are built on anyio task groups, which must be exited from the
task that entered them; the owner task makes it safe to use and close a
session from any request task.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from mcpbrowser.core import ConnectionFailureError, get_logger
from mcpbrowser.mcp.config import ProviderConfig, TransportKind

logger = get_logger(__name__)

CLIENT_INFO = Implementation(name="mcp-browser", version="0.1.0")

TransportFactory = Callable[[], AbstractAsyncContextManager[tuple[Any, ...]]]


@dataclass
class ToolInfo:
    """A tool as reported by its server (not yet namespaced)."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolCallResult:
    content: list[dict[str, Any]]
    is_error: bool = False


class ProviderSession(ABC):
    """Live connection to exactly one MCP server."""

    provider_id: str

    @property
    def alive(self) -> bool:
        """False once the underlying transport has gone away."""
        return True

    @abstractmethod
    async def list_tools(self) -> list[ToolInfo]:
        """Discover the tools the server exposes."""
        ...

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        """Invoke a tool by its local (non-namespaced) name."""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Close the session and release the transport."""
        ...


class McpSession(ProviderSession):
    """``ProviderSession`` backed by an MCP SDK ``ClientSession``."""

    def __init__(self, provider_id: str, request_timeout: float):
        self.provider_id = provider_id
        self.request_timeout = request_timeout
        self._session: ClientSession | None = None
        self._task: asyncio.Task[None] | None = None
        self._ready: asyncio.Future[None] | None = None
        self._closing = asyncio.Event()
        self._log = logger.bind(provider_id=provider_id)

    @property
    def alive(self) -> bool:
        return self._session is not None

    async def start(self, transport_factory: TransportFactory, connect_timeout: float) -> None:
        """Open the transport and run the MCP initialize handshake."""
        self._ready = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(
            self._run(transport_factory), name=f"mcp-session:{self.provider_id}"
        )
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=connect_timeout)
        except BaseException:
            await self.aclose()
            raise

    async def _run(self, transport_factory: TransportFactory) -> None:
        assert self._ready is not None
        try:
            async with AsyncExitStack() as stack:
                streams = await stack.enter_async_context(transport_factory())
                read_stream, write_stream = streams[0], streams[1]
                session = await stack.enter_async_context(
                    ClientSession(
                        read_stream,
                        write_stream,
                        read_timeout_seconds=timedelta(seconds=self.request_timeout),
                        client_info=CLIENT_INFO,
                    )
                )
                await session.initialize()
                self._session = session
                self._ready.set_result(None)
                await self._closing.wait()
        except Exception as exc:
            if not self._ready.done():
                self._ready.set_exception(exc)
            else:
                self._log.warning("MCP session terminated", data={"error": str(exc)})
        finally:
            self._session = None

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ConnectionFailureError(
                f"Session with {self.provider_id} is closed",
                details={"provider_id": self.provider_id},
            )
        return self._session

    async def list_tools(self) -> list[ToolInfo]:
        result = await self._require_session().list_tools()
        return [
            ToolInfo(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        result = await self._require_session().call_tool(
            name,
            arguments,
            read_timeout_seconds=timedelta(seconds=self.request_timeout),
        )
        return ToolCallResult(
            content=[block.model_dump(mode="json", exclude_none=True) for block in result.content],
            is_error=bool(result.isError),
        )

    async def aclose(self) -> None:
        self._closing.set()
        task = self._task
        if task is None:
            return
        if self._ready is not None and not self._ready.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._task = None


def _describe(exc: BaseException) -> str:
    """Flatten exception groups raised by the SDK's task groups into one line."""
    if isinstance(exc, BaseExceptionGroup):
        return "; ".join(_describe(inner) for inner in exc.exceptions)
    if isinstance(exc, TimeoutError):
        return "timed out"
    return str(exc) or exc.__class__.__name__


async def _open(
    config: ProviderConfig,
    transport_factory: TransportFactory,
    connect_timeout: float,
    request_timeout: float,
) -> McpSession:
    session = McpSession(config.id, request_timeout=request_timeout)
    await session.start(transport_factory, connect_timeout)
    return session


async def connect_session(
    config: ProviderConfig,
    *,
    connect_timeout: float,
    request_timeout: float,
) -> ProviderSession:
    """Establish a session with one MCP server.

    Network servers are tried with Streamable HTTP first and with SSE only if
    that fails; both attempts together count as one connection attempt.

    Raises:
        ConnectionFailureError: If the process could not be started or both
            network transports failed.
    """
    if config.transport is TransportKind.PROCESS:
        params = StdioServerParameters(
            command=config.command or "",
            args=list(config.args),
            env=config.process_env(),
        )
        try:
            return await _open(
                config, lambda: stdio_client(params), connect_timeout, request_timeout
            )
        except Exception as exc:
            raise ConnectionFailureError(
                f"Failed to start {config.command}: {_describe(exc)}",
                details={"provider_id": config.id},
            ) from exc

    url = config.url or ""
    headers = dict(config.headers)
    if config.api_key:
        headers.setdefault("Authorization", f"Bearer {config.api_key}")
    try:
        return await _open(
            config,
            lambda: streamablehttp_client(
                url, headers=headers, timeout=timedelta(seconds=connect_timeout)
            ),
            connect_timeout,
            request_timeout,
        )
    except Exception as primary_exc:
        logger.info(
            "Streamable HTTP connect failed, falling back to SSE",
            data={"provider_id": config.id, "error": _describe(primary_exc)},
        )
        try:
            return await _open(
                config,
                lambda: sse_client(url, headers=headers, timeout=connect_timeout),
                connect_timeout,
                request_timeout,
            )
        except Exception as fallback_exc:
            raise ConnectionFailureError(
                f"Could not connect to {url}: streamable HTTP: {_describe(primary_exc)}; "
                f"SSE: {_describe(fallback_exc)}",
                details={"provider_id": config.id},
            ) from fallback_exc
