"""
Connection manager for MCP servers.

Owns one lazily created session per configured server, aggregates their
tools into a single namespaced catalog and routes tool calls back to the
owning server. A server that fails to connect or to list its tools is
recorded and skipped; it never hides the tools of other servers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from mcpbrowser.config import MCP_CONNECT_TIMEOUT_SECONDS, MCP_REQUEST_TIMEOUT_SECONDS
from mcpbrowser.core import (
    AppError,
    InvocationFailureError,
    ProviderUnknownError,
    ValidationError,
    get_logger,
    metrics,
)
from mcpbrowser.mcp.config import (
    CapabilityDescriptor,
    ProviderConfig,
    ServerStatus,
    namespace_tool,
    split_namespaced,
)
from mcpbrowser.mcp.session import ProviderSession, connect_session

logger = get_logger(__name__)

SessionFactory = Callable[[ProviderConfig], Awaitable[ProviderSession]]


class ConnectionManager:
    """Session map and tool catalog for a set of MCP servers."""

    def __init__(
        self,
        *,
        connect_timeout: float = MCP_CONNECT_TIMEOUT_SECONDS,
        request_timeout: float = MCP_REQUEST_TIMEOUT_SECONDS,
        session_factory: SessionFactory | None = None,
    ):
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self._session_factory = session_factory or self._connect
        self._all_configs: list[ProviderConfig] = []
        self._configs: dict[str, ProviderConfig] = {}
        self._sessions: dict[str, ProviderSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._errors: dict[str, str] = {}
        self._tool_counts: dict[str, int] = {}

    async def _connect(self, config: ProviderConfig) -> ProviderSession:
        return await connect_session(
            config,
            connect_timeout=self.connect_timeout,
            request_timeout=self.request_timeout,
        )

    @property
    def configs(self) -> list[ProviderConfig]:
        """All configured servers, enabled or not, in configuration order."""
        return list(self._all_configs)

    async def set_providers(self, configs: Iterable[ProviderConfig]) -> None:
        """Replace the server set.

        Sessions of servers that are gone (or disabled) are closed, best
        effort. A server whose connection settings changed keeps its id but
        loses its cached session, so the next use reconnects. New servers are
        not connected until first used.
        """
        new_configs = list(configs)
        seen: set[str] = set()
        for config in new_configs:
            if config.id in seen:
                raise ValidationError("Duplicate server id", details={"id": config.id})
            seen.add(config.id)

        active = {config.id: config for config in new_configs if config.enabled}
        stale: list[ProviderSession] = []
        for provider_id, session in list(self._sessions.items()):
            current = active.get(provider_id)
            previous = self._configs.get(provider_id)
            if current is None or (previous and previous.descriptor() != current.descriptor()):
                stale.append(self._sessions.pop(provider_id))
        for provider_id in list(self._errors) + list(self._tool_counts):
            if provider_id not in active:
                self._errors.pop(provider_id, None)
                self._tool_counts.pop(provider_id, None)
        for provider_id, lock in list(self._locks.items()):
            if provider_id not in active and not lock.locked():
                del self._locks[provider_id]

        self._all_configs = new_configs
        self._configs = active

        for session in stale:
            await self._close_quietly(session)

        logger.info(
            "MCP server set updated",
            data={"active": list(active), "closed": [s.provider_id for s in stale]},
        )

    async def get_or_create_session(self, provider_id: str) -> ProviderSession:
        """Return the cached session for a server, connecting on first use.

        Raises:
            ProviderUnknownError: If the id is not an active configured server.
            ConnectionFailureError: If the handshake fails.
        """
        session = self._sessions.get(provider_id)
        if session is not None:
            if session.alive:
                return session
            logger.info("Dropping dead MCP session", data={"provider_id": provider_id})
            if self._sessions.get(provider_id) is session:
                del self._sessions[provider_id]
            await self._close_quietly(session)

        config = self._configs.get(provider_id)
        if config is None:
            raise ProviderUnknownError(provider_id)

        lock = self._locks.setdefault(provider_id, asyncio.Lock())
        async with lock:
            session = self._sessions.get(provider_id)
            if session is not None and session.alive:
                return session

            logger.info(
                "Connecting to MCP server",
                data={"provider_id": provider_id, "transport": config.transport.value},
            )
            try:
                session = await self._session_factory(config)
            except Exception:
                metrics.increment("provider_connect_failures_total")
                raise

            # The server set may have changed while the handshake was running.
            current = self._configs.get(provider_id)
            if current is None or current.descriptor() != config.descriptor():
                await self._close_quietly(session)
                raise ProviderUnknownError(provider_id)

            self._sessions[provider_id] = session
            return session

    async def _discover(self, config: ProviderConfig) -> list[CapabilityDescriptor]:
        try:
            session = await self.get_or_create_session(config.id)
            tools = await asyncio.wait_for(session.list_tools(), timeout=self.request_timeout)
        except Exception as exc:
            message = _error_message(exc)
            self._errors[config.id] = message
            self._tool_counts[config.id] = 0
            logger.warning(
                "MCP server unavailable",
                data={"provider_id": config.id, "error": message},
            )
            return []

        self._errors.pop(config.id, None)
        self._tool_counts[config.id] = len(tools)
        return [
            CapabilityDescriptor(
                name=namespace_tool(config.id, tool.name),
                description=tool.description,
                input_schema=tool.input_schema,
                provider_id=config.id,
                provider_name=config.name,
                local_name=tool.name,
            )
            for tool in tools
        ]

    async def list_capabilities(self) -> list[CapabilityDescriptor]:
        """Aggregate the namespaced tools of every active server.

        Servers are queried concurrently and independently; failures are
        recorded per server and never raised.
        """
        configs = list(self._configs.values())
        results = await asyncio.gather(*(self._discover(config) for config in configs))
        catalog = [descriptor for tools in results for descriptor in tools]
        logger.debug(
            "Tool catalog assembled",
            data={"tools": len(catalog), "failed": sorted(self._errors)},
        )
        return catalog

    async def invoke(self, namespaced_id: str, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        """Call a tool by its namespaced name and return the raw result content.

        Raises:
            InvalidIdentifierError: If the name carries no separator.
            ProviderUnknownError: If the server is not configured.
            ConnectionFailureError: If the server cannot be reached.
            InvocationFailureError: If the call fails or the tool reports an error.
        """
        provider_id, local_name = split_namespaced(namespaced_id)
        session = await self.get_or_create_session(provider_id)
        try:
            result = await asyncio.wait_for(
                session.call_tool(local_name, arguments), timeout=self.request_timeout
            )
        except AppError:
            raise
        except Exception as exc:
            raise InvocationFailureError(
                f"Tool {namespaced_id} failed: {_error_message(exc)}",
                details={"provider_id": provider_id, "tool": local_name},
            ) from exc

        if result.is_error:
            raise InvocationFailureError(
                _content_text(result.content) or f"Tool {namespaced_id} reported an error",
                details={"provider_id": provider_id, "tool": local_name},
            )
        return result.content

    async def close_all(self) -> None:
        """Close every session, ignoring individual failures, and reset state."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._errors.clear()
        self._tool_counts.clear()
        for session in sessions:
            await self._close_quietly(session)

    async def _close_quietly(self, session: ProviderSession) -> None:
        try:
            await session.aclose()
        except Exception as exc:
            logger.warning(
                "Error closing MCP session",
                data={"provider_id": session.provider_id, "error": str(exc)},
            )

    def connection_error(self, provider_id: str) -> str | None:
        return self._errors.get(provider_id)

    def connection_errors(self) -> dict[str, str]:
        return dict(self._errors)

    def tool_count(self, provider_id: str) -> int:
        return self._tool_counts.get(provider_id, 0)

    def is_connected(self, provider_id: str) -> bool:
        session = self._sessions.get(provider_id)
        return session is not None and session.alive

    def server_statuses(self) -> list[ServerStatus]:
        """Status of every configured server, enabled or not."""
        return [
            ServerStatus(
                config=config,
                enabled=config.enabled,
                connected=self.is_connected(config.id),
                tool_count=self.tool_count(config.id),
                error=self.connection_error(config.id),
            )
            for config in self._all_configs
        ]


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, AppError):
        return exc.message
    if isinstance(exc, TimeoutError):
        return "Request timed out"
    return str(exc) or exc.__class__.__name__


def _content_text(content: list[dict[str, Any]]) -> str:
    return "\n".join(
        str(block.get("text", "")) for block in content if block.get("type") == "text"
    ).strip()
