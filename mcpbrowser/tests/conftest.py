from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio

from mcpbrowser.agent import BackendReply, ChatMessage, ReasoningBackend, ToolInvocation
from mcpbrowser.config import get_settings
from mcpbrowser.core import ConnectionFailureError, metrics
from mcpbrowser.mcp import (
    CapabilityDescriptor,
    ConnectionManager,
    ProviderConfig,
    ProviderSession,
    ToolCallResult,
    ToolInfo,
    TransportKind,
)


class FakeSession(ProviderSession):
    """In-memory MCP session driven by plain callables."""

    def __init__(
        self,
        provider_id: str,
        tools: list[ToolInfo] | None = None,
        handlers: dict[str, Callable[[dict[str, Any]], Any]] | None = None,
        list_error: Exception | None = None,
    ):
        self.provider_id = provider_id
        self.tools = tools or []
        self.handlers = handlers or {}
        self.list_error = list_error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def list_tools(self) -> list[ToolInfo]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        self.calls.append((name, arguments))
        handler = self.handlers[name]
        outcome = handler(arguments)
        if isinstance(outcome, ToolCallResult):
            return outcome
        return ToolCallResult(content=[{"type": "text", "text": str(outcome)}], is_error=False)

    async def aclose(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """Session factory returning prepared sessions, or failing for given ids."""

    def __init__(
        self,
        sessions: dict[str, FakeSession] | None = None,
        failing: set[str] | None = None,
        delay: float = 0.0,
    ):
        self.sessions = sessions or {}
        self.failing = failing or set()
        self.delay = delay
        self.connects: list[str] = []

    async def __call__(self, config: ProviderConfig) -> ProviderSession:
        self.connects.append(config.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if config.id in self.failing:
            raise ConnectionFailureError(f"Failed to start {config.id}: spawn error")
        return self.sessions[config.id]


class ScriptedBackend(ReasoningBackend):
    """Backend replaying a fixed list of replies, then repeating the last."""

    name = "scripted"

    def __init__(self, replies: list[BackendReply] | None = None, error: Exception | None = None):
        self.replies = replies or []
        self.error = error
        self.calls: list[tuple[list[ChatMessage], list[CapabilityDescriptor]]] = []

    async def call(
        self, history: list[ChatMessage], catalog: list[CapabilityDescriptor]
    ) -> BackendReply:
        self.calls.append((list(history), list(catalog)))
        if self.error is not None:
            raise self.error
        index = min(len(self.calls), len(self.replies)) - 1
        return self.replies[index]


def process_config(provider_id: str, **overrides: Any) -> ProviderConfig:
    values: dict[str, Any] = {
        "id": provider_id,
        "name": provider_id.title(),
        "transport": TransportKind.PROCESS,
        "command": "node",
        "args": (f"{provider_id}.mjs",),
    }
    values.update(overrides)
    return ProviderConfig(**values)


def tool_call(name: str, arguments: dict[str, Any] | None = None, call_id: str = "call_1") -> BackendReply:
    return BackendReply(
        text_segments=[],
        invocations=[ToolInvocation(id=call_id, name=name, arguments=arguments or {})],
        done=False,
    )


def final_text(text: str) -> BackendReply:
    return BackendReply(text_segments=[text], invocations=[], done=True)


@pytest.fixture(autouse=True)
def reset_process_state():
    get_settings.cache_clear()
    metrics.reset()
    yield
    get_settings.cache_clear()


@pytest.fixture
def search_session() -> FakeSession:
    return FakeSession(
        "search",
        tools=[
            ToolInfo(
                name="web_search",
                description="Search the web",
                input_schema={"type": "object", "properties": {"query": {"type": "string"}}},
            )
        ],
        handlers={"web_search": lambda args: f"Results for {args.get('query')}: Paris"},
    )


@pytest_asyncio.fixture
async def search_manager(search_session: FakeSession) -> ConnectionManager:
    manager = ConnectionManager(session_factory=FakeSessionFactory({"search": search_session}))
    await manager.set_providers([process_config("search")])
    yield manager
    await manager.close_all()
