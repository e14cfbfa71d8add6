"""Tests for the MCP connection manager."""

from __future__ import annotations

import asyncio

import pytest

from mcpbrowser.core import (
    ConnectionFailureError,
    ErrorCode,
    InvalidIdentifierError,
    InvocationFailureError,
    ProviderUnknownError,
    ValidationError,
)
from mcpbrowser.mcp import ConnectionManager, ToolCallResult, ToolInfo
from mcpbrowser.tests.conftest import FakeSession, FakeSessionFactory, process_config


def _session(provider_id: str, *tool_names: str) -> FakeSession:
    return FakeSession(
        provider_id,
        tools=[ToolInfo(name=name, description=f"{name} tool") for name in tool_names],
        handlers={name: (lambda args, n=name: f"{n} ok") for name in tool_names},
    )


@pytest.mark.asyncio
async def test_failing_provider_does_not_hide_healthy_one() -> None:
    """Two servers, one failing: only healthy tools, exactly one recorded error."""
    factory = FakeSessionFactory({"healthy": _session("healthy", "search")}, failing={"broken"})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("broken"), process_config("healthy")])

    catalog = await manager.list_capabilities()

    assert [tool.name for tool in catalog] == ["healthy__search"]
    assert catalog[0].provider_id == "healthy"
    assert catalog[0].local_name == "search"
    errors = manager.connection_errors()
    assert list(errors) == ["broken"]
    assert "spawn error" in errors["broken"]
    assert manager.tool_count("broken") == 0
    assert manager.tool_count("healthy") == 1


@pytest.mark.asyncio
async def test_list_capabilities_never_raises() -> None:
    """Discovery errors of any kind are recorded, not raised."""
    factory = FakeSessionFactory(
        {
            "listing": FakeSession("listing", list_error=RuntimeError("list exploded")),
            "ok": _session("ok", "a", "b"),
        },
        failing={"spawn"},
    )
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers(
        [process_config("spawn"), process_config("listing"), process_config("ok")]
    )

    catalog = await manager.list_capabilities()

    assert [tool.name for tool in catalog] == ["ok__a", "ok__b"]
    assert set(manager.connection_errors()) == {"spawn", "listing"}
    assert manager.connection_error("listing") == "list exploded"


@pytest.mark.asyncio
async def test_recovered_provider_clears_its_error() -> None:
    factory = FakeSessionFactory({"flaky": _session("flaky", "t")}, failing={"flaky"})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("flaky")])

    assert await manager.list_capabilities() == []
    assert manager.connection_error("flaky") is not None

    factory.failing.clear()
    catalog = await manager.list_capabilities()
    assert [tool.name for tool in catalog] == ["flaky__t"]
    assert manager.connection_errors() == {}


@pytest.mark.asyncio
async def test_disabled_servers_are_not_active() -> None:
    factory = FakeSessionFactory({"on": _session("on", "t"), "off": _session("off", "t")})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("on"), process_config("off", enabled=False)])

    catalog = await manager.list_capabilities()

    assert [tool.name for tool in catalog] == ["on__t"]
    assert factory.connects == ["on"]
    statuses = {status.config.id: status for status in manager.server_statuses()}
    assert statuses["off"].enabled is False
    assert statuses["on"].connected is True
    with pytest.raises(ProviderUnknownError):
        await manager.get_or_create_session("off")


@pytest.mark.asyncio
async def test_sessions_are_created_lazily_and_cached() -> None:
    factory = FakeSessionFactory({"s": _session("s", "t")})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("s")])

    assert factory.connects == []
    first = await manager.get_or_create_session("s")
    second = await manager.get_or_create_session("s")

    assert first is second
    assert factory.connects == ["s"]


@pytest.mark.asyncio
async def test_dead_session_is_replaced() -> None:
    class DeadSession(FakeSession):
        @property
        def alive(self) -> bool:
            return False

    dead, fresh = DeadSession("s", tools=[ToolInfo(name="t")]), _session("s", "t")
    pending = [dead, fresh]
    connects: list[str] = []

    async def factory(config):
        connects.append(config.id)
        return pending.pop(0)

    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("s")])

    assert await manager.get_or_create_session("s") is dead
    assert not manager.is_connected("s")
    assert await manager.get_or_create_session("s") is fresh

    assert dead.closed is True
    assert connects == ["s", "s"]
    assert manager.is_connected("s")


@pytest.mark.asyncio
async def test_unknown_provider_is_rejected() -> None:
    manager = ConnectionManager(session_factory=FakeSessionFactory())
    await manager.set_providers([])

    with pytest.raises(ProviderUnknownError) as exc_info:
        await manager.get_or_create_session("ghost")
    assert exc_info.value.provider_id == "ghost"
    assert exc_info.value.code == ErrorCode.PROVIDER_UNKNOWN


@pytest.mark.asyncio
async def test_set_providers_closes_removed_sessions() -> None:
    keep, drop = _session("keep", "t"), _session("drop", "t")
    manager = ConnectionManager(session_factory=FakeSessionFactory({"keep": keep, "drop": drop}))
    await manager.set_providers([process_config("keep"), process_config("drop")])
    await manager.list_capabilities()

    await manager.set_providers([process_config("keep")])

    assert drop.closed is True
    assert keep.closed is False
    assert manager.is_connected("keep")
    assert not manager.is_connected("drop")


@pytest.mark.asyncio
async def test_changed_connection_settings_drop_cached_session() -> None:
    old = _session("s", "t")
    factory = FakeSessionFactory({"s": old})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("s")])
    await manager.get_or_create_session("s")

    await manager.set_providers([process_config("s", description="renamed only")])
    assert old.closed is False

    await manager.set_providers([process_config("s", command="python")])
    assert old.closed is True
    assert not manager.is_connected("s")


@pytest.mark.asyncio
async def test_set_providers_rejects_duplicate_ids() -> None:
    manager = ConnectionManager(session_factory=FakeSessionFactory())
    with pytest.raises(ValidationError):
        await manager.set_providers([process_config("dup"), process_config("dup")])


@pytest.mark.asyncio
async def test_concurrent_creation_for_different_ids() -> None:
    """Different servers connect concurrently; the same server connects once."""
    factory = FakeSessionFactory({"a": _session("a", "t"), "b": _session("b", "t")}, delay=0.05)
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("a"), process_config("b")])

    results = await asyncio.gather(
        manager.get_or_create_session("a"),
        manager.get_or_create_session("b"),
        manager.get_or_create_session("a"),
        manager.get_or_create_session("b"),
    )

    assert results[0] is results[2]
    assert results[1] is results[3]
    assert sorted(factory.connects) == ["a", "b"]


@pytest.mark.asyncio
async def test_server_removed_while_connecting() -> None:
    session = _session("slow", "t")
    factory = FakeSessionFactory({"slow": session}, delay=0.05)
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("slow")])

    pending = asyncio.create_task(manager.get_or_create_session("slow"))
    await asyncio.sleep(0.01)
    await manager.set_providers([])

    with pytest.raises(ProviderUnknownError):
        await pending
    assert session.closed is True


@pytest.mark.asyncio
async def test_invoke_routes_to_owning_server() -> None:
    a, b = _session("a", "lookup"), _session("b", "lookup")
    manager = ConnectionManager(session_factory=FakeSessionFactory({"a": a, "b": b}))
    await manager.set_providers([process_config("a"), process_config("b")])

    content = await manager.invoke("b__lookup", {"q": "x"})

    assert content == [{"type": "text", "text": "lookup ok"}]
    assert b.calls == [("lookup", {"q": "x"})]
    assert a.calls == []


def _crash(args):
    raise RuntimeError("crashed")


@pytest.mark.asyncio
async def test_invoke_error_cases() -> None:
    failing = FakeSession(
        "s",
        tools=[ToolInfo(name="bad"), ToolInfo(name="boom")],
        handlers={
            "bad": lambda args: ToolCallResult(
                content=[{"type": "text", "text": "quota exceeded"}], is_error=True
            ),
            "boom": _crash,
        },
    )
    factory = FakeSessionFactory({"s": failing}, failing={"down"})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("s"), process_config("down")])

    with pytest.raises(InvalidIdentifierError):
        await manager.invoke("no_separator", {})
    with pytest.raises(ProviderUnknownError):
        await manager.invoke("ghost__tool", {})
    with pytest.raises(ConnectionFailureError):
        await manager.invoke("down__tool", {})

    with pytest.raises(InvocationFailureError) as exc_info:
        await manager.invoke("s__bad", {})
    assert exc_info.value.message == "quota exceeded"

    with pytest.raises(InvocationFailureError) as exc_info:
        await manager.invoke("s__boom", {})
    assert "crashed" in exc_info.value.message


@pytest.mark.asyncio
async def test_close_all_clears_state_despite_errors() -> None:
    class ExplodingClose(FakeSession):
        async def aclose(self) -> None:
            raise RuntimeError("close failed")

    good = _session("good", "t")
    factory = FakeSessionFactory(
        {"good": good, "bad": ExplodingClose("bad", tools=[ToolInfo(name="t")])},
        failing={"down"},
    )
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers(
        [process_config("good"), process_config("bad"), process_config("down")]
    )
    await manager.list_capabilities()
    assert manager.connection_errors()

    await manager.close_all()

    assert good.closed is True
    assert not manager.is_connected("good")
    assert not manager.is_connected("bad")
    assert manager.connection_errors() == {}


@pytest.mark.asyncio
async def test_slow_server_calls_are_bounded_by_request_timeout() -> None:
    class HangingSession(FakeSession):
        async def list_tools(self):
            if self.tools:
                return list(self.tools)
            await asyncio.sleep(3600)

        async def call_tool(self, name, arguments):
            await asyncio.sleep(3600)

    slow = HangingSession("slow")
    stuck_call = HangingSession("stuck", tools=[ToolInfo(name="t")])
    factory = FakeSessionFactory({"ok": _session("ok", "a"), "slow": slow, "stuck": stuck_call})
    manager = ConnectionManager(session_factory=factory, request_timeout=0.05)
    await manager.set_providers(
        [process_config("ok"), process_config("slow"), process_config("stuck")]
    )

    catalog = await manager.list_capabilities()

    assert [tool.name for tool in catalog] == ["ok__a", "stuck__t"]
    assert manager.connection_errors() == {"slow": "Request timed out"}
    assert manager.tool_count("slow") == 0

    with pytest.raises(InvocationFailureError) as exc_info:
        await manager.invoke("stuck__t", {})
    assert "Request timed out" in exc_info.value.message


@pytest.mark.asyncio
async def test_set_providers_drops_locks_of_removed_servers() -> None:
    factory = FakeSessionFactory({"a": _session("a", "t"), "b": _session("b", "t")})
    manager = ConnectionManager(session_factory=factory)
    await manager.set_providers([process_config("a"), process_config("b")])
    await manager.list_capabilities()
    assert set(manager._locks) == {"a", "b"}

    await manager.set_providers([process_config("a")])

    assert set(manager._locks) == {"a"}
