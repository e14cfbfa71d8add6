"""Request dependencies resolving shared objects from application state."""

from __future__ import annotations

import asyncio

from fastapi import Request

from mcpbrowser.agent import ReasoningBackend
from mcpbrowser.mcp import ConnectionManager


def get_connections(request: Request) -> ConnectionManager:
    return request.app.state.connections


def get_backend(request: Request) -> ReasoningBackend:
    return request.app.state.backend


def get_servers_lock(request: Request) -> asyncio.Lock:
    """Lock serialising edits of the server set."""
    lock = getattr(request.app.state, "servers_lock", None)
    if lock is None:
        lock = asyncio.Lock()
        request.app.state.servers_lock = lock
    return lock
