"""MCP server management endpoints."""

from __future__ import annotations

import asyncio
import dataclasses
import time
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mcpbrowser.api.dependencies import get_connections, get_servers_lock
from mcpbrowser.config import get_settings
from mcpbrowser.core import AppError, ErrorCode, NotFoundError, ValidationError, get_logger
from mcpbrowser.mcp import (
    ConnectionManager,
    ProviderConfig,
    ServerCategory,
    save_provider_configs,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/servers", tags=["servers"])


class CreateServerRequest(BaseModel):
    id: str | None = Field(None, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    transport: Literal["process", "network", "stdio", "http"] = "process"
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    api_key_env_var: str | None = None
    api_key: str | None = None
    enabled: bool = False


class UpdateServerRequest(BaseModel):
    enabled: bool


def _server_status(connections: ConnectionManager, server_id: str) -> dict[str, Any]:
    for status in connections.server_statuses():
        if status.config.id == server_id:
            return status.to_dict()
    raise NotFoundError(f"Server '{server_id}' not found")


async def _apply(connections: ConnectionManager, configs: list[ProviderConfig]) -> None:
    """Hand the new set to the manager and write it to the servers file, if one is set."""
    await connections.set_providers(configs)
    path = get_settings().mcp_servers_file
    if not path:
        return
    try:
        save_provider_configs(path, configs)
    except OSError as exc:
        logger.error("Could not save MCP servers file", data={"path": path, "error": str(exc)})
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            "Could not save the MCP servers file",
            500,
            {"path": path},
        ) from exc


def _find(configs: list[ProviderConfig], server_id: str) -> ProviderConfig:
    for config in configs:
        if config.id == server_id:
            return config
    raise NotFoundError(f"Server '{server_id}' not found")


@router.get("")
async def list_servers(
    connections: ConnectionManager = Depends(get_connections),
) -> list[dict[str, Any]]:
    """List every configured server with its connection status."""
    return [status.to_dict() for status in connections.server_statuses()]


@router.post("", status_code=201)
async def add_server(
    payload: CreateServerRequest,
    connections: ConnectionManager = Depends(get_connections),
    lock: asyncio.Lock = Depends(get_servers_lock),
) -> dict[str, Any]:
    """Register a custom server."""
    data = payload.model_dump()
    data["id"] = payload.id or f"custom-{int(time.time() * 1000)}"
    data["category"] = ServerCategory.CUSTOM.value
    config = ProviderConfig.from_dict(data)

    async with lock:
        configs = connections.configs
        if any(existing.id == config.id for existing in configs):
            raise ValidationError(
                f"Server '{config.id}' already exists", details={"id": config.id}
            )
        await _apply(connections, [*configs, config])

    logger.info("Custom MCP server added", data={"id": config.id})
    return _server_status(connections, config.id)


@router.patch("/{server_id}")
async def update_server(
    server_id: str,
    payload: UpdateServerRequest,
    connections: ConnectionManager = Depends(get_connections),
    lock: asyncio.Lock = Depends(get_servers_lock),
) -> dict[str, Any]:
    """Enable or disable a server."""
    async with lock:
        configs = connections.configs
        target = _find(configs, server_id)
        updated = dataclasses.replace(target, enabled=payload.enabled)
        await _apply(
            connections, [updated if config.id == server_id else config for config in configs]
        )

    logger.info("MCP server toggled", data={"id": server_id, "enabled": payload.enabled})
    return _server_status(connections, server_id)


@router.delete("/{server_id}", status_code=204)
async def remove_server(
    server_id: str,
    connections: ConnectionManager = Depends(get_connections),
    lock: asyncio.Lock = Depends(get_servers_lock),
) -> None:
    """Remove a custom server; built-in servers can only be disabled."""
    async with lock:
        configs = connections.configs
        target = _find(configs, server_id)
        if target.category is not ServerCategory.CUSTOM:
            raise ValidationError(
                "Only custom servers can be removed", details={"id": server_id}
            )
        await _apply(connections, [config for config in configs if config.id != server_id])

    logger.info("Custom MCP server removed", data={"id": server_id})
