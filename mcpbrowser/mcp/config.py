"""
MCP server configuration and catalog types.

Servers are described by immutable ``ProviderConfig`` records. Tools they
expose are published to the reasoning backend under a namespaced name,
``{server_id}__{tool_name}``, so that identical tool names on different
servers never collide.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from mcpbrowser.core import InvalidIdentifierError, ValidationError, get_logger

logger = get_logger(__name__)

NAMESPACE_SEPARATOR = "__"


class TransportKind(str, Enum):
    """How the backend reaches an MCP server."""

    PROCESS = "process"  # child process speaking MCP over stdin/stdout
    NETWORK = "network"  # Streamable HTTP, falling back to SSE


class ServerCategory(str, Enum):
    SEARCH = "search"
    KNOWLEDGE = "knowledge"
    UTILITY = "utility"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for one MCP server."""

    id: str
    name: str
    transport: TransportKind
    command: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict, hash=False)
    url: str | None = None
    headers: dict[str, str] = field(default_factory=dict, hash=False)
    api_key_env_var: str | None = None
    api_key: str | None = field(default=None, repr=False)
    category: ServerCategory = ServerCategory.CUSTOM
    enabled: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("Server id must not be empty")
        if NAMESPACE_SEPARATOR in self.id:
            raise ValidationError(
                f"Server id must not contain '{NAMESPACE_SEPARATOR}'", details={"id": self.id}
            )
        if self.transport is TransportKind.PROCESS and not self.command:
            raise ValidationError(
                "Process servers require a command", details={"id": self.id}
            )
        if self.transport is TransportKind.NETWORK and not self.url:
            raise ValidationError("Network servers require a url", details={"id": self.id})

    def descriptor(self) -> tuple[Any, ...]:
        """Everything that determines how a session is established."""
        return (
            self.transport,
            self.command,
            self.args,
            tuple(sorted(self.env.items())),
            self.url,
            tuple(sorted(self.headers.items())),
            self.api_key_env_var,
            self.api_key,
        )

    def process_env(self) -> dict[str, str]:
        """Environment for a process server: inherited env, overrides, credential."""
        env = {**os.environ, **self.env}
        if self.api_key_env_var and self.api_key:
            env[self.api_key_env_var] = self.api_key
        return env

    def to_dict(self) -> dict[str, Any]:
        """Public representation (credential values are never exposed)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "transport": self.transport.value,
            "command": self.command,
            "args": list(self.args),
            "url": self.url,
            "api_key_env_var": self.api_key_env_var,
            "has_api_key": bool(self.api_key),
            "category": self.category.value,
            "enabled": self.enabled,
        }

    def to_file_dict(self) -> dict[str, Any]:
        """The form stored in the servers file; ``from_dict`` reads it back.

        Resolved credential values are left out; only ``api_key_env_var``
        is kept.
        """
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "transport": self.transport.value,
            "category": self.category.value,
            "enabled": self.enabled,
        }
        if self.transport is TransportKind.PROCESS:
            data["command"] = self.command
            data["args"] = list(self.args)
            if self.env:
                data["env"] = dict(self.env)
        else:
            data["url"] = self.url
            if self.headers:
                data["headers"] = dict(self.headers)
        if self.api_key_env_var:
            data["api_key_env_var"] = self.api_key_env_var
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderConfig":
        """Build a config from its JSON form.

        ``transport`` accepts ``stdio`` and ``http`` as aliases of
        ``process`` and ``network``. A credential referenced by
        ``api_key_env_var`` is read from the current environment when no
        explicit ``api_key`` is given.
        """
        transport = str(data.get("transport", "process")).lower()
        transport = {"stdio": "process", "http": "network"}.get(transport, transport)
        try:
            kind = TransportKind(transport)
            category = ServerCategory(data.get("category", ServerCategory.CUSTOM.value))
        except ValueError as exc:
            raise ValidationError(str(exc), details={"server": data.get("id")}) from exc

        api_key_env_var = data.get("api_key_env_var") or None
        api_key = data.get("api_key") or None
        if api_key is None and api_key_env_var:
            api_key = os.environ.get(api_key_env_var) or None

        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or data.get("id", "")),
            transport=kind,
            command=data.get("command"),
            args=tuple(str(arg) for arg in data.get("args") or ()),
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            url=data.get("url"),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            api_key_env_var=api_key_env_var,
            api_key=api_key,
            category=category,
            enabled=bool(data.get("enabled", True)),
            description=str(data.get("description", "")),
        )


@dataclass(frozen=True)
class CapabilityDescriptor:
    """A tool as published in the aggregated catalog."""

    name: str
    description: str
    input_schema: dict[str, Any]
    provider_id: str
    provider_name: str
    local_name: str


@dataclass
class ServerStatus:
    """Snapshot of one configured server for status listings."""

    config: ProviderConfig
    enabled: bool
    connected: bool
    tool_count: int
    error: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "enabled": self.enabled,
            "connected": self.connected,
            "tool_count": self.tool_count,
            "error": self.error,
        }


def namespace_tool(provider_id: str, local_name: str) -> str:
    return f"{provider_id}{NAMESPACE_SEPARATOR}{local_name}"


def split_namespaced(name: str) -> tuple[str, str]:
    """Split ``{server_id}__{tool_name}`` on the first separator."""
    provider_id, sep, local_name = name.partition(NAMESPACE_SEPARATOR)
    if not sep:
        raise InvalidIdentifierError(name)
    return provider_id, local_name


def load_provider_configs(path: str | Path) -> list[ProviderConfig]:
    """Load the server set from a JSON file holding a list of server objects."""
    file_path = Path(path)
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("MCP servers file not found", data={"path": str(file_path)})
        return []
    except json.JSONDecodeError as exc:
        raise ValidationError(
            "MCP servers file is not valid JSON", details={"path": str(file_path)}
        ) from exc

    if isinstance(payload, dict):
        payload = payload.get("servers", [])
    if not isinstance(payload, list):
        raise ValidationError(
            "MCP servers file must contain a list of servers", details={"path": str(file_path)}
        )

    configs = [ProviderConfig.from_dict(item) for item in payload]
    logger.info(
        "Loaded MCP server configuration",
        data={"path": str(file_path), "servers": [c.id for c in configs]},
    )
    return configs


def save_provider_configs(path: str | Path, configs: list[ProviderConfig]) -> None:
    """Write the server set in the ``{"servers": [...]}`` form.

    Written to a temporary file beside the target, then renamed into place.
    """
    file_path = Path(path)
    payload = {"servers": [config.to_file_dict() for config in configs]}
    file_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = file_path.with_name(f".{file_path.name}.tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    os.replace(tmp_path, file_path)
    logger.info(
        "Saved MCP server configuration",
        data={"path": str(file_path), "servers": [c.id for c in configs]},
    )
