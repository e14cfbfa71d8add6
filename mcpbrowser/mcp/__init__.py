"""MCP server configuration, sessions and the connection manager."""

from mcpbrowser.mcp.config import (
    NAMESPACE_SEPARATOR,
    CapabilityDescriptor,
    ProviderConfig,
    ServerCategory,
    ServerStatus,
    TransportKind,
    load_provider_configs,
    namespace_tool,
    save_provider_configs,
    split_namespaced,
)
from mcpbrowser.mcp.manager import ConnectionManager
from mcpbrowser.mcp.session import (
    McpSession,
    ProviderSession,
    ToolCallResult,
    ToolInfo,
    connect_session,
)

__all__ = [
    "NAMESPACE_SEPARATOR",
    "CapabilityDescriptor",
    "ConnectionManager",
    "McpSession",
    "ProviderConfig",
    "ProviderSession",
    "ServerCategory",
    "ServerStatus",
    "ToolCallResult",
    "ToolInfo",
    "TransportKind",
    "connect_session",
    "load_provider_configs",
    "namespace_tool",
    "save_provider_configs",
    "split_namespaced",
]
