"""Configuration module for the MCP Browser backend."""

from mcpbrowser.config.settings import (
    BACKEND_TIMEOUT_SECONDS,
    MAX_ITERATIONS,
    MCP_CONNECT_TIMEOUT_SECONDS,
    MCP_REQUEST_TIMEOUT_SECONDS,
    Settings,
    get_settings,
)

__all__ = [
    "BACKEND_TIMEOUT_SECONDS",
    "MAX_ITERATIONS",
    "MCP_CONNECT_TIMEOUT_SECONDS",
    "MCP_REQUEST_TIMEOUT_SECONDS",
    "Settings",
    "get_settings",
]
