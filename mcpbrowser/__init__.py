"""MCP Browser backend: answers questions with MCP tools and returns HTML."""

__version__ = "0.1.0"
