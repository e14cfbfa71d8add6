"""API routers."""

from mcpbrowser.api.backend import router as backend_router
from mcpbrowser.api.health import router as health_router
from mcpbrowser.api.query import router as query_router
from mcpbrowser.api.servers import router as servers_router

__all__ = [
    "backend_router",
    "health_router",
    "query_router",
    "servers_router",
]
