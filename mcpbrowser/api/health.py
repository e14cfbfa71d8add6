"""
Health check and metrics endpoints.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request

from mcpbrowser import __version__
from mcpbrowser.config import get_settings
from mcpbrowser.core import metrics

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz")
async def healthcheck(request: Request) -> dict[str, Any]:
    """
    Liveness probe.

    Reports the selected reasoning backend and how many MCP servers are
    configured; it does not contact either.
    """
    settings = get_settings()
    connections = getattr(request.app.state, "connections", None)
    servers = connections.configs if connections is not None else []
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "backend": settings.reasoning_backend,
        "servers": {
            "configured": len(servers),
            "enabled": sum(1 for config in servers if config.enabled),
        },
    }


@router.get("/metrics")
async def metrics_route() -> dict[str, Any]:
    """Return in-process counters and gauges."""
    return {"metrics": metrics.snapshot()}
