"""Reasoning backend endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from mcpbrowser.agent import OpenAICompatBackend, ReasoningBackend
from mcpbrowser.api.dependencies import get_backend
from mcpbrowser.core import AppError, ValidationError

router = APIRouter(prefix="/backend", tags=["backend"])


def _require_openai_compat(backend: ReasoningBackend) -> OpenAICompatBackend:
    if not isinstance(backend, OpenAICompatBackend):
        raise ValidationError(
            "Model listing is only available for the openai_compat backend",
            details={"backend": backend.name},
        )
    return backend


@router.get("/models")
async def list_models(backend: ReasoningBackend = Depends(get_backend)) -> dict[str, Any]:
    """List models served by the OpenAI-compatible endpoint."""
    compat = _require_openai_compat(backend)
    return {"backend": compat.name, "models": await compat.list_models()}


@router.get("/health")
async def backend_health(backend: ReasoningBackend = Depends(get_backend)) -> dict[str, Any]:
    """Check that the configured backend is reachable."""
    if not isinstance(backend, OpenAICompatBackend):
        return {"backend": backend.name, "ok": getattr(backend, "has_credentials", True)}
    try:
        await backend.list_models()
    except AppError as exc:
        return {
            "backend": backend.name,
            "ok": False,
            "details": {"code": exc.code.value, "message": exc.message},
        }
    return {"backend": backend.name, "ok": True}
