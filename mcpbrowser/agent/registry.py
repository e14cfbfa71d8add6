"""Backend construction from settings."""

from __future__ import annotations

from typing import Any

import httpx

from mcpbrowser.agent.anthropic_backend import AnthropicBackend
from mcpbrowser.agent.base import ReasoningBackend
from mcpbrowser.agent.openai_compat import OpenAICompatBackend
from mcpbrowser.config import Settings
from mcpbrowser.core import ValidationError, get_logger

logger = get_logger(__name__)


def create_backend(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    anthropic_client: Any | None = None,
) -> ReasoningBackend:
    """
    Instantiate the reasoning backend selected by ``settings.reasoning_backend``.

    ``transport`` and ``anthropic_client`` let tests swap the network layer.
    """
    backend: ReasoningBackend
    if settings.reasoning_backend == "anthropic":
        if not settings.anthropic_api_key and anthropic_client is None:
            logger.warning("ANTHROPIC_API_KEY not set; queries will fail until it is configured")
        backend = AnthropicBackend(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            timeout=settings.backend_timeout_seconds,
            client=anthropic_client,
        )
    elif settings.reasoning_backend == "openai_compat":
        backend = OpenAICompatBackend(
            base_url=settings.openai_compat_base_url,
            model=settings.openai_compat_model,
            api_key=settings.openai_compat_api_key or None,
            timeout=settings.backend_timeout_seconds,
            transport=transport,
        )
    else:
        raise ValidationError(
            f"Unknown reasoning backend '{settings.reasoning_backend}'",
            details={"reasoning_backend": settings.reasoning_backend},
        )

    logger.info(
        "Reasoning backend initialized",
        data={"backend": backend.name, "model": getattr(backend, "model", None)},
    )
    return backend
