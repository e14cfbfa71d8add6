"""Anthropic Messages API backend."""

from __future__ import annotations

from typing import Any

import anthropic

from mcpbrowser.agent.base import BackendReply, ChatMessage, ReasoningBackend, ToolInvocation
from mcpbrowser.config import BACKEND_TIMEOUT_SECONDS
from mcpbrowser.core import (
    BackendAuthError,
    BackendBadResponseError,
    BackendError,
    BackendUnavailableError,
    RateLimitError,
    get_logger,
)
from mcpbrowser.mcp import CapabilityDescriptor

logger = get_logger(__name__)


class AnthropicBackend(ReasoningBackend):
    """
    Adapter for ``messages.create`` with tool use.

    The system directive travels in the ``system`` parameter; tool results
    are sent back as ``tool_result`` blocks in a user turn.
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 8192,
        timeout: float = BACKEND_TIMEOUT_SECONDS,
        client: Any | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.has_credentials = bool(api_key) or client is not None
        # A failed call ends the run; the SDK must not retry it.
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    async def call(
        self, history: list[ChatMessage], catalog: list[CapabilityDescriptor]
    ) -> BackendReply:
        if not self.has_credentials:
            raise BackendAuthError("ANTHROPIC_API_KEY is not configured")
        system, messages = format_messages(history)
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if catalog:
            kwargs["tools"] = format_tools(catalog)

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APITimeoutError as exc:
            raise BackendUnavailableError("Claude API timed out") from exc
        except anthropic.APIConnectionError as exc:
            raise BackendUnavailableError(
                "Claude API unreachable", details={"reason": str(exc)}
            ) from exc
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            raise BackendAuthError(
                "Claude API rejected the API key", status_code=exc.status_code
            ) from exc
        except anthropic.RateLimitError as exc:
            raise RateLimitError("Claude API rate limit exceeded") from exc
        except anthropic.APIStatusError as exc:
            raise BackendError(
                f"Claude API error {exc.status_code}: {exc.message}",
                details={"status": exc.status_code},
            ) from exc
        except anthropic.APIError as exc:
            raise BackendError(f"Claude API error: {exc}") from exc

        return parse_reply(response)


def format_tools(catalog: list[CapabilityDescriptor]) -> list[dict[str, Any]]:
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.input_schema or {"type": "object", "properties": {}},
        }
        for tool in catalog
    ]


def format_messages(history: list[ChatMessage]) -> tuple[str, list[dict[str, Any]]]:
    """Split neutral history into the system prompt and Messages API turns.

    Consecutive tool messages are merged into a single user turn, which is
    how the Messages API expects the results of one assistant turn.
    """
    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []
    pending_results: list[dict[str, Any]] = []

    def flush_results() -> None:
        if pending_results:
            messages.append({"role": "user", "content": list(pending_results)})
            pending_results.clear()

    for msg in history:
        if msg.role == "system":
            system_parts.append(msg.content)
            continue
        if msg.role == "tool":
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
            }
            if msg.is_error:
                block["is_error"] = True
            pending_results.append(block)
            continue

        flush_results()
        if msg.role == "assistant":
            if isinstance(msg.raw, list):
                content: Any = msg.raw
            else:
                content = []
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                content.extend(
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                    for call in msg.tool_calls
                )
            messages.append({"role": "assistant", "content": content})
        else:
            messages.append({"role": "user", "content": msg.content})

    flush_results()
    return "\n\n".join(system_parts), messages


def parse_reply(response: Any) -> BackendReply:
    """Reduce a Messages API response to a ``BackendReply``."""
    blocks = getattr(response, "content", None)
    if not isinstance(blocks, list):
        raise BackendBadResponseError("Claude API response has no content")

    segments: list[str] = []
    invocations: list[ToolInvocation] = []
    raw: list[dict[str, Any]] = []
    for block in blocks:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            segments.append(block.text)
            raw.append({"type": "text", "text": block.text})
        elif block_type == "tool_use":
            arguments = block.input if isinstance(block.input, dict) else {}
            invocations.append(ToolInvocation(id=block.id, name=block.name, arguments=arguments))
            raw.append({"type": "tool_use", "id": block.id, "name": block.name, "input": arguments})

    stop_reason = getattr(response, "stop_reason", None)
    logger.debug(
        "Claude response received",
        data={"stop_reason": stop_reason, "tool_calls": len(invocations)},
    )
    return BackendReply(
        text_segments=segments,
        invocations=invocations,
        done=stop_reason == "end_turn" or not invocations,
        raw=raw,
    )
