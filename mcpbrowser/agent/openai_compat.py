"""OpenAI-compatible chat completions backend (Ollama, LM Studio, vLLM, ...)."""

from __future__ import annotations

import json
from typing import Any

import httpx

from mcpbrowser.agent.base import BackendReply, ChatMessage, ReasoningBackend, ToolInvocation
from mcpbrowser.agent.http_client import create_http_client, request_json
from mcpbrowser.config import BACKEND_TIMEOUT_SECONDS
from mcpbrowser.core import AppError, BackendBadResponseError, get_logger
from mcpbrowser.mcp import CapabilityDescriptor

logger = get_logger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
MODELS_PATH = "/v1/models"


class OpenAICompatBackend(ReasoningBackend):
    """Adapter for ``/v1/chat/completions`` with function calling."""

    name = "openai_compat"

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = BACKEND_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = create_http_client(
            base_url=base_url,
            timeout_seconds=timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def call(
        self, history: list[ChatMessage], catalog: list[CapabilityDescriptor]
    ) -> BackendReply:
        tools = format_tools(catalog)
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": format_messages(history),
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        data = await request_json(self.client, "POST", CHAT_COMPLETIONS_PATH, json=payload)
        return parse_reply(data)

    async def list_models(self) -> list[str]:
        """List model identifiers served by the endpoint."""
        payload = await request_json(self.client, "GET", MODELS_PATH)
        models = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(models, list):
            raise BackendBadResponseError(details={"body": str(payload)[:300]})
        return [item["id"] for item in models if isinstance(item, dict) and item.get("id")]

    async def healthcheck(self) -> bool:
        """Check that the endpoint answers the models listing."""
        try:
            await self.list_models()
            return True
        except AppError as exc:
            logger.warning("Backend healthcheck failed", data={"error": str(exc)})
            return False


def format_tools(catalog: list[CapabilityDescriptor]) -> list[dict[str, Any]]:
    """Translate the catalog to the function-calling schema."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema or {"type": "object", "properties": {}},
            },
        }
        for tool in catalog
    ]


def format_messages(history: list[ChatMessage]) -> list[dict[str, Any]]:
    """Convert neutral history to chat completions messages."""
    messages: list[dict[str, Any]] = []
    for msg in history:
        if msg.role == "assistant":
            if isinstance(msg.raw, dict):
                messages.append(msg.raw)
                continue
            entry: dict[str, Any] = {"role": "assistant", "content": msg.content or None}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in msg.tool_calls
                ]
            messages.append(entry)
        elif msg.role == "tool":
            messages.append(
                {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
            )
        else:
            messages.append({"role": msg.role, "content": msg.content})
    return messages


def parse_reply(data: Any) -> BackendReply:
    """Reduce a chat completions response to a ``BackendReply``."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices or not isinstance(choices[0], dict):
        raise BackendBadResponseError("Empty response from reasoning backend")

    choice = choices[0]
    message = choice.get("message")
    if not isinstance(message, dict):
        raise BackendBadResponseError(
            "Reasoning backend response has no message", details={"body": str(choice)[:300]}
        )

    content = message.get("content") or ""
    invocations: list[ToolInvocation] = []
    wire_calls: list[dict[str, Any]] = []
    for index, call in enumerate(message.get("tool_calls") or []):
        function = call.get("function") or {}
        invocation = ToolInvocation(
            id=call.get("id") or f"call_{index}",
            name=function.get("name", ""),
            arguments=_parse_arguments(function.get("arguments")),
        )
        invocations.append(invocation)
        wire_calls.append(
            {
                "id": invocation.id,
                "type": "function",
                "function": {
                    "name": invocation.name,
                    "arguments": _wire_arguments(function.get("arguments"), invocation),
                },
            }
        )

    raw: dict[str, Any] = {"role": "assistant", "content": content or None}
    if wire_calls:
        raw["tool_calls"] = wire_calls

    return BackendReply(
        text_segments=[content] if content else [],
        invocations=invocations,
        done=choice.get("finish_reason") == "stop" or not invocations,
        raw=raw,
    )


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Ignoring malformed tool arguments", data={"arguments": str(raw)[:200]})
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _wire_arguments(raw: Any, invocation: ToolInvocation) -> str:
    if isinstance(raw, str) and raw:
        return raw
    return json.dumps(invocation.arguments)
