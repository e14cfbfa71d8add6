"""Reasoning backends, progress events and the orchestrator loop."""

from mcpbrowser.agent.anthropic_backend import AnthropicBackend
from mcpbrowser.agent.base import BackendReply, ChatMessage, ReasoningBackend, ToolInvocation
from mcpbrowser.agent.events import (
    Completion,
    EventType,
    Failure,
    InvocationResult,
    InvocationStart,
    ProgressEvent,
    ReasoningText,
)
from mcpbrowser.agent.finalizer import extract_or_wrap, markdown_to_html
from mcpbrowser.agent.openai_compat import OpenAICompatBackend
from mcpbrowser.agent.orchestrator import ConversationState, Orchestrator, RunState
from mcpbrowser.agent.prompts import SYSTEM_DIRECTIVE
from mcpbrowser.agent.registry import create_backend

__all__ = [
    "AnthropicBackend",
    "BackendReply",
    "ChatMessage",
    "Completion",
    "ConversationState",
    "EventType",
    "Failure",
    "InvocationResult",
    "InvocationStart",
    "OpenAICompatBackend",
    "Orchestrator",
    "ProgressEvent",
    "ReasoningBackend",
    "ReasoningText",
    "RunState",
    "SYSTEM_DIRECTIVE",
    "ToolInvocation",
    "create_backend",
    "extract_or_wrap",
    "markdown_to_html",
]
