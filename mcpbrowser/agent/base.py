"""
Reasoning backend interface.

Defines the contract that both backend protocols implement. Conversation
history is kept in a protocol-neutral form; each backend translates it to
its own wire format on every call.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from mcpbrowser.mcp import CapabilityDescriptor


@dataclass
class ToolInvocation:
    """A tool call requested by the backend."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatMessage:
    """A single history entry.

    ``role`` is one of "system", "user", "assistant" or "tool". Assistant
    messages carry the invocations they requested and, in ``raw``, the
    backend's own representation of the message. Tool messages answer the
    invocation named by ``tool_call_id``.
    """

    role: str
    content: str = ""
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False
    raw: Any = None


@dataclass
class BackendReply:
    """One backend response, reduced to what the run loop needs."""

    text_segments: list[str] = field(default_factory=list)
    invocations: list[ToolInvocation] = field(default_factory=list)
    done: bool = False
    raw: Any = None

    @property
    def text(self) -> str:
        return "".join(self.text_segments)


class ReasoningBackend(ABC):
    """
    Abstract base class for reasoning backends.

    Implementations issue exactly one request per ``call`` and never retry.
    """

    name: str

    async def aclose(self) -> None:
        """Close any underlying resources (optional)."""
        return None

    @abstractmethod
    async def call(
        self, history: list[ChatMessage], catalog: list[CapabilityDescriptor]
    ) -> BackendReply:
        """
        Send the conversation and tool catalog to the backend.

        Args:
            history: Full conversation so far, starting with the system directive
            catalog: Namespaced tools the backend may request

        Returns:
            BackendReply with narrative text and requested invocations

        Raises:
            BackendError: If the call fails or the payload is malformed
        """
        ...
