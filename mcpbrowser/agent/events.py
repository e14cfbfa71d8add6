"""
Progress events emitted by an orchestrator run.

A run yields any number of reasoning and tool events followed by exactly
one terminal event, ``Completion`` or ``Failure``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from mcpbrowser.core import ErrorCode


class EventType(str, Enum):
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent(ABC):
    """Base class for run events."""

    type: ClassVar[EventType]
    terminal: ClassVar[bool] = False

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form, tagged with ``type``."""
        ...


@dataclass(frozen=True)
class ReasoningText(ProgressEvent):
    """Narrative text produced by the backend between tool calls."""

    type: ClassVar[EventType] = EventType.THINKING

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


@dataclass(frozen=True)
class InvocationStart(ProgressEvent):
    type: ClassVar[EventType] = EventType.TOOL_CALL

    tool_name: str
    provider_id: str
    arguments: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "tool_name": self.tool_name,
            "provider_id": self.provider_id,
            "input": self.arguments,
        }


@dataclass(frozen=True)
class InvocationResult(ProgressEvent):
    type: ClassVar[EventType] = EventType.TOOL_RESULT

    tool_name: str
    ok: bool

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "tool_name": self.tool_name, "ok": self.ok}


@dataclass(frozen=True)
class Completion(ProgressEvent):
    """Terminal event carrying the final HTML document."""

    type: ClassVar[EventType] = EventType.DONE
    terminal: ClassVar[bool] = True

    document: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "html": self.document}


@dataclass(frozen=True)
class Failure(ProgressEvent):
    """Terminal event carrying a human-readable error message."""

    type: ClassVar[EventType] = EventType.ERROR
    terminal: ClassVar[bool] = True

    message: str
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "message": self.message, "code": self.code.value}
