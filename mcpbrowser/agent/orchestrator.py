"""Tool-using reasoning loop shared by every backend."""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcpbrowser.agent.base import BackendReply, ChatMessage, ReasoningBackend, ToolInvocation
from mcpbrowser.agent.events import (
    Completion,
    Failure,
    InvocationResult,
    InvocationStart,
    ProgressEvent,
    ReasoningText,
)
from mcpbrowser.agent.finalizer import extract_or_wrap
from mcpbrowser.agent.prompts import SYSTEM_DIRECTIVE
from mcpbrowser.config import MAX_ITERATIONS
from mcpbrowser.core import AppError, ErrorCode, get_logger, metrics, run_id_ctx
from mcpbrowser.mcp import NAMESPACE_SEPARATOR, CapabilityDescriptor, ConnectionManager

logger = get_logger(__name__)

NO_ACTIVE_SERVERS_MESSAGE = (
    "No active MCP servers. Enable at least one server in the server settings."
)


class RunState(str, Enum):
    INIT = "init"
    AWAITING_CAPABILITIES = "awaiting_capabilities"
    REASONING = "reasoning"
    INVOKING = "invoking"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.INIT: frozenset({RunState.AWAITING_CAPABILITIES}),
    RunState.AWAITING_CAPABILITIES: frozenset({RunState.REASONING, RunState.FAILED}),
    RunState.REASONING: frozenset({RunState.DONE, RunState.INVOKING, RunState.FAILED}),
    RunState.INVOKING: frozenset({RunState.REASONING}),
    RunState.DONE: frozenset(),
    RunState.FAILED: frozenset(),
}


@dataclass
class ConversationState:
    """Mutable state of a single run."""

    history: list[ChatMessage] = field(default_factory=list)
    iteration: int = 0
    state: RunState = RunState.INIT

    def advance(self, target: RunState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal run transition {self.state.value} -> {target.value}")
        self.state = target

    @property
    def finished(self) -> bool:
        return self.state in (RunState.DONE, RunState.FAILED)


class Orchestrator:
    """
    Drives one query through the backend and the MCP servers.

    ``run`` is an async generator: it yields reasoning and tool events and
    ends with exactly one ``Completion`` or ``Failure``. Closing the
    generator, or cancelling the task consuming it, aborts whatever call is
    in flight; nothing is yielded after that.
    """

    def __init__(
        self,
        backend: ReasoningBackend,
        connections: ConnectionManager,
        *,
        max_iterations: int = MAX_ITERATIONS,
    ):
        self.backend = backend
        self.connections = connections
        self.max_iterations = max_iterations

    async def run(self, query: str) -> AsyncIterator[ProgressEvent]:
        run_id = uuid.uuid4().hex[:12]
        previous_run_id = run_id_ctx.get()
        run_id_ctx.set(run_id)
        conversation = ConversationState()
        started = time.monotonic()
        metrics.increment("runs_total")
        metrics.adjust_gauge("active_runs", 1)
        logger.info(
            "Run started",
            data={"backend": self.backend.name, "query_length": len(query)},
        )
        try:
            async with aclosing(self._drive(query, conversation)) as events:
                async for event in events:
                    if isinstance(event, Failure):
                        metrics.increment("runs_failed_total")
                        logger.warning(
                            "Run failed",
                            data={"code": event.code.value, "iterations": conversation.iteration},
                        )
                    elif isinstance(event, Completion):
                        logger.info("Run completed", data={"iterations": conversation.iteration})
                    yield event
        finally:
            metrics.adjust_gauge("active_runs", -1)
            metrics.observe("run_duration_seconds", time.monotonic() - started)
            if not conversation.finished:
                logger.info(
                    "Run abandoned",
                    data={"state": conversation.state.value, "iterations": conversation.iteration},
                )
            run_id_ctx.set(previous_run_id)

    async def _drive(
        self, query: str, conversation: ConversationState
    ) -> AsyncIterator[ProgressEvent]:
        conversation.advance(RunState.AWAITING_CAPABILITIES)
        try:
            catalog = await self.connections.list_capabilities()
        except Exception as exc:
            logger.exception("Tool catalog could not be loaded", exc_info=exc)
            conversation.advance(RunState.FAILED)
            yield Failure(f"Could not load MCP tools: {exc}", ErrorCode.CATALOG_ERROR)
            return

        if not catalog:
            conversation.advance(RunState.FAILED)
            yield Failure(self._empty_catalog_message(), ErrorCode.NO_CAPABILITIES)
            return

        conversation.history = [
            ChatMessage(role="system", content=SYSTEM_DIRECTIVE),
            ChatMessage(role="user", content=query),
        ]

        while True:
            conversation.advance(RunState.REASONING)
            if conversation.iteration >= self.max_iterations:
                conversation.advance(RunState.FAILED)
                yield Failure(
                    f"Maximum number of steps ({self.max_iterations}) reached "
                    "without a final answer.",
                    ErrorCode.ITERATION_EXHAUSTED,
                )
                return
            conversation.iteration += 1

            try:
                reply = await self._call_backend(conversation.history, catalog)
            except AppError as exc:
                conversation.advance(RunState.FAILED)
                yield Failure(f"{self.backend.name} backend error: {exc.message}", exc.code)
                return
            except Exception as exc:
                logger.exception("Unexpected backend failure", exc_info=exc)
                conversation.advance(RunState.FAILED)
                yield Failure(f"{self.backend.name} backend error: {exc}", ErrorCode.BACKEND_ERROR)
                return

            for segment in reply.text_segments:
                if segment.strip():
                    yield ReasoningText(segment)

            if reply.done or not reply.invocations:
                conversation.advance(RunState.DONE)
                yield Completion(extract_or_wrap(reply.text, query))
                return

            conversation.advance(RunState.INVOKING)
            conversation.history.append(
                ChatMessage(
                    role="assistant",
                    content=reply.text,
                    tool_calls=list(reply.invocations),
                    raw=reply.raw,
                )
            )
            for invocation in reply.invocations:
                async for event in self._invoke(invocation, conversation.history):
                    yield event

    async def _call_backend(
        self, history: list[ChatMessage], catalog: list[CapabilityDescriptor]
    ) -> BackendReply:
        metrics.increment("backend_calls_total")
        return await self.backend.call(history, catalog)

    async def _invoke(
        self, invocation: ToolInvocation, history: list[ChatMessage]
    ) -> AsyncIterator[ProgressEvent]:
        provider_id = invocation.name.split(NAMESPACE_SEPARATOR, 1)[0]
        yield InvocationStart(
            tool_name=invocation.name,
            provider_id=provider_id,
            arguments=invocation.arguments,
        )
        metrics.increment("tool_calls_total")
        try:
            result = await self.connections.invoke(invocation.name, invocation.arguments)
        except Exception as exc:
            metrics.increment("tool_failures_total")
            message = exc.message if isinstance(exc, AppError) else str(exc)
            logger.warning(
                "Tool call failed",
                data={"tool": invocation.name, "error": message},
            )
            yield InvocationResult(tool_name=invocation.name, ok=False)
            history.append(
                ChatMessage(
                    role="tool",
                    content=f"Error executing tool: {message}",
                    tool_call_id=invocation.id,
                    name=invocation.name,
                    is_error=True,
                )
            )
            return

        yield InvocationResult(tool_name=invocation.name, ok=True)
        history.append(
            ChatMessage(
                role="tool",
                content=_result_text(result),
                tool_call_id=invocation.id,
                name=invocation.name,
            )
        )

    def _empty_catalog_message(self) -> str:
        errors = self.connections.connection_errors()
        if not errors:
            return NO_ACTIVE_SERVERS_MESSAGE
        lines = "\n".join(f"• {provider_id}: {message}" for provider_id, message in errors.items())
        return (
            f"No MCP server could connect:\n\n{lines}\n\n"
            "Check that the server commands are installed and that the servers are enabled."
        )


def _result_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, ensure_ascii=False)
