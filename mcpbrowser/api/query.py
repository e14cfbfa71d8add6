"""Query endpoint streaming run progress as server-sent events."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from mcpbrowser.agent import Failure, Orchestrator, ProgressEvent, ReasoningBackend
from mcpbrowser.api.dependencies import get_backend, get_connections
from mcpbrowser.config import get_settings
from mcpbrowser.core import ErrorCode, get_logger, metrics
from mcpbrowser.core.logging import request_id_ctx
from mcpbrowser.mcp import ConnectionManager

logger = get_logger(__name__)

router = APIRouter(tags=["query"])


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=8000)


@router.post("/query")
async def query_route(
    payload: QueryRequest,
    backend: ReasoningBackend = Depends(get_backend),
    connections: ConnectionManager = Depends(get_connections),
) -> StreamingResponse:
    """Run a query and stream its progress events."""
    settings = get_settings()
    orchestrator = Orchestrator(backend, connections, max_iterations=settings.max_iterations)
    stream = stream_events(
        orchestrator, payload.query.strip(), float(settings.sse_ping_interval_seconds or 0)
    )
    request_id = request_id_ctx.get()
    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    if request_id:
        headers["X-Request-ID"] = request_id
    return StreamingResponse(stream, media_type="text/event-stream", headers=headers)


async def stream_events(
    orchestrator: Orchestrator, query: str, ping_interval: float
) -> AsyncIterator[str]:
    """
    Serialize a run as SSE frames.

    The run is consumed by its own task so keep-alive comments can be sent
    while a backend or tool call is pending. When the client goes away the
    stream is closed and the run task is cancelled with it.
    """
    queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()

    async def produce() -> None:
        try:
            async for event in orchestrator.run(query):
                queue.put_nowait(event)
        except Exception as exc:
            logger.exception("Unexpected error during run", exc_info=exc)
            queue.put_nowait(Failure("An unexpected error occurred", ErrorCode.INTERNAL_ERROR))
        finally:
            queue.put_nowait(None)

    producer = asyncio.create_task(produce())
    finished = False
    try:
        while True:
            try:
                if ping_interval > 0:
                    event = await asyncio.wait_for(queue.get(), timeout=ping_interval)
                else:
                    event = await queue.get()
            except TimeoutError:
                metrics.increment("sse_pings_sent")
                yield format_sse_comment()
                continue
            if event is None:
                finished = True
                break
            yield format_sse_event(event.type.value, event.to_dict())
    finally:
        if not finished:
            logger.info("Query stream closed before the run finished")
            producer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await producer


def format_sse_event(event: str, payload: dict[str, Any]) -> str:
    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n"


def format_sse_comment(comment: str = "ping") -> str:
    return f": {comment}\n\n"
