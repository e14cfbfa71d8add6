"""
HTTP plumbing for backends spoken to over plain JSON/HTTP.

Every transport failure, error status and unparsable body is mapped to a
``BackendError`` subclass. Requests are sent exactly once.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from mcpbrowser.core import (
    BackendAuthError,
    BackendBadResponseError,
    BackendError,
    BackendUnavailableError,
    RateLimitError,
    request_id_ctx,
)

BODY_SNIPPET_CHARS = 300


def create_http_client(
    base_url: str,
    timeout_seconds: float,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an AsyncClient whose every phase shares one timeout.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        timeout=httpx.Timeout(timeout_seconds),
        headers=headers or {},
        transport=transport,
    )


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    **kwargs: Any,
) -> Any:
    """Send one request and return the decoded JSON body.

    Raises:
        BackendUnavailableError: Timeout, connection failure or HTTP 5xx.
        BackendAuthError: HTTP 401/403.
        RateLimitError: HTTP 429.
        BackendBadResponseError: The body is not JSON.
        BackendError: Any other request failure or HTTP 4xx.
    """
    headers = dict(kwargs.pop("headers", None) or {})
    request_id = request_id_ctx.get()
    if request_id:
        headers.setdefault("X-Request-ID", request_id)

    try:
        response = await client.request(method, path, headers=headers, **kwargs)
    except httpx.TimeoutException as exc:
        raise BackendUnavailableError(
            "Reasoning backend timed out", details={"reason": str(exc) or "timeout"}
        ) from exc
    except httpx.TransportError as exc:
        raise BackendUnavailableError(
            f"Reasoning backend unreachable: {exc}", details={"url": str(client.base_url)}
        ) from exc
    except httpx.HTTPError as exc:
        raise BackendError("Reasoning backend request failed", details={"reason": str(exc)}) from exc

    _raise_for_status(response)
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        raise BackendBadResponseError(
            "Reasoning backend returned invalid JSON",
            details={"body": response.text[:BODY_SNIPPET_CHARS]},
        ) from exc


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return

    reason = _error_reason(response)
    details = {"status": status, "reason": reason, "url": str(response.url)}
    if status in (401, 403):
        raise BackendAuthError(f"Reasoning backend rejected the credentials: {reason}", status, details)
    if status == 429:
        raise RateLimitError(f"Rate limit exceeded: {reason}", details=details)
    if status >= 500:
        raise BackendUnavailableError(f"Reasoning backend unavailable (HTTP {status})", details)
    raise BackendError(f"Reasoning backend error (HTTP {status}): {reason}", details)


def _error_reason(response: httpx.Response) -> str:
    """Pull the message out of ``{"error": {"message": ...}}`` or ``{"error": "..."}``."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:BODY_SNIPPET_CHARS]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return response.text[:BODY_SNIPPET_CHARS]
