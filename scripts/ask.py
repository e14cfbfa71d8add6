#!/usr/bin/env python3
"""Ask the MCP Browser backend a question and save the answer page.

Usage:
  python scripts/ask.py "What is the capital of France?" --output answer.html

Environment fallbacks:
  MCPBROWSER_BASE_URL
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MCP Browser query client")
    parser.add_argument("query", help="Question to ask")
    parser.add_argument(
        "--base-url", default=os.getenv("MCPBROWSER_BASE_URL", "http://127.0.0.1:8787")
    )
    parser.add_argument("--output", default="answer.html", help="Where to write the HTML page")
    parser.add_argument("--timeout", type=float, default=600.0)
    parser.add_argument("--quiet", action="store_true")
    return parser.parse_args()


def exit_with(message: str, code: int = 1) -> None:
    print(message, file=sys.stderr)
    raise SystemExit(code)


def iter_events(lines) -> Any:
    """Yield ``(event, payload)`` pairs from an SSE line stream."""
    event = "message"
    data: list[str] = []
    for line in lines:
        if not line:
            if data:
                yield event, json.loads("\n".join(data))
            event, data = "message", []
        elif line.startswith(":"):
            continue
        elif line.startswith("event:"):
            event = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data.append(line[len("data:") :].strip())


def main() -> None:
    args = parse_args()
    timeout = httpx.Timeout(args.timeout, connect=10.0)

    try:
        with httpx.Client(base_url=args.base_url.rstrip("/"), timeout=timeout) as client:
            with client.stream("POST", "/query", json={"query": args.query}) as response:
                if response.status_code != 200:
                    response.read()
                    exit_with(f"Query rejected ({response.status_code}): {response.text}")
                for event, payload in iter_events(response.iter_lines()):
                    if event == "thinking" and not args.quiet:
                        print(payload.get("text", "").strip())
                    elif event == "tool_call" and not args.quiet:
                        print(f"-> {payload.get('tool_name')} {json.dumps(payload.get('input'))}")
                    elif event == "tool_result" and not args.quiet:
                        print(f"<- {payload.get('tool_name')} {'ok' if payload.get('ok') else 'failed'}")
                    elif event == "done":
                        Path(args.output).write_text(payload.get("html", ""), encoding="utf-8")
                        print(f"Answer written to {args.output}")
                        return
                    elif event == "error":
                        exit_with(f"Error: {payload.get('message')}")
    except httpx.HTTPError as exc:
        exit_with(f"Request failed: {exc}")

    exit_with("Stream ended without an answer")


if __name__ == "__main__":
    main()
