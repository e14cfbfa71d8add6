"""
In-process metrics for runs, tool calls and backend calls.
"""

from __future__ import annotations

import threading

COUNTERS = (
    "runs_total",
    "runs_failed_total",
    "backend_calls_total",
    "tool_calls_total",
    "tool_failures_total",
    "provider_connect_failures_total",
    "sse_pings_sent",
)
GAUGES = ("active_runs",)


class MetricsRegistry:
    """Thread-safe registry of counters, gauges and summed observations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._counters: dict[str, float] = dict.fromkeys(COUNTERS, 0.0)
            self._gauges: dict[str, float] = dict.fromkeys(GAUGES, 0.0)
            self._observations: dict[str, tuple[int, float]] = {}

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def observe(self, name: str, value: float) -> None:
        """Record one observation (e.g. a duration); count and sum are kept."""
        with self._lock:
            count, total = self._observations.get(name, (0, 0.0))
            self._observations[name] = (count + 1, total + value)

    def adjust_gauge(self, name: str, delta: float) -> None:
        with self._lock:
            self._gauges[name] = self._gauges.get(name, 0.0) + delta

    def snapshot(self) -> dict[str, dict]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "observations": {
                    name: {"count": count, "sum": round(total, 6)}
                    for name, (count, total) in self._observations.items()
                },
            }


metrics = MetricsRegistry()
