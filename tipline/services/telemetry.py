"""In-process counters for crypto and authorization outcomes.

Counter names are dotted ``<event>_total[.<reason>]`` strings. Values reset on
process restart; export is left to whatever scrapes ``counters_snapshot``.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass
import math
import time
from typing import Deque


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


_MAX_SAMPLES = 20000
_samples: Deque[RequestSample] = deque(maxlen=_MAX_SAMPLES)
_counters: Counter[str] = Counter()


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    _samples.append(RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms))
    if status_code in (401, 403):
        _counters[f"http_{status_code}_total"] += 1


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def request_stats(window_s: int, *, path_prefix: str | None = None) -> dict[str, float | int | None]:
    # Summaries over the recent window: volume, server errors and p95 latency.
    cutoff = time.time() - window_s
    window = [
        sample
        for sample in _samples
        if sample.ts >= cutoff and (path_prefix is None or sample.path.startswith(path_prefix))
    ]
    latencies = sorted(sample.latency_ms for sample in window)
    p95 = latencies[max(0, math.ceil(0.95 * len(latencies)) - 1)] if latencies else None
    return {
        "count": len(window),
        "server_errors": sum(1 for sample in window if sample.status_code >= 500),
        "p95_latency_ms": p95,
    }


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def reset_counters() -> None:
    _counters.clear()
    _samples.clear()
