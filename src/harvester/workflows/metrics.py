"""Aggregate statistics over a finished batch."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..core.keys import (
    K_FAILED,
    K_MEAN_LATENCY,
    K_ROUNDS,
    K_SUCCEEDED,
    K_TERMINAL_STATE,
    K_TOTAL,
    K_UNRESOLVED,
)
from .retry import BatchResult
from .web_fetch import FetchOutcome


def mean_latency(outcomes: Iterable[FetchOutcome]) -> float:
    """Mean elapsed seconds over successful outcomes; NaN when there are none."""

    latencies = [o.elapsed for o in outcomes if o.ok]
    if not latencies:
        return math.nan
    return sum(latencies) / len(latencies)


def _json_float(value: float, digits: int = 3) -> Optional[float]:
    if math.isnan(value):
        return None
    return round(value, digits)


@dataclass
class BatchSummary:
    succeeded: int
    failed: int
    total: int
    rounds: int
    terminal_state: str
    mean_latency_seconds: float
    total_elapsed_seconds: float
    effective_rps: float
    requests: int
    failure_kinds: Dict[str, int] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_SUCCEEDED: self.succeeded,
            K_FAILED: self.failed,
            K_TOTAL: self.total,
            K_ROUNDS: self.rounds,
            K_TERMINAL_STATE: self.terminal_state,
            K_MEAN_LATENCY: _json_float(self.mean_latency_seconds),
            "total_elapsed_seconds": round(self.total_elapsed_seconds, 3),
            "effective_rps": self.effective_rps,
            "requests": self.requests,
            "failure_kinds": dict(self.failure_kinds),
            K_UNRESOLVED: list(self.unresolved),
        }


def summarize(result: BatchResult) -> BatchSummary:
    finals = [result.outcomes[t] for t in result.targets]
    requests = sum(len(r.outcomes) for r in result.rounds)
    runtime = max(result.elapsed, 1e-6)
    kinds = Counter(o.error_kind for o in finals if not o.ok)
    return BatchSummary(
        succeeded=sum(1 for o in finals if o.ok),
        failed=sum(1 for o in finals if not o.ok),
        total=len(finals),
        rounds=len(result.rounds),
        terminal_state=result.terminal_state.value,
        mean_latency_seconds=mean_latency(finals),
        total_elapsed_seconds=result.elapsed,
        effective_rps=round(requests / runtime, 3) if requests else 0.0,
        requests=requests,
        failure_kinds=dict(sorted(kinds.items())),
        unresolved=result.unresolved,
    )


__all__ = ["mean_latency", "BatchSummary", "summarize"]
