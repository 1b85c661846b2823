"""Shared schema keys to avoid magic strings across harvester modules."""

from __future__ import annotations

# Per-target report keys
K_URL = "url"
K_STATUS = "status"
K_TITLE = "title"
K_REVIEWS = "reviews"
K_ELAPSED = "elapsed_seconds"
K_ATTEMPT = "attempt"
K_ERROR = "error"
K_ERROR_KIND = "error_kind"
K_VERDICT = "verdict"

# Summary keys
K_SUCCEEDED = "succeeded"
K_FAILED = "failed"
K_TOTAL = "total"
K_ROUNDS = "rounds"
K_MEAN_LATENCY = "mean_latency_seconds"
K_TERMINAL_STATE = "terminal_state"
K_UNRESOLVED = "unresolved"
