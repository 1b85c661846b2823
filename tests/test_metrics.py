import asyncio
import math

from fakes import ScriptedClient
from harvester.workflows.errors import FetchTimeoutError, HttpStatusError
from harvester.workflows.metrics import mean_latency, summarize
from harvester.workflows.retry import RetryOrchestrator
from harvester.workflows.web_fetch import FetchOutcome


def test_mean_latency_only_counts_successes():
    outcomes = [
        FetchOutcome("a", 1.0),
        FetchOutcome("b", 3.0),
        FetchOutcome("c", 100.0, error=FetchTimeoutError("slow")),
    ]
    assert mean_latency(outcomes) == 2.0


def test_mean_latency_is_nan_without_successes():
    outcomes = [FetchOutcome("a", 1.0, error=FetchTimeoutError("slow"))]
    assert math.isnan(mean_latency(outcomes))
    assert math.isnan(mean_latency([]))


def test_summarize_counts_and_json_safe_output():
    urls = ["https://www.amazon.com/dp/a", "https://www.amazon.com/dp/b"]
    client = ScriptedClient({
        urls[0]: [HttpStatusError(503, url=urls[0])],
        urls[1]: [FetchTimeoutError("slow", url=urls[1])],
    })
    result = asyncio.run(RetryOrchestrator(client, max_rounds=2).run(urls))

    summary = summarize(result)
    assert summary.succeeded == 0
    assert summary.failed == 2
    assert summary.total == 2
    assert summary.rounds == 2
    assert summary.requests == 4
    assert summary.terminal_state == "partial_failure"
    assert summary.failure_kinds == {"http_status": 1, "timeout": 1}
    payload = summary.to_dict()
    assert payload["mean_latency_seconds"] is None
    assert payload["unresolved"] == urls
