import asyncio

from fakes import ScriptedClient, product_page
from harvester.workflows.errors import FetchTimeoutError, HttpStatusError, ProxyConnectError
from harvester.workflows.retry import RetryOrchestrator, TerminalState


def _urls(n):
    return [f"https://www.amazon.com/dp/{i}" for i in range(n)]


def test_transient_timeouts_recover_on_second_round():
    urls = _urls(5)
    scripts = {url: ["<html>ok</html>"] for url in urls}
    for url in urls[:2]:
        scripts[url] = [FetchTimeoutError("slow", url=url), "<html>ok</html>"]
    client = ScriptedClient(scripts)

    result = asyncio.run(RetryOrchestrator(client, max_rounds=3).run(urls))

    assert result.terminal_state is TerminalState.SUCCESS
    assert len(result.rounds) == 2
    assert result.rounds[0].failed == tuple(urls[:2])
    assert result.rounds[1].targets == tuple(urls[:2])
    assert result.unresolved == []
    assert all(result.outcomes[u].ok for u in urls)
    assert result.outcomes[urls[0]].attempt == 1
    assert result.attempts(urls[0]) == 2
    assert result.attempts(urls[4]) == 1


def test_persistent_failures_stop_at_round_limit():
    urls = _urls(3)
    client = ScriptedClient({url: [ProxyConnectError("refused", url=url)] for url in urls})

    result = asyncio.run(RetryOrchestrator(client, max_rounds=3).run(urls))

    assert result.terminal_state is TerminalState.PARTIAL_FAILURE
    assert len(result.rounds) == 3
    assert result.unresolved == urls
    assert all(client.calls[u] == 3 for u in urls)
    assert all(result.attempts(u) == 3 for u in urls)


def test_last_outcome_wins_for_retried_targets():
    url = "https://www.amazon.com/dp/flaky"
    client = ScriptedClient({url: [HttpStatusError(503, url=url), FetchTimeoutError("slow", url=url)]})

    result = asyncio.run(RetryOrchestrator(client, max_rounds=2).run([url]))

    assert result.terminal_state is TerminalState.PARTIAL_FAILURE
    assert result.outcomes[url].error_kind == "timeout"
    assert result.rounds[0].outcomes[url].error_kind == "http_status"


def test_single_round_limit_does_not_retry():
    url = "https://www.amazon.com/dp/once"
    client = ScriptedClient({url: [FetchTimeoutError("slow", url=url), "<html>ok</html>"]})
    result = asyncio.run(RetryOrchestrator(client, max_rounds=1).run([url]))
    assert client.calls[url] == 1
    assert result.terminal_state is TerminalState.PARTIAL_FAILURE


def test_zero_targets_is_success_without_rounds():
    result = asyncio.run(RetryOrchestrator(ScriptedClient({})).run([]))
    assert result.terminal_state is TerminalState.SUCCESS
    assert result.rounds == ()
    assert result.outcomes == {}


def test_duplicate_targets_are_processed_once():
    url = "https://www.amazon.com/dp/dup"
    client = ScriptedClient({url: [product_page("Dup")]})
    result = asyncio.run(RetryOrchestrator(client).run([url, url, url]))
    assert result.targets == (url,)
    assert client.calls[url] == 1


def test_retry_delay_sleeps_between_rounds_only():
    url = "https://www.amazon.com/dp/slow"
    client = ScriptedClient({url: [FetchTimeoutError("slow", url=url)]})
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    orchestrator = RetryOrchestrator(client, max_rounds=3, retry_delay=0.25, sleep=fake_sleep)
    asyncio.run(orchestrator.run([url]))
    assert sleeps == [0.25, 0.25]
