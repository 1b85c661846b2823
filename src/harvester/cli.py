from __future__ import annotations

import json
import logging
import math
import sys
from pathlib import Path
from typing import Optional

import typer

from .consumer import (
    EXIT_CONFIG_ERROR,
    EXIT_FATAL,
    format_outcome_line,
    run_consumer,
)
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.errors import ConfigurationError, HarvestError
from .workflows.harvest_config import SITE_PROFILES
from .workflows.harvester import resolve_policy
from .workflows.web_fetch import FetchConfig, FetchOutcome

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """Harvester (listing + product pages through a proxy)

Usage:
  harvest run [KEYWORD] [--site amazon|walmart] [--url <LISTING_URL>] [--out <DIR>] [--json] [--soft-fail]
  harvest doctor

Common options:
  --max-rounds N     Retry rounds for failed products (default 3).
  --concurrency N    Max in-flight product fetches (0 = unbounded).
  --timeout S        Per-request timeout in seconds (default 30).
  --out <DIR>        Write harvest_summary.json, Walkthrough.md, products.jsonl.
  --json             Print the summary JSON to stdout only.
  --soft-fail        Exit 0 even if some products stay unresolved.

Discoverability:
  --help-full     Expanded help + env vars + artifacts.
  --find <query>  Search commands, flags, env vars, artifacts.
  --doctor        Run environment diagnostics and exit.
"""


def _help_full() -> str:
    return """Harvester CLI

Commands:
  run      Fetch the listing page, discover products, harvest them in retry rounds.
  doctor   Print environment and dependency diagnostics.

Exit codes:
  0  every product harvested (or --soft-fail)
  1  some products still failing after the last round
  2  configuration error (proxy endpoint, keyword, limits)
  3  fatal error before harvesting (listing page unreachable)

Artifacts (--out):
  harvest_summary.json  Stable JSON summary for the run.
  Walkthrough.md        Deterministic walkthrough derived from the summary.
  products.jsonl        One line per harvested product.

Important env vars:
  HARVEST_PROXY_URL / PROXY_ENDPOINT
  HARVEST_PROXY_USER, HARVEST_PROXY_PASSWORD, HARVEST_PROXY_CREDENTIALS
  HARVEST_PROXY_DISABLE
  HARVEST_TIMEOUT, HARVEST_MAX_ROUNDS, HARVEST_CONCURRENCY, HARVEST_RETRY_DELAY
  HARVEST_POOL_REUSE, HARVEST_USER_AGENT, HARVEST_SITE, HARVEST_KEYWORD
"""


_FIND_INDEX = [
    ("command", "run", "Harvest products discovered on a listing page."),
    ("command", "doctor", "Print environment and dependency diagnostics."),
    ("flag", "--site", "Site profile: " + ", ".join(sorted(SITE_PROFILES)) + "."),
    ("flag", "--url", "Explicit listing URL instead of a keyword search."),
    ("flag", "--max-rounds", "Retry rounds for failed products."),
    ("flag", "--concurrency", "Max in-flight product fetches (0 = unbounded)."),
    ("flag", "--timeout", "Per-request timeout in seconds."),
    ("flag", "--retry-delay", "Seconds to wait before each retry round."),
    ("flag", "--pool-reuse", "Keep idle proxy connections alive between requests."),
    ("flag", "--out", "Write artifacts into this directory."),
    ("flag", "--json", "Print summary JSON to stdout only."),
    ("flag", "--soft-fail", "Exit 0 even if some products fail."),
    ("flag", "--verbose", "Debug logging."),
    ("env", "HARVEST_PROXY_URL", "Proxy URL, may embed user:password."),
    ("env", "PROXY_ENDPOINT", "Proxy endpoint (host:port or scheme://host:port)."),
    ("env", "HARVEST_PROXY_CREDENTIALS", "Proxy credentials as user:password."),
    ("env", "HARVEST_PROXY_DISABLE", "Use direct egress."),
    ("env", "HARVEST_MAX_ROUNDS", "Default retry rounds."),
    ("env", "HARVEST_CONCURRENCY", "Default concurrency cap."),
    ("artifact", "harvest_summary.json", "Stable summary output."),
    ("artifact", "Walkthrough.md", "Deterministic walkthrough."),
    ("artifact", "products.jsonl", "Harvested products."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _echo_progress(attempt: int, completed: int, total: int, outcome: FetchOutcome) -> None:
    typer.echo(f"[round {attempt + 1}] {completed}/{total} {format_outcome_line(outcome)}", err=True)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars, artifacts."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run environment diagnostics and exit."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if doctor:
        report = build_doctor_report()
        typer.echo(format_doctor_report(report))
        raise typer.Exit(code=0 if report.get("ok", True) else 2)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print environment and dependency diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.command("run", add_help_option=True)
def run_cmd(
    keyword: Optional[str] = typer.Argument(None, help="Search keyword (or set HARVEST_KEYWORD)."),
    site: Optional[str] = typer.Option(None, "--site", help="Site profile (default: HARVEST_SITE or amazon)."),
    url: Optional[str] = typer.Option(None, "--url", help="Listing URL to use instead of a keyword search."),
    max_rounds: Optional[int] = typer.Option(None, "--max-rounds", help="Retry rounds for failed products."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Max in-flight fetches (0 = unbounded)."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-request timeout in seconds."),
    retry_delay: Optional[float] = typer.Option(None, "--retry-delay", help="Seconds to wait before each retry round."),
    pool_reuse: Optional[bool] = typer.Option(None, "--pool-reuse/--no-pool-reuse", help="Keep idle connections alive."),
    out: Optional[Path] = typer.Option(None, "--out", help="Write artifacts into this directory."),
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout only."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if some products fail."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    try:
        policy = resolve_policy(site=site, keyword=keyword, listing_url=url)
        config = FetchConfig.from_env()
        if max_rounds is not None:
            config.max_rounds = max_rounds
        if concurrency is not None:
            config.concurrency = concurrency
        if timeout is not None:
            config.timeout = timeout
        if retry_delay is not None:
            config.retry_delay = retry_delay
        if pool_reuse is not None:
            config.pool_reuse = pool_reuse
        config.validate()
    except ConfigurationError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        result, summary, exit_code = run_consumer(
            policy,
            config,
            out_dir=out,
            soft_fail=soft_fail,
            progress_hook=None if json_out else _echo_progress,
        )
    except HarvestError as exc:
        typer.echo(f"fatal: listing fetch failed: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    except RuntimeError as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL)

    if json_out:
        sys.stdout.write(json.dumps(summary, ensure_ascii=False) + "\n")
        raise typer.Exit(code=exit_code)

    for target in result.batch.targets:
        typer.echo(format_outcome_line(result.batch.outcomes[target]))
        typer.echo("----------------------")
    stats = result.summary
    typer.echo(f"success: {stats.succeeded}/{stats.total} after {stats.rounds} round(s) ({stats.terminal_state})")
    for target in stats.unresolved:
        typer.echo(f"unresolved: {target} ({result.batch.outcomes[target].error_kind})")
    typer.echo(f"Finished in {stats.total_elapsed_seconds:.0f}s")
    if math.isnan(stats.mean_latency_seconds):
        typer.echo("Average time / req: n/a")
    else:
        typer.echo(f"Average time / req: {stats.mean_latency_seconds:.2f}s")
    raise typer.Exit(code=exit_code)


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    app()
