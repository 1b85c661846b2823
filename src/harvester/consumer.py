from __future__ import annotations

import json
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .core.keys import (
    K_ATTEMPT,
    K_ELAPSED,
    K_ERROR_KIND,
    K_FAILED,
    K_MEAN_LATENCY,
    K_REVIEWS,
    K_ROUNDS,
    K_SUCCEEDED,
    K_TERMINAL_STATE,
    K_TITLE,
    K_TOTAL,
    K_UNRESOLVED,
    K_URL,
    K_VERDICT,
)
from .workflows.harvest_utils import collect_environment_warnings
from .workflows.harvester import HarvestPolicy, HarvestResult, run_harvest_pipeline
from .workflows.retry import TerminalState
from .workflows.web_fetch import FetchConfig, FetchOutcome, ProgressHook, write_results

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_FATAL = 3


def generate_run_id(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    suffix = secrets.token_hex(3)
    return f"{stamp}_{suffix}"


def _iso(moment: datetime) -> str:
    return moment.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def format_outcome_line(outcome: FetchOutcome) -> str:
    elapsed = f"{outcome.elapsed:.2f}s"
    if outcome.ok:
        title = outcome.product.title if outcome.product is not None else outcome.target
        return f"OK {title} ({elapsed})"
    error = outcome.error
    detail = error.message if error is not None else "unknown error"
    return f"FAILED {outcome.error_kind} {outcome.target}: {detail} ({elapsed})"


def _build_item(result: HarvestResult, target: str) -> Dict[str, Any]:
    outcome = result.batch.outcomes[target]
    item = outcome.to_dict()
    item["attempts"] = result.batch.attempts(target)
    return item


def build_harvest_summary(
    result: HarvestResult,
    *,
    run_id: str,
    started_at: datetime,
    finished_at: datetime,
) -> Dict[str, Any]:
    items = [_build_item(result, target) for target in result.batch.targets]
    summary = {
        "run_id": run_id,
        "listing_url": result.listing_url,
        "started_at": _iso(started_at),
        "finished_at": _iso(finished_at),
        "duration_ms": int((finished_at - started_at).total_seconds() * 1000),
        "discovery": {
            "targets": len(result.discovery.targets),
            "missing_href": result.discovery.missing_href,
            "discovery_rejected": [exc.to_dict() for exc in result.discovery.rejected],
        },
        "counts": result.summary.to_dict(),
        "rounds": [
            {
                "index": r.index,
                "targets": len(r.targets),
                "succeeded": len(r.succeeded),
                "failed": len(r.failed),
                "elapsed_seconds": round(r.elapsed, 3),
            }
            for r in result.batch.rounds
        ],
        "items": items,
    }
    return summary


def render_walkthrough(summary: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("# Walkthrough")
    lines.append("")
    lines.append(f"Run ID: {summary.get('run_id')}")
    lines.append(f"Listing: {summary.get('listing_url')}")
    lines.append(f"Started: {summary.get('started_at')}")
    lines.append(f"Finished: {summary.get('finished_at')}")
    lines.append(f"Duration: {summary.get('duration_ms')} ms")
    lines.append("")
    env_warnings = summary.get("environment_warnings") or []
    if env_warnings:
        lines.append("## Environment Warnings")
        for warning in env_warnings:
            lines.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
        lines.append("")
    counts = summary.get("counts") or {}
    lines.append("## Counts")
    lines.append("| metric | value |")
    lines.append("| --- | --- |")
    for key in (K_TOTAL, K_SUCCEEDED, K_FAILED, K_ROUNDS, K_TERMINAL_STATE, K_MEAN_LATENCY):
        value = counts.get(key)
        lines.append(f"| {key} | {'n/a' if value is None else value} |")
    lines.append("")
    unresolved = counts.get(K_UNRESOLVED) or []
    if unresolved:
        lines.append("## Unresolved")
        for url in unresolved:
            lines.append(f"- {url}")
        lines.append("")

    for idx, item in enumerate(summary.get("items") or [], start=1):
        lines.append(f"## Item {idx}")
        lines.append(f"url: {item.get(K_URL)}")
        lines.append(f"verdict: {item.get(K_VERDICT)}")
        lines.append(f"status: {item.get('status')}")
        lines.append(f"attempts: {item.get('attempts')} (last round {item.get(K_ATTEMPT)})")
        lines.append(f"elapsed: {item.get(K_ELAPSED)}s")
        if item.get(K_TITLE):
            lines.append(f"title: {item.get(K_TITLE)}")
            lines.append(f"reviews: {len(item.get(K_REVIEWS) or [])}")
        if item.get(K_ERROR_KIND):
            lines.append(f"error: {item.get(K_ERROR_KIND)}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def write_artifacts(result: HarvestResult, summary: Dict[str, Any], out_dir: Path) -> None:
    successes = [result.batch.outcomes[t] for t in result.batch.succeeded]
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        summary_path = out_dir / "harvest_summary.json"
        summary_path.write_text(json.dumps(summary, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        (out_dir / "Walkthrough.md").write_text(render_walkthrough(summary), encoding="utf-8")
        write_results(successes, out_dir / "products.jsonl")
    except OSError as exc:
        raise RuntimeError(f"Unable to write artifacts to {out_dir}: {exc}") from exc


def exit_code_for(result: HarvestResult, *, soft_fail: bool = False) -> int:
    if result.batch.terminal_state is TerminalState.SUCCESS or soft_fail:
        return EXIT_OK
    return EXIT_PARTIAL_FAILURE


def run_consumer(
    policy: HarvestPolicy,
    config: FetchConfig,
    *,
    out_dir: Optional[Path] = None,
    soft_fail: bool = False,
    progress_hook: Optional[ProgressHook] = None,
    run_pipeline=run_harvest_pipeline,
) -> Tuple[HarvestResult, Dict[str, Any], int]:
    started_at = datetime.now(timezone.utc)
    run_id = generate_run_id(started_at)

    env_warnings = collect_environment_warnings()
    for warning in env_warnings:
        message = warning.get("message") or warning.get("code") or "environment warning"
        remedy = warning.get("remedy")
        if remedy:
            print(f"[harvest] warning: {message} ({remedy})", file=sys.stderr)
        else:
            print(f"[harvest] warning: {message}", file=sys.stderr)

    result = run_pipeline(policy, config, progress_hook=progress_hook)

    finished_at = datetime.now(timezone.utc)
    summary = build_harvest_summary(
        result,
        run_id=run_id,
        started_at=started_at,
        finished_at=finished_at,
    )
    if env_warnings:
        summary["environment_warnings"] = env_warnings
    if out_dir is not None:
        write_artifacts(result, summary, out_dir)
    return result, summary, exit_code_for(result, soft_fail=soft_fail)
