from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .harvest_config import (
    ENV_CONCURRENCY,
    ENV_MAX_ROUNDS,
    ENV_PROXY_CREDENTIALS,
    ENV_PROXY_ENDPOINT,
    ENV_PROXY_PASSWORD,
    ENV_PROXY_URL,
    ENV_PROXY_USER,
    ENV_TIMEOUT,
)
from .harvest_utils import collect_environment_warnings, safe_float, safe_int
from .web_fetch import load_proxy_from_env


_SECRET_TOKENS = ("key", "token", "secret", "password", "pass", "credentials")


def _is_secret_name(name: str) -> bool:
    lowered = (name or "").lower()
    return any(token in lowered for token in _SECRET_TOKENS)


def redact_value(value: str, keep: int = 4) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    if len(raw) <= keep * 2:
        return "*" * len(raw)
    return f"{raw[:keep]}...{raw[-keep:]}"


def _redacted_env_value(name: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return redact_value(value) if _is_secret_name(name) else value


def _check_parser_available() -> bool:
    try:
        from bs4 import BeautifulSoup

        BeautifulSoup("<p></p>", "lxml")
        return True
    except Exception:
        return False


def build_doctor_report() -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
        "environment_warnings": collect_environment_warnings(),
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = _redacted_env_value(name, value)
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    try:
        proxy = load_proxy_from_env()
        proxy_error = None
    except ConfigurationError as exc:
        proxy = None
        proxy_error = str(exc)
    if proxy_error:
        add_check(
            "proxy_endpoint",
            False,
            detail=proxy_error,
            remedy=f"Fix {ENV_PROXY_URL} / {ENV_PROXY_ENDPOINT} (expected scheme://host:port).",
        )
    else:
        add_check(
            "proxy_endpoint",
            proxy is not None,
            detail=proxy.display_endpoint if proxy else "direct egress",
            remedy=f"Set {ENV_PROXY_URL} or {ENV_PROXY_ENDPOINT} to route requests through a proxy.",
            level="info",
        )

    user = os.getenv(ENV_PROXY_USER) or (proxy.username if proxy else None)
    add_check(
        "proxy_credentials",
        bool(proxy and proxy.password),
        detail=f"user {user}" if user else "no proxy credentials",
        remedy=f"Set {ENV_PROXY_USER}/{ENV_PROXY_PASSWORD} or {ENV_PROXY_CREDENTIALS}.",
        level="info",
        value=os.getenv(ENV_PROXY_PASSWORD) or os.getenv(ENV_PROXY_CREDENTIALS),
    )

    parser_ok = _check_parser_available()
    add_check(
        "lxml",
        parser_ok,
        detail="lxml parser available" if parser_ok else "lxml parser missing",
        remedy="pip install lxml",
    )

    for name, parse, minimum in (
        (ENV_TIMEOUT, safe_float, 0.001),
        (ENV_MAX_ROUNDS, safe_int, 1),
        (ENV_CONCURRENCY, safe_int, 0),
    ):
        raw = os.getenv(name)
        if raw is None:
            continue
        parsed = parse(raw)
        add_check(
            name,
            parsed is not None and parsed >= minimum,
            detail=f"parsed as {parsed}" if parsed is not None else "not a number",
            remedy=f"Set {name} to a number >= {minimum}.",
            value=raw,
        )

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Harvester doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("Values are redacted where applicable.")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy:
            lines.append(f"  remedy: {remedy}")
    warnings = report.get("environment_warnings") or []
    if warnings:
        lines.append("")
        lines.append("Environment warnings:")
        for warning in warnings:
            code = warning.get("code", "warning")
            message = warning.get("message", "")
            remedy = warning.get("remedy", "")
            lines.append(f"- {code}: {message}")
            if remedy:
                lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
