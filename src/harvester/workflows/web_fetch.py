from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Protocol
from urllib.parse import unquote, urlparse

import aiohttp

from ..core.keys import (
    K_ATTEMPT,
    K_ELAPSED,
    K_ERROR,
    K_ERROR_KIND,
    K_STATUS,
    K_URL,
    K_VERDICT,
)
from .errors import (
    ConfigurationError,
    FetchTimeoutError,
    HarvestError,
    HttpStatusError,
    InternalTaskError,
    MalformedUrlError,
    ProxyConnectError,
)
from .extract_utils import Product
from .harvest_config import (
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_CONCURRENCY,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    ENV_CONCURRENCY,
    ENV_MAX_ROUNDS,
    ENV_POOL_REUSE,
    ENV_PROXY_CREDENTIALS,
    ENV_PROXY_DISABLE,
    ENV_PROXY_ENDPOINT,
    ENV_PROXY_PASSWORD,
    ENV_PROXY_URL,
    ENV_PROXY_USER,
    ENV_RETRY_DELAY,
    ENV_TIMEOUT,
    ENV_USER_AGENT,
    HDR_ACCEPT_LANGUAGE,
    HDR_CONTENT_TYPE,
    HDR_PROXY_AUTHORIZATION,
    HDR_USER_AGENT,
    PROXY_SCHEMES,
)
from .harvest_utils import env_bool, env_float, env_int
from .html_normalize import decode_bytes_auto

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxySettings:
    scheme: str
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    @property
    def proxy_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def display_endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    def proxy_authorization(self) -> Optional[str]:
        """Value for the ``Proxy-Authorization`` header, or None without credentials."""

        if not (self.username or self.password):
            return None
        return aiohttp.BasicAuth(self.username or "", self.password or "").encode()

    @classmethod
    def from_url(
        cls,
        raw_url: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> "ProxySettings":
        """Parse ``scheme://[user:pass@]host:port`` (scheme defaults to http).

        Credentials embedded in the URL take precedence over the keyword ones.
        """

        raw = (raw_url or "").strip()
        if not raw:
            raise ConfigurationError("proxy endpoint is empty")
        parsed = urlparse(raw if "://" in raw else f"http://{raw}")
        scheme = (parsed.scheme or "http").lower()
        if scheme not in PROXY_SCHEMES:
            raise ConfigurationError(f"unsupported proxy scheme {scheme!r} in {raw!r}")
        if not parsed.hostname:
            raise ConfigurationError(f"proxy endpoint {raw!r} has no host")
        try:
            port = parsed.port
        except ValueError as exc:
            raise ConfigurationError(f"proxy endpoint {raw!r} has an invalid port") from exc
        if port is None:
            raise ConfigurationError(f"proxy endpoint {raw!r} has no port")
        if parsed.username:
            username = unquote(parsed.username)
        if parsed.password:
            password = unquote(parsed.password)
        return cls(
            scheme=scheme,
            host=parsed.hostname,
            port=port,
            username=username or None,
            password=password or None,
        )


def load_proxy_from_env() -> Optional[ProxySettings]:
    if env_bool(ENV_PROXY_DISABLE):
        return None
    raw_url = (os.getenv(ENV_PROXY_URL) or os.getenv(ENV_PROXY_ENDPOINT) or "").strip()
    if not raw_url:
        return None

    username = (os.getenv(ENV_PROXY_USER) or "").strip() or None
    password = (os.getenv(ENV_PROXY_PASSWORD) or "").strip() or None
    creds = (os.getenv(ENV_PROXY_CREDENTIALS) or "").strip()
    if creds and ":" in creds and (not username or not password):
        user_part, _, pwd_part = creds.partition(":")
        username = username or user_part
        password = password or pwd_part

    return ProxySettings.from_url(raw_url, username=username, password=password)


@dataclass
class FetchConfig:
    """Configuration for the proxied HTTP client and the retry rounds."""

    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    max_rounds: int = DEFAULT_MAX_ROUNDS
    retry_delay: float = DEFAULT_RETRY_DELAY
    # False closes every connection after use (no idle reuse) so a rotating
    # proxy assigns a fresh egress IP per request.
    pool_reuse: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    content_type: str = DEFAULT_CONTENT_TYPE
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE
    proxy: Optional[ProxySettings] = None

    @classmethod
    def from_env(cls) -> "FetchConfig":
        return cls(
            timeout=env_float(ENV_TIMEOUT, DEFAULT_TIMEOUT),
            concurrency=env_int(ENV_CONCURRENCY, DEFAULT_CONCURRENCY),
            max_rounds=env_int(ENV_MAX_ROUNDS, DEFAULT_MAX_ROUNDS),
            retry_delay=env_float(ENV_RETRY_DELAY, DEFAULT_RETRY_DELAY),
            pool_reuse=env_bool(ENV_POOL_REUSE, False),
            user_agent=os.getenv(ENV_USER_AGENT) or DEFAULT_USER_AGENT,
            proxy=load_proxy_from_env(),
        )

    def validate(self) -> None:
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.max_rounds < 1:
            raise ConfigurationError(f"max_rounds must be at least 1, got {self.max_rounds}")
        if self.concurrency < 0:
            raise ConfigurationError(f"concurrency must be >= 0, got {self.concurrency}")
        if self.retry_delay < 0:
            raise ConfigurationError(f"retry_delay must be >= 0, got {self.retry_delay}")

    def default_headers(self) -> Dict[str, str]:
        return {
            HDR_USER_AGENT: self.user_agent,
            HDR_CONTENT_TYPE: self.content_type,
            HDR_ACCEPT_LANGUAGE: self.accept_language,
        }


@dataclass(frozen=True)
class HttpResponse:
    url: str
    status: int
    body: str


class SupportsFetch(Protocol):
    async def fetch(self, url: str) -> HttpResponse: ...


class HttpClient:
    """Single-attempt proxied GET client over one shared aiohttp session.

    Use as ``async with HttpClient(config) as client``; the session and its
    connection pool are shared by every task of the run and never reconfigured.
    """

    def __init__(self, config: FetchConfig) -> None:
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._proxy_authorization = config.proxy.proxy_authorization() if config.proxy else None

    async def __aenter__(self) -> "HttpClient":
        connector = aiohttp.TCPConnector(
            # aiohttp treats limit=0 as no cap, matching concurrency=0.
            limit=self.config.concurrency,
            force_close=not self.config.pool_reuse,
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            headers=self.config.default_headers(),
            timeout=aiohttp.ClientTimeout(total=self.config.timeout),
        )
        logger.info(
            "http client ready (proxy=%s, timeout=%ss, pool_reuse=%s)",
            self.config.proxy.display_endpoint if self.config.proxy else "none",
            self.config.timeout,
            self.config.pool_reuse,
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(self, url: str) -> HttpResponse:
        if self._session is None:
            raise RuntimeError("HttpClient used outside of its async context")
        request_kwargs: Dict[str, Any] = {}
        if self.config.proxy is not None:
            request_kwargs["proxy"] = self.config.proxy.proxy_url
            if self._proxy_authorization is not None:
                request_kwargs["proxy_headers"] = {HDR_PROXY_AUTHORIZATION: self._proxy_authorization}
        async with self._session.get(url, **request_kwargs) as resp:
            status = resp.status
            if status >= 400:
                raise HttpStatusError(status, url=url)
            raw_bytes = await resp.read()
            body = decode_bytes_auto(raw_bytes, resp.headers)
        return HttpResponse(url=url, status=status, body=body)

    async def fetch(self, url: str) -> HttpResponse:
        try:
            return await self._request(url)
        except HarvestError:
            raise
        except asyncio.TimeoutError as exc:
            raise FetchTimeoutError(f"no response within {self.config.timeout}s", url=url) from exc
        except aiohttp.InvalidURL as exc:
            raise MalformedUrlError(str(exc) or "invalid url", url=url) from exc
        except aiohttp.ClientError as exc:
            raise ProxyConnectError(f"{type(exc).__name__}: {exc}", url=url) from exc


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one fetch attempt on one target; never mutated."""

    target: str
    elapsed: float
    attempt: int = 0
    status: Optional[int] = None
    body: Optional[str] = field(default=None, repr=False, compare=False)
    product: Optional[Product] = None
    error: Optional[HarvestError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            K_URL: self.target,
            K_VERDICT: "ok" if self.ok else "failed",
            K_STATUS: self.status,
            K_ELAPSED: round(self.elapsed, 3),
            K_ATTEMPT: self.attempt,
        }
        if self.product is not None:
            payload.update(self.product.to_dict())
        if self.error is not None:
            payload[K_ERROR_KIND] = self.error.kind
            payload[K_ERROR] = self.error.to_dict()
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


Extractor = Callable[[str, str], Product]
ProgressHook = Callable[[int, int, int, FetchOutcome], None]


async def fetch_target(
    client: SupportsFetch,
    target: str,
    *,
    extract: Optional[Extractor] = None,
    attempt: int = 0,
) -> FetchOutcome:
    """Fetch one target and classify the attempt. Never raises for per-target faults."""

    start = time.perf_counter()
    try:
        response = await client.fetch(target)
    except HarvestError as exc:
        return FetchOutcome(
            target=target,
            elapsed=time.perf_counter() - start,
            attempt=attempt,
            status=getattr(exc, "code", None),
            error=exc,
        )
    except Exception as exc:
        logger.debug("unexpected fetch failure for %s", target, exc_info=True)
        return FetchOutcome(
            target=target,
            elapsed=time.perf_counter() - start,
            attempt=attempt,
            error=InternalTaskError(f"{type(exc).__name__}: {exc}", url=target),
        )
    elapsed = time.perf_counter() - start

    product: Optional[Product] = None
    if extract is not None:
        try:
            product = extract(response.body, target)
        except HarvestError as exc:
            return FetchOutcome(target, elapsed, attempt, response.status, error=exc)
        except Exception as exc:
            logger.debug("unexpected extraction failure for %s", target, exc_info=True)
            error = InternalTaskError(f"{type(exc).__name__}: {exc}", url=target)
            return FetchOutcome(target, elapsed, attempt, response.status, error=error)
    return FetchOutcome(
        target=target,
        elapsed=elapsed,
        attempt=attempt,
        status=response.status,
        body=response.body,
        product=product,
    )


async def run_batch(
    targets: Iterable[str],
    client: SupportsFetch,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    extract: Optional[Extractor] = None,
    attempt: int = 0,
    progress_hook: Optional[ProgressHook] = None,
) -> Dict[str, FetchOutcome]:
    """Fetch every distinct target concurrently; one outcome per target.

    ``concurrency`` caps in-flight fetches (0 means unbounded). The call
    returns only after every task has finished.
    """

    unique = list(dict.fromkeys(targets))
    if not unique:
        return {}
    semaphore = asyncio.Semaphore(concurrency) if concurrency > 0 else None
    total = len(unique)
    completed = 0

    async def _run_one(target: str) -> FetchOutcome:
        nonlocal completed
        if semaphore is None:
            outcome = await fetch_target(client, target, extract=extract, attempt=attempt)
        else:
            async with semaphore:
                outcome = await fetch_target(client, target, extract=extract, attempt=attempt)
        completed += 1
        if progress_hook is not None:
            try:
                progress_hook(attempt, completed, total, outcome)
            except Exception:
                logger.debug("progress hook failed", exc_info=True)
        return outcome

    tasks: Dict[asyncio.Task, str] = {asyncio.create_task(_run_one(target)): target for target in unique}
    try:
        await asyncio.wait(tasks)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    outcomes: Dict[str, FetchOutcome] = {}
    for task, target in tasks.items():
        if task.cancelled():
            outcomes[target] = FetchOutcome(
                target, 0.0, attempt, error=InternalTaskError("task cancelled", url=target)
            )
            continue
        exc = task.exception()
        if exc is not None:
            outcomes[target] = FetchOutcome(
                target, 0.0, attempt, error=InternalTaskError(f"{type(exc).__name__}: {exc}", url=target)
            )
            continue
        outcomes[target] = task.result()
    return outcomes


def write_results(outcomes: Iterable[FetchOutcome], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as fh:
        for outcome in outcomes:
            fh.write(outcome.to_json() + "\n")


__all__ = [
    "ProxySettings",
    "load_proxy_from_env",
    "FetchConfig",
    "HttpResponse",
    "HttpClient",
    "FetchOutcome",
    "fetch_target",
    "run_batch",
    "write_results",
]
