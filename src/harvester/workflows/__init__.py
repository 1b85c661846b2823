"""High-level exports for the harvest workflows."""

from .errors import (
    ConfigurationError,
    ExtractionError,
    FetchTimeoutError,
    HarvestError,
    HttpStatusError,
    InternalTaskError,
    MalformedUrlError,
    ProxyConnectError,
)
from .extract_utils import Product, discover_listing_links, scrape_product
from .harvester import HarvestPolicy, HarvestResult, resolve_policy, run_harvest_pipeline
from .metrics import BatchSummary, summarize
from .retry import BatchResult, RetryOrchestrator, Round, TerminalState
from .web_fetch import (
    FetchConfig,
    FetchOutcome,
    HttpClient,
    ProxySettings,
    fetch_target,
    run_batch,
    write_results,
)

__all__ = [
    "ConfigurationError",
    "ExtractionError",
    "FetchTimeoutError",
    "HarvestError",
    "HttpStatusError",
    "InternalTaskError",
    "MalformedUrlError",
    "ProxyConnectError",
    "Product",
    "discover_listing_links",
    "scrape_product",
    "HarvestPolicy",
    "HarvestResult",
    "resolve_policy",
    "run_harvest_pipeline",
    "BatchSummary",
    "summarize",
    "BatchResult",
    "RetryOrchestrator",
    "Round",
    "TerminalState",
    "FetchConfig",
    "FetchOutcome",
    "HttpClient",
    "ProxySettings",
    "fetch_target",
    "run_batch",
    "write_results",
]
