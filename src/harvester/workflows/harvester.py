"""Pipeline entrypoint: listing discovery followed by bounded-retry product harvesting."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .extract_utils import ListingDiscovery, discover_listing_links, scrape_product
from .harvest_config import DEFAULT_SITE, ENV_KEYWORD, ENV_SITE, SITE_PROFILES, SiteProfile
from .metrics import BatchSummary, summarize
from .retry import BatchResult, RetryOrchestrator
from .web_fetch import FetchConfig, HttpClient, ProgressHook

load_dotenv(override=False)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[FetchConfig], Any]


@dataclass(frozen=True, slots=True)
class HarvestPolicy:
    """What to harvest: a site profile plus a search keyword or explicit listing URL."""

    profile: SiteProfile
    keyword: Optional[str] = None
    listing_url: Optional[str] = None

    def resolve_listing_url(self) -> str:
        if self.listing_url and self.listing_url.strip():
            url = self.listing_url.strip()
            if not url.lower().startswith(("http://", "https://")):
                raise ConfigurationError(f"listing url must be http(s): {url!r}")
            return url
        if not self.keyword or not self.keyword.strip():
            raise ConfigurationError("a search keyword or a listing url is required")
        return self.profile.search_url(self.keyword)


def resolve_policy(
    site: Optional[str] = None,
    keyword: Optional[str] = None,
    listing_url: Optional[str] = None,
) -> HarvestPolicy:
    """Build a policy from explicit values, falling back to the environment."""

    name = (site or os.getenv(ENV_SITE) or DEFAULT_SITE).strip().lower()
    profile = SITE_PROFILES.get(name)
    if profile is None:
        known = ", ".join(sorted(SITE_PROFILES))
        raise ConfigurationError(f"unknown site {name!r} (known: {known})")
    policy = HarvestPolicy(
        profile=profile,
        keyword=keyword if keyword is not None else os.getenv(ENV_KEYWORD),
        listing_url=listing_url,
    )
    policy.resolve_listing_url()
    return policy


@dataclass(slots=True)
class HarvestResult:
    """Outcome payload returned to the CLI and report writers."""

    listing_url: str
    discovery: ListingDiscovery
    batch: BatchResult
    summary: BatchSummary


async def harvest(
    policy: HarvestPolicy,
    config: FetchConfig,
    *,
    client_factory: ClientFactory = HttpClient,
    progress_hook: Optional[ProgressHook] = None,
) -> HarvestResult:
    """Fetch the listing, discover targets, then harvest them in retry rounds.

    Configuration is validated before any request. A failed listing fetch
    raises its HarvestError since there is nothing to fan out over.
    """

    config.validate()
    listing_url = policy.resolve_listing_url()
    async with client_factory(config) as client:
        logger.info("Paginating %s", listing_url)
        listing = await client.fetch(listing_url)
        discovery = discover_listing_links(listing.body, policy.profile, base_url=listing_url)
        orchestrator = RetryOrchestrator(
            client,
            max_rounds=config.max_rounds,
            concurrency=config.concurrency,
            retry_delay=config.retry_delay,
            extract=partial(scrape_product, profile=policy.profile),
            progress_hook=progress_hook,
        )
        batch = await orchestrator.run(discovery.targets)
    return HarvestResult(
        listing_url=listing_url,
        discovery=discovery,
        batch=batch,
        summary=summarize(batch),
    )


def run_harvest_pipeline(
    policy: HarvestPolicy,
    config: FetchConfig,
    *,
    client_factory: ClientFactory = HttpClient,
    progress_hook: Optional[ProgressHook] = None,
) -> HarvestResult:
    """Blocking wrapper used by the CLI."""

    return asyncio.run(
        harvest(policy, config, client_factory=client_factory, progress_hook=progress_hook)
    )


__all__ = [
    "HarvestPolicy",
    "HarvestResult",
    "resolve_policy",
    "harvest",
    "run_harvest_pipeline",
]
