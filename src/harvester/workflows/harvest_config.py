"""Harvester defaults (user agent, headers, site profiles, env var names).

Centralizes static defaults so the fetch and extraction modules have no
embedded magic strings. Callers can build their own SiteProfile or
FetchConfig to override any of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict
from urllib.parse import quote_plus

# Headers
HDR_USER_AGENT = "User-Agent"
HDR_CONTENT_TYPE = "Content-Type"
HDR_ACCEPT_LANGUAGE = "Accept-Language"
HDR_PROXY_AUTHORIZATION = "Proxy-Authorization"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_14_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.2 Safari/605.1.1"
)
DEFAULT_CONTENT_TYPE = "text/html"
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"

# Fetch defaults
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_ROUNDS = 3
DEFAULT_CONCURRENCY = 16
DEFAULT_RETRY_DELAY = 0.0
DEFAULT_SITE = "amazon"
PROXY_SCHEMES = ("http", "https")

# Environment variables
ENV_PROXY_URL = "HARVEST_PROXY_URL"
ENV_PROXY_ENDPOINT = "PROXY_ENDPOINT"
ENV_PROXY_USER = "HARVEST_PROXY_USER"
ENV_PROXY_PASSWORD = "HARVEST_PROXY_PASSWORD"
ENV_PROXY_CREDENTIALS = "HARVEST_PROXY_CREDENTIALS"
ENV_PROXY_DISABLE = "HARVEST_PROXY_DISABLE"
ENV_TIMEOUT = "HARVEST_TIMEOUT"
ENV_MAX_ROUNDS = "HARVEST_MAX_ROUNDS"
ENV_CONCURRENCY = "HARVEST_CONCURRENCY"
ENV_RETRY_DELAY = "HARVEST_RETRY_DELAY"
ENV_POOL_REUSE = "HARVEST_POOL_REUSE"
ENV_USER_AGENT = "HARVEST_USER_AGENT"
ENV_SITE = "HARVEST_SITE"
ENV_KEYWORD = "HARVEST_KEYWORD"


@dataclass(frozen=True)
class SiteProfile:
    """Where to search and which selectors describe a site's markup."""

    name: str
    base_url: str
    search_template: str
    listing_selector: str
    title_selector: str
    review_selector: str

    def search_url(self, keyword: str) -> str:
        return self.search_template.format(keyword=quote_plus(keyword.strip()))


AMAZON = SiteProfile(
    name="amazon",
    base_url="https://www.amazon.com",
    search_template="https://www.amazon.com/s?k={keyword}&ref=nb_sb_noss",
    listing_selector=(
        'div[data-component-type="s-search-result"] div.s-widget-container '
        "a.a-link-normal.s-no-outline"
    ),
    title_selector="span#productTitle",
    review_selector="div.a-section.review div.a-spacing-small.review-data",
)

WALMART = SiteProfile(
    name="walmart",
    base_url="https://www.walmart.com",
    search_template="https://www.walmart.com/search?q={keyword}",
    listing_selector=".pb1-xl a.absolute",
    title_selector='h1#main-title, h1[itemprop="name"]',
    review_selector='[data-testid="enhanced-review-content"] span, div.review-text',
)

SITE_PROFILES: Dict[str, SiteProfile] = {
    AMAZON.name: AMAZON,
    WALMART.name: WALMART,
}
