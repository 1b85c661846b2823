"""Content extraction over fetched markup (BeautifulSoup + lxml, CSS selectors).

The helpers here are synchronous and stateless: given markup and a selector
they return element handles or text. Listing discovery and product scraping
are thin layers over ``query``/``text``/``attr``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..core.keys import K_REVIEWS, K_TITLE, K_URL
from .errors import ExtractionError, MalformedUrlError
from .harvest_config import SiteProfile
from .html_normalize import minimal_text_fix

logger = logging.getLogger(__name__)

Markup = Union[str, BeautifulSoup]


def parse_document(markup: Markup) -> BeautifulSoup:
    if isinstance(markup, BeautifulSoup):
        return markup
    return BeautifulSoup(markup or "", "lxml")


def query(markup: Markup, selector: str) -> List[Tag]:
    """Return the nodes matching ``selector`` in document order."""

    return list(parse_document(markup).select(selector))


def text(node: Tag) -> str:
    return minimal_text_fix("".join(node.strings)).strip()


def attr(node: Tag, name: str) -> Optional[str]:
    value = node.get(name)
    if value is None:
        return None
    if isinstance(value, list):  # multi-valued attributes such as class
        return " ".join(value)
    return str(value)


@dataclass(frozen=True)
class Product:
    source_url: str
    title: str
    review_texts: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_URL: self.source_url,
            K_TITLE: self.title,
            K_REVIEWS: list(self.review_texts),
        }


def scrape_product(markup: Markup, url: str, profile: SiteProfile) -> Product:
    """Build a Product from a detail page; a missing title raises ExtractionError."""

    document = parse_document(markup)
    titles = query(document, profile.title_selector)
    title = text(titles[0]) if titles else ""
    if not title:
        raise ExtractionError(K_TITLE, url=url)
    reviews = []
    for node in query(document, profile.review_selector):
        review = text(node)
        if review:
            reviews.append(review)
    return Product(source_url=url, title=title, review_texts=tuple(reviews))


def normalize_target(href: str, base_url: str) -> str:
    """Resolve ``href`` against ``base_url`` into an absolute http(s) URL."""

    raw = (href or "").strip()
    if not raw:
        raise MalformedUrlError("empty href", url=href)
    resolved = urljoin(base_url, raw)
    parsed = urlparse(resolved)
    if parsed.scheme not in {"http", "https"}:
        raise MalformedUrlError(f"unsupported scheme {parsed.scheme!r}", url=raw)
    if not parsed.hostname:
        raise MalformedUrlError("missing host", url=raw)
    return parsed._replace(fragment="").geturl()


@dataclass
class ListingDiscovery:
    """Targets found on a listing page, plus what was dropped on the way."""

    targets: List[str] = field(default_factory=list)
    rejected: List[MalformedUrlError] = field(default_factory=list)
    missing_href: int = 0


def discover_listing_links(
    markup: Markup,
    profile: SiteProfile,
    base_url: Optional[str] = None,
) -> ListingDiscovery:
    base = base_url or profile.base_url
    discovery = ListingDiscovery()
    seen = set()
    for node in query(markup, profile.listing_selector):
        href = attr(node, "href")
        if href is None or not href.strip():
            discovery.missing_href += 1
            logger.debug("listing anchor without href: %s", text(node)[:80])
            continue
        try:
            target = normalize_target(href, base)
        except MalformedUrlError as exc:
            logger.warning("skipping listing link %r: %s", href, exc.message)
            discovery.rejected.append(exc)
            continue
        if target in seen:
            continue
        seen.add(target)
        discovery.targets.append(target)
    logger.info("%d products found within the listing", len(discovery.targets))
    return discovery


__all__ = [
    "parse_document",
    "query",
    "text",
    "attr",
    "Product",
    "scrape_product",
    "normalize_target",
    "ListingDiscovery",
    "discover_listing_links",
]
