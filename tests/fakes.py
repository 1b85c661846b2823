"""In-memory stand-ins for the proxied HTTP client."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List, Union

from harvester.workflows.web_fetch import HttpResponse

Step = Union[str, BaseException]


class ScriptedClient:
    """Replays a per-URL script: each call consumes the next step.

    A ``str`` step is returned as a 200 body, an exception is raised. The last
    step repeats once the script is exhausted.
    """

    def __init__(self, scripts: Dict[str, List[Step]], delay: float = 0.0) -> None:
        self.scripts = {url: list(steps) for url, steps in scripts.items()}
        self.calls: Dict[str, int] = defaultdict(int)
        self.delay = delay
        self.in_flight = 0
        self.peak_in_flight = 0

    async def fetch(self, url: str) -> HttpResponse:
        self.calls[url] += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            steps = self.scripts[url]
            step = steps.pop(0) if len(steps) > 1 else steps[0]
            if isinstance(step, BaseException):
                raise step
            return HttpResponse(url=url, status=200, body=step)
        finally:
            self.in_flight -= 1

    async def __aenter__(self) -> "ScriptedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None


def product_page(title: str, *reviews: str) -> str:
    review_html = "".join(
        f'<div class="a-section review"><div class="a-spacing-small review-data">{r}</div></div>'
        for r in reviews
    )
    return f'<html><body><span id="productTitle"> {title} </span>{review_html}</body></html>'


def listing_page(*hrefs: str) -> str:
    cards = "".join(
        '<div data-component-type="s-search-result"><div class="s-widget-container">'
        f'<a class="a-link-normal s-no-outline" href="{href}">item</a></div></div>'
        for href in hrefs
    )
    return f"<html><body>{cards}</body></html>"
