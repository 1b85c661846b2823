import asyncio
import socket

import pytest
from aiohttp import web
from aiohttp import test_utils

from harvester.workflows.errors import FetchTimeoutError, HttpStatusError, ProxyConnectError
from harvester.workflows.extract_utils import scrape_product
from harvester.workflows.harvest_config import AMAZON
from harvester.workflows.web_fetch import FetchConfig, HttpClient, ProxySettings, fetch_target

PAGE = '<html><body><span id="productTitle">Desk Lamp</span></body></html>'


def _app(seen):
    async def item(request):
        seen.append(request.headers.get("Proxy-Authorization"))
        # No charset on purpose: decoding has to guess.
        return web.Response(body=PAGE.encode("utf-8"), headers={"Content-Type": "text/html"})

    async def missing(request):
        return web.Response(status=404, text="not here")

    async def slow(request):
        await asyncio.sleep(1.0)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_get("/item", item)
    app.router.add_get("/missing", missing)
    app.router.add_get("/slow", slow)
    return app


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_direct_fetch_decodes_page_without_charset():
    seen = []

    async def scenario():
        async with test_utils.TestServer(_app(seen)) as server:
            async with HttpClient(FetchConfig()) as client:
                url = str(server.make_url("/item"))
                outcome = await fetch_target(
                    client, url, extract=lambda body, u: scrape_product(body, u, AMAZON)
                )
                first = await client.fetch(url)
                second = await client.fetch(url)
        return outcome, first, second

    outcome, first, second = asyncio.run(scenario())
    assert outcome.ok, outcome.error
    assert outcome.status == 200
    assert outcome.product.title == "Desk Lamp"
    assert first.body == second.body == PAGE
    assert seen == [None, None, None]


def test_status_and_timeout_mapping():
    async def scenario():
        async with test_utils.TestServer(_app([])) as server:
            async with HttpClient(FetchConfig(timeout=0.2)) as client:
                with pytest.raises(HttpStatusError) as status_exc:
                    await client.fetch(str(server.make_url("/missing")))
                with pytest.raises(FetchTimeoutError):
                    await client.fetch(str(server.make_url("/slow")))
        return status_exc.value

    error = asyncio.run(scenario())
    assert error.code == 404
    assert error.kind == "http_status"


def test_requests_go_through_proxy_with_credentials():
    seen = []

    async def scenario():
        async with test_utils.TestServer(_app(seen)) as server:
            proxy = ProxySettings("http", "127.0.0.1", server.port, username="alice", password="pw")
            async with HttpClient(FetchConfig(proxy=proxy)) as client:
                return await client.fetch("http://shop.invalid/item")

    response = asyncio.run(scenario())
    assert response.status == 200
    assert response.body == PAGE
    assert seen == ["Basic YWxpY2U6cHc="]


def test_unreachable_proxy_is_proxy_connect_error():
    proxy = ProxySettings("http", "127.0.0.1", _free_port())

    async def scenario():
        async with HttpClient(FetchConfig(proxy=proxy, timeout=5)) as client:
            await client.fetch("http://shop.invalid/item")

    with pytest.raises(ProxyConnectError):
        asyncio.run(scenario())


def test_zero_concurrency_leaves_connector_uncapped():
    async def scenario():
        async with HttpClient(FetchConfig(concurrency=0)) as unbounded:
            first = unbounded._session.connector.limit
        async with HttpClient(FetchConfig(concurrency=4)) as capped:
            second = capped._session.connector.limit
        return first, second

    assert asyncio.run(scenario()) == (0, 4)
