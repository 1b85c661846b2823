import pytest

from fakes import listing_page, product_page
from harvester.workflows.errors import ExtractionError, HttpStatusError, MalformedUrlError
from harvester.workflows.extract_utils import (
    attr,
    discover_listing_links,
    normalize_target,
    query,
    scrape_product,
    text,
)
from harvester.workflows.harvest_config import AMAZON, WALMART


def test_query_text_attr_helpers():
    html = '<ul><li class="a b"><a href="/x"> One </a></li><li><a>Two</a></li></ul>'
    links = query(html, "li a")
    assert [text(node) for node in links] == ["One", "Two"]
    assert attr(links[0], "href") == "/x"
    assert attr(links[1], "href") is None
    assert attr(query(html, "li")[0], "class") == "a b"
    assert query(html, "table td") == []


def test_scrape_product_collects_title_and_reviews():
    page = product_page("Gaming Mouse", "Works well", "", "Too small")
    product = scrape_product(page, "https://www.amazon.com/dp/M1", AMAZON)
    assert product.title == "Gaming Mouse"
    assert product.review_texts == ("Works well", "Too small")
    assert product.to_dict()["reviews"] == ["Works well", "Too small"]


def test_scrape_product_without_reviews_is_still_a_product():
    product = scrape_product(product_page("Lonely"), "https://www.amazon.com/dp/L", AMAZON)
    assert product.review_texts == ()


def test_missing_title_is_extraction_error_not_status_error():
    with pytest.raises(ExtractionError) as excinfo:
        scrape_product("<html><body>Enter the characters you see</body></html>", "u", AMAZON)
    assert not isinstance(excinfo.value, HttpStatusError)
    assert excinfo.value.kind == "extraction"
    assert excinfo.value.missing_field == "title"


def test_walmart_profile_title_selector():
    page = '<html><body><h1 itemprop="name">Blender</h1></body></html>'
    assert scrape_product(page, "https://www.walmart.com/ip/1", WALMART).title == "Blender"


def test_normalize_target_resolves_relative_and_absolute():
    base = "https://www.amazon.com"
    assert normalize_target("/dp/B1?ref=x#reviews", base) == "https://www.amazon.com/dp/B1?ref=x"
    assert normalize_target("dp/B2", base) == "https://www.amazon.com/dp/B2"
    assert normalize_target("https://other.example/p", base) == "https://other.example/p"
    assert normalize_target("//cdn.example/p", base) == "https://cdn.example/p"


@pytest.mark.parametrize("href", ["", "   ", "javascript:void(0)", "mailto:x@example.com"])
def test_normalize_target_rejects_malformed(href):
    with pytest.raises(MalformedUrlError):
        normalize_target(href, "https://www.amazon.com")


def test_discover_listing_links_dedupes_and_skips_bad_hrefs():
    html = listing_page(
        "/dp/A",
        "https://www.amazon.com/dp/B",
        "/dp/A",
        "javascript:void(0)",
        "",
    )
    discovery = discover_listing_links(html, AMAZON)
    assert discovery.targets == ["https://www.amazon.com/dp/A", "https://www.amazon.com/dp/B"]
    assert discovery.missing_href == 1
    assert len(discovery.rejected) == 1
    assert discovery.rejected[0].kind == "malformed_url"


def test_discover_listing_links_empty_listing():
    discovery = discover_listing_links("<html><body>No results</body></html>", AMAZON)
    assert discovery.targets == []
    assert discovery.missing_href == 0


def test_normalize_target_follows_rfc_resolution_for_non_origin_base():
    assert normalize_target("ip/3", "https://www.amazon.com/s") == "https://www.amazon.com/ip/3"
    assert normalize_target("item/1", "https://shop.example/c/lamps/") == "https://shop.example/c/lamps/item/1"
    assert normalize_target("?page=2", "https://shop.example/c/lamps") == "https://shop.example/c/lamps?page=2"


def test_discover_listing_links_resolves_against_given_base():
    html = listing_page("item/7")
    discovery = discover_listing_links(html, AMAZON, base_url="https://shop.example/c/lamps")
    assert discovery.targets == ["https://shop.example/c/item/7"]
