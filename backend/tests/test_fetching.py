"""Tests for the fetch layer, Store API pagination, crawler and rate limiting."""

import httpx
import pytest

from promowatch.core.exceptions import FetchError
from promowatch.scrapers.crawler import SiteCrawler, normalize_link, same_origin
from promowatch.scrapers.extractors.store_api import (
    fetch_store_api_products,
    parse_store_api_product,
    store_api_url,
)
from promowatch.scrapers.fetcher import CachingFetcher, HttpFetcher
from promowatch.scrapers.utils.rate_limiter import DomainRateLimiter, TokenBucket

SHOP = "https://shop.example.ba"
STORE_API = f"{SHOP}/wp-json/wc/store/v1/products"


def store_product(name, price, regular=None, sku="", minor_unit=2):
    return {
        "id": 1,
        "name": name,
        "sku": sku,
        "prices": {
            "price": price,
            "regular_price": regular or price,
            "sale_price": price,
            "currency_code": "BAM",
            "currency_minor_unit": minor_unit,
        },
        "brands": [{"id": 1, "name": "Zlatna"}],
        "categories": [{"id": 7, "name": "Kafa"}],
    }


def json_response(data, status_code=200):
    return httpx.Response(status_code, json=data)


# ============================================================================
# TESTS: HTTP FETCHER
# ============================================================================

class TestHttpFetcher:
    """Tests for HttpFetcher."""

    async def test_success(self, make_fetcher, html):
        fetcher = make_fetcher({f"{SHOP}/akcije": html("<p>ok</p>")})

        result = await fetcher.fetch(f"{SHOP}/akcije", params={"page": 2})

        assert result.status_code == 200
        assert result.text == "<p>ok</p>"
        assert result.content_type.startswith("text/html")
        assert fetcher.routes.urls() == [f"{SHOP}/akcije?page=2"]

    async def test_browser_headers_sent(self, make_fetcher, html):
        fetcher = make_fetcher({f"{SHOP}/": html("ok")})

        await fetcher.fetch(f"{SHOP}/")

        request = fetcher.routes.requests[0]
        assert request.headers["user-agent"].startswith("Mozilla/5.0")
        assert "bs" in request.headers["accept-language"]

    async def test_non_2xx_raises_fetch_error(self, make_fetcher, html):
        fetcher = make_fetcher({f"{SHOP}/": html("boom", status_code=503)})

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(f"{SHOP}/")

        assert exc_info.value.status_code == 503
        assert exc_info.value.url == f"{SHOP}/"
        assert "HTTP 503" in exc_info.value.message

    async def test_network_error_raises_fetch_error(self, make_fetcher):
        fetcher = make_fetcher({f"{SHOP}/": httpx.ConnectError("connection refused")})

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(f"{SHOP}/")

        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.message

    async def test_rate_limiter_is_acquired_per_domain(self, make_fetcher, html):
        class RecordingLimiter:
            def __init__(self):
                self.domains = []

            async def acquire(self, domain, tokens=1.0):
                self.domains.append(domain)

        fetcher = make_fetcher({f"{SHOP}/": html("ok")})
        fetcher.rate_limiter = RecordingLimiter()

        await fetcher.fetch(f"{SHOP}/")

        assert fetcher.rate_limiter.domains == ["shop.example.ba"]

    async def test_owned_client_is_closed(self):
        async with HttpFetcher(timeout=1.0) as fetcher:
            client = fetcher.client
        assert client.is_closed


class TestCachingFetcher:
    """Tests for per-competitor response memoization."""

    async def test_results_are_memoized(self, make_fetcher, html):
        inner = make_fetcher({f"{SHOP}/": html("ok")})
        fetcher = CachingFetcher(inner)

        first = await fetcher.fetch(f"{SHOP}/")
        second = await fetcher.fetch(f"{SHOP}/")

        assert first is second
        assert len(inner.routes.requests) == 1

    async def test_params_are_part_of_the_key(self, make_fetcher, html):
        inner = make_fetcher({f"{SHOP}/": html("ok")})
        fetcher = CachingFetcher(inner)

        await fetcher.fetch(f"{SHOP}/", params={"page": 1})
        await fetcher.fetch(f"{SHOP}/", params={"page": 2})

        assert len(inner.routes.requests) == 2

    async def test_failures_are_memoized(self, make_fetcher):
        inner = make_fetcher({})
        fetcher = CachingFetcher(inner)

        for _ in range(2):
            with pytest.raises(FetchError):
                await fetcher.fetch(f"{SHOP}/missing")

        assert len(inner.routes.requests) == 1


# ============================================================================
# TESTS: STORE API
# ============================================================================

class TestStoreApi:
    """Tests for Store API pagination and mapping."""

    def test_store_api_url(self):
        assert store_api_url(f"{SHOP}/akcije?sort=new") == STORE_API
        assert store_api_url("ftp://shop.example.ba") is None
        assert store_api_url("") is None

    def test_minor_unit_scaling_and_ean(self):
        candidate = parse_store_api_product(
            store_product("Kafa Zlatna", "899", regular="1099", sku="3870000000011")
        )

        assert candidate.name == "Kafa Zlatna"
        assert candidate.promo_price == 8.99
        assert candidate.regular_price == 10.99
        assert candidate.currency == "BAM"
        assert candidate.ean == "3870000000011"
        assert candidate.brand == "Zlatna"
        assert candidate.category == "Kafa"
        assert candidate.source == "store_api"

    def test_non_numeric_sku_is_not_an_ean(self):
        candidate = parse_store_api_product(store_product("Kafa", "500", sku="KAFA-200"))
        assert candidate.ean is None

    def test_empty_sale_price_uses_current_price(self):
        item = store_product("Caj", "250")
        item["prices"]["sale_price"] = "0"

        assert parse_store_api_product(item).promo_price == 2.5

    async def test_pages_until_short_page(self, make_fetcher):
        pages = {
            "1": [store_product("A", "100"), store_product("B", "200")],
            "2": [store_product("C", "300")],
        }

        def handler(request):
            return json_response(pages[request.url.params["page"]])

        fetcher = make_fetcher({STORE_API: handler})

        candidates = await fetch_store_api_products(fetcher, f"{SHOP}/", page_size=2, max_pages=5)

        assert [c.name for c in candidates] == ["A", "B", "C"]
        assert len(fetcher.routes.requests) == 2
        assert fetcher.routes.requests[0].url.params["per_page"] == "2"

    async def test_max_pages_cap(self, make_fetcher):
        fetcher = make_fetcher({
            STORE_API: lambda request: json_response([store_product("A", "100")]),
        })

        candidates = await fetch_store_api_products(fetcher, SHOP, page_size=1, max_pages=3)

        assert len(candidates) == 3
        assert len(fetcher.routes.requests) == 3

    async def test_first_page_failure_raises(self, make_fetcher):
        fetcher = make_fetcher({})

        with pytest.raises(FetchError):
            await fetch_store_api_products(fetcher, SHOP)

    async def test_later_page_failure_keeps_collected(self, make_fetcher):
        def handler(request):
            if request.url.params["page"] == "1":
                return json_response([store_product("A", "100"), store_product("B", "200")])
            return json_response({"code": "error"}, status_code=500)

        fetcher = make_fetcher({STORE_API: handler})

        candidates = await fetch_store_api_products(fetcher, SHOP, page_size=2, max_pages=5)

        assert [c.name for c in candidates] == ["A", "B"]

    async def test_non_json_body_yields_nothing(self, make_fetcher, html):
        fetcher = make_fetcher({STORE_API: html("<html>Not a shop API</html>")})

        assert await fetch_store_api_products(fetcher, SHOP) == []

    async def test_non_list_payload_yields_nothing(self, make_fetcher):
        fetcher = make_fetcher({STORE_API: json_response({"code": "rest_no_route"})})

        assert await fetch_store_api_products(fetcher, SHOP) == []


# ============================================================================
# TESTS: CRAWLER
# ============================================================================

def page(*links, body=""):
    anchors = "".join(f'<a href="{link}">link</a>' for link in links)
    return f"<html><body>{body}{anchors}</body></html>"


class TestLinkHelpers:
    """Tests for link normalization and origin checks."""

    @pytest.mark.parametrize("href,expected", [
        ("/akcije#top", f"{SHOP}/akcije"),
        ("proizvodi?page=2", f"{SHOP}/katalog/proizvodi?page=2"),
        ("#top", None),
        ("mailto:info@shop.example.ba", None),
        ("javascript:void(0)", None),
        ("/images/letak.PDF", None),
        ("", None),
        (None, None),
    ])
    def test_normalize_link(self, href, expected):
        assert normalize_link(f"{SHOP}/katalog/", href) == expected

    def test_same_origin(self):
        assert same_origin(f"{SHOP}/a", "https://SHOP.example.ba/b")
        assert not same_origin(f"{SHOP}/a", "http://shop.example.ba/a")
        assert not same_origin(f"{SHOP}/a", "https://cdn.example.ba/a")


class TestSiteCrawler:
    """Tests for the bounded breadth-first crawler."""

    async def test_collects_candidates_from_pages(self, make_fetcher, html):
        card = '<article><h3>Sok 1L</h3><span>1,49 KM</span></article>'
        fetcher = make_fetcher({
            f"{SHOP}/": html(page("/akcije")),
            f"{SHOP}/akcije": html(page(body=card)),
        })

        candidates = await SiteCrawler(fetcher, max_pages=5, max_queue=10).crawl(f"{SHOP}/")

        assert [c.name for c in candidates] == ["Sok 1L"]

    async def test_page_cap_and_promo_links_first(self, make_fetcher, html):
        fetcher = make_fetcher({
            f"{SHOP}/": html(page("/o-nama", "/kontakt", "/akcije")),
            f"{SHOP}/akcije": html(page()),
            f"{SHOP}/o-nama": html(page()),
            f"{SHOP}/kontakt": html(page()),
        })

        await SiteCrawler(fetcher, max_pages=2, max_queue=10).crawl(f"{SHOP}/")

        assert fetcher.routes.urls() == [f"{SHOP}/", f"{SHOP}/akcije"]

    async def test_only_same_origin_links_are_followed(self, make_fetcher, html):
        fetcher = make_fetcher({
            f"{SHOP}/": html(page("https://other.example.com/akcije", "/logo.png", "/ponuda")),
            f"{SHOP}/ponuda": html(page()),
        })

        await SiteCrawler(fetcher, max_pages=10, max_queue=10).crawl(f"{SHOP}/")

        assert fetcher.routes.urls() == [f"{SHOP}/", f"{SHOP}/ponuda"]

    async def test_redirected_entry_page_sets_the_origin(self, make_fetcher, html):
        card = '<article><h3>Sok 1L</h3><span>1,49 KM</span></article>'
        fetcher = make_fetcher({
            "https://shop.ba/": httpx.Response(301, headers={"location": "https://www.shop.ba/"}),
            "https://www.shop.ba/": html(page("https://www.shop.ba/akcije", "/")),
            "https://www.shop.ba/akcije": html(page(body=card)),
        })

        candidates = await SiteCrawler(fetcher, max_pages=5, max_queue=10).crawl("https://shop.ba/")

        assert [c.name for c in candidates] == ["Sok 1L"]
        assert fetcher.routes.urls() == [
            "https://shop.ba/",
            "https://www.shop.ba/",
            "https://www.shop.ba/akcije",
        ]

    async def test_fetch_result_carries_the_final_url(self, make_fetcher, html):
        fetcher = make_fetcher({
            f"{SHOP}/": httpx.Response(302, headers={"location": f"{SHOP}/akcije"}),
            f"{SHOP}/akcije": html("<p>ok</p>"),
        })

        result = await fetcher.fetch(f"{SHOP}/")

        assert result.url == f"{SHOP}/akcije"
        assert result.text == "<p>ok</p>"

    async def test_queue_cap_counts_the_entry_page(self, make_fetcher, html):
        fetcher = make_fetcher({
            f"{SHOP}/": html(page("/a", "/b", "/c")),
            f"{SHOP}/a": html(page()),
            f"{SHOP}/b": html(page()),
        })

        await SiteCrawler(fetcher, max_pages=10, max_queue=2).crawl(f"{SHOP}/")

        assert fetcher.routes.urls() == [f"{SHOP}/", f"{SHOP}/a"]

    async def test_entry_page_failure_raises(self, make_fetcher):
        fetcher = make_fetcher({})

        with pytest.raises(FetchError):
            await SiteCrawler(fetcher).crawl(f"{SHOP}/")

    async def test_inner_page_failure_is_skipped(self, make_fetcher, html):
        card = '<article><h3>Sok 1L</h3><span>1,49 KM</span></article>'
        fetcher = make_fetcher({
            f"{SHOP}/": html(page("/broken", "/akcije", body=card)),
            f"{SHOP}/akcije": html(page()),
        })

        candidates = await SiteCrawler(fetcher, max_pages=5, max_queue=10).crawl(f"{SHOP}/")

        assert len(candidates) == 1
        assert f"{SHOP}/broken" in fetcher.routes.urls()

    async def test_renderer_replaces_plain_fetch(self, make_fetcher):
        class Renderer:
            def __init__(self):
                self.urls = []

            async def fetch_rendered_html(self, url):
                self.urls.append(url)
                return page(body='<article><h3>Rendered</h3><span>2,00 KM</span></article>')

        fetcher = make_fetcher({})
        renderer = Renderer()

        candidates = await SiteCrawler(fetcher, renderer=renderer).crawl(f"{SHOP}/")

        assert [c.name for c in candidates] == ["Rendered"]
        assert renderer.urls == [f"{SHOP}/"]
        assert fetcher.routes.requests == []

    async def test_renderer_failure_becomes_fetch_error(self, make_fetcher):
        class BrokenRenderer:
            async def fetch_rendered_html(self, url):
                raise RuntimeError("browser crashed")

        with pytest.raises(FetchError) as exc_info:
            await SiteCrawler(make_fetcher({}), renderer=BrokenRenderer()).crawl(f"{SHOP}/")

        assert "browser crashed" in exc_info.value.message


# ============================================================================
# TESTS: RATE LIMITING
# ============================================================================

class TestRateLimiter:
    """Tests for the token bucket and per-domain limiter."""

    async def test_bucket_allows_burst_up_to_capacity(self):
        bucket = TokenBucket(rate=1.0, capacity=2.0)

        await bucket.acquire()
        await bucket.acquire()

        assert bucket.tokens < 1.0

    async def test_bucket_waits_for_refill(self):
        bucket = TokenBucket(rate=100.0, capacity=1.0)

        await bucket.acquire()
        await bucket.acquire()

        assert bucket.tokens < 1.0

    async def test_default_rate(self):
        limiter = DomainRateLimiter()

        await limiter.acquire("shop.example.ba")

        bucket = limiter._buckets["shop.example.ba"]
        assert bucket.rate * 60 == pytest.approx(30.0)
        assert bucket.capacity == pytest.approx(3.0)

    async def test_domains_have_separate_buckets(self):
        limiter = DomainRateLimiter(default_rpm=60)

        await limiter.acquire("a.example.ba")
        await limiter.acquire("b.example.ba")

        assert set(limiter._buckets) == {"a.example.ba", "b.example.ba"}

