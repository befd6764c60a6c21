"""Tests for per-competitor strategy selection and fallback."""

import httpx
import pytest

from promowatch.core.exceptions import ScraperError
from promowatch.scrapers.base import CompetitorConfig, SourceType
from promowatch.scrapers.extractors import pdf as pdf_module
from promowatch.scrapers.orchestrator import StrategyOrchestrator, strategy_order

SHOP = "https://shop.example.ba"
STORE_API = f"{SHOP}/wp-json/wc/store/v1/products"
FEED = "https://feed.example.ba/cijene"


def competitor(source_type, base_url=f"{SHOP}/", **config):
    return CompetitorConfig.from_row({
        "id": "c-1",
        "name": "Market",
        "base_url": base_url,
        "source_type": source_type,
        "config_json": config,
    })


def text_response(body, content_type):
    return httpx.Response(200, text=body, headers={"content-type": content_type})


# ============================================================================
# TESTS: STRATEGY ORDER
# ============================================================================

class TestStrategyOrder:
    """Tests for the fallback order."""

    def test_declared_type_first(self):
        assert strategy_order(SourceType.PDF) == [
            SourceType.PDF, SourceType.HTML, SourceType.JSON, SourceType.CSV, SourceType.IMAGE,
        ]

    def test_api_runs_as_json(self):
        assert strategy_order(SourceType.API) == [
            SourceType.JSON, SourceType.HTML, SourceType.CSV, SourceType.PDF, SourceType.IMAGE,
        ]

    def test_html_order(self):
        assert strategy_order(SourceType.HTML)[0] == SourceType.HTML
        assert len(strategy_order(SourceType.HTML)) == 5

    def test_unknown_source_type_is_html(self):
        assert competitor("gopher").source_type == SourceType.HTML


# ============================================================================
# TESTS: ORCHESTRATOR
# ============================================================================

class TestStrategyOrchestrator:
    """Tests for StrategyOrchestrator.scrape."""

    async def test_store_api_short_circuit(self, make_fetcher):
        fetcher = make_fetcher({
            STORE_API: httpx.Response(200, json=[
                {
                    "name": "Kafa Zlatna 200g",
                    "sku": "3870000000011",
                    "prices": {
                        "price": "899",
                        "regular_price": "1099",
                        "sale_price": "899",
                        "currency_code": "BAM",
                        "currency_minor_unit": 2,
                    },
                },
            ]),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("html"))

        assert len(products) == 1
        assert products[0].promo_price == 8.99
        assert products[0].regular_price == 10.99
        assert products[0].ean == "3870000000011"
        assert fetcher.routes.urls() == [f"{STORE_API}?per_page=100&page=1"]

    async def test_empty_store_api_falls_through_to_html(self, make_fetcher, html):
        fetcher = make_fetcher({
            STORE_API: httpx.Response(200, json=[]),
            f"{SHOP}/": html('<article><h3>Sok 1L</h3><span>1,49 KM</span></article>'),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("html"))

        assert [p.name for p in products] == ["Sok 1L"]

    async def test_store_api_not_tried_for_feeds(self, make_fetcher):
        fetcher = make_fetcher({
            FEED: text_response("name,price\nMlijeko,1.99", "text/csv"),
        })

        await StrategyOrchestrator(fetcher).scrape(competitor("csv", FEED))

        assert all("wp-json" not in url for url in fetcher.routes.urls())

    async def test_csv_competitor(self, make_fetcher):
        fetcher = make_fetcher({
            FEED: text_response("name,price\nMlijeko,1.99\nHljeb,0.89", "text/csv"),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("csv", FEED))

        assert [(p.name, p.promo_price) for p in products] == [("Mlijeko", 1.99), ("Hljeb", 0.89)]
        # Every strategy reuses the single cached download
        assert fetcher.routes.urls() == [FEED]

    async def test_wrong_declared_type_falls_back(self, make_fetcher, html):
        fetcher = make_fetcher({
            FEED: html('<div class="product"><h2>Jogurt</h2><p>0,79 KM</p></div>'),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("json", FEED))

        assert [p.name for p in products] == ["Jogurt"]

    async def test_candidates_from_several_strategies_are_pooled(self, make_fetcher):
        body = (
            '{"items": [{"name": "Kruh", "price": "1.10"}],'
            ' "html": "<article><h3>Mlijeko</h3><span>1,99 KM</span></article>"}'
        )
        fetcher = make_fetcher({
            FEED: text_response(body, "application/json"),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("api", FEED))

        assert [p.name for p in products] == ["Kruh", "Mlijeko"]

    async def test_pdf_competitor(self, make_fetcher, monkeypatch):
        monkeypatch.setattr(
            pdf_module,
            "read_pdf_text",
            lambda data: "Vrijedi 01.03.2025 - 07.03.2025\nMlijeko 1L\n1,99 KM\nHljeb\n0,89 KM",
        )
        fetcher = make_fetcher({
            f"{FEED}.pdf": httpx.Response(
                200,
                content=b"%PDF-1.4 leaflet",
                headers={"content-type": "application/pdf"},
            ),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("pdf", f"{FEED}.pdf"))

        assert [p.name for p in products] == ["Mlijeko 1L", "Hljeb"]
        assert products[0].promo_end_date == "2025-03-07"

    async def test_duplicates_across_pages_are_merged(self, make_fetcher, html):
        card = '<article><h3>Sok 1L</h3><span>1,49 KM</span></article>'
        fetcher = make_fetcher({
            f"{SHOP}/": html(card + '<a href="/akcije">Akcije</a>'),
            f"{SHOP}/akcije": html(card),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("html"))

        assert len(products) == 1

    async def test_everything_failing_raises_scraper_error(self, make_fetcher):
        fetcher = make_fetcher({
            STORE_API: httpx.ConnectError("connection refused"),
            f"{SHOP}/": httpx.ConnectError("connection refused"),
        })

        with pytest.raises(ScraperError) as exc_info:
            await StrategyOrchestrator(fetcher).scrape(competitor("html"))

        assert exc_info.value.competitor == "Market"
        assert "connection refused" in exc_info.value.message

    async def test_reachable_source_without_products_is_empty(self, make_fetcher, html):
        fetcher = make_fetcher({
            FEED: html("<html><body><p>Uskoro nove akcije</p></body></html>"),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("json", FEED))

        assert products == []

    async def test_invalid_candidates_are_dropped(self, make_fetcher):
        fetcher = make_fetcher({
            FEED: text_response("name,price\nMlijeko,1.99\n,0.89\nHljeb,abc\nSir,-2", "text/csv"),
        })

        products = await StrategyOrchestrator(fetcher).scrape(competitor("csv", FEED))

        assert [p.name for p in products] == ["Mlijeko"]
