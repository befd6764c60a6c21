"""Tests for the HTTP API (scrape trigger, health, CORS)."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jsonschema import ValidationError, validate

from promowatch.core.exceptions import ConfigurationError
from promowatch.dependencies import get_scrape_service
from promowatch.main import app
from promowatch.scrapers.batch_runner import BatchReport, BatchSummary, ScrapeResult

BATCH_REPORT_SCHEMA = {
    "type": "object",
    "required": ["summary", "results"],
    "additionalProperties": False,
    "properties": {
        "summary": {
            "type": "object",
            "required": ["totalCompetitors", "successful", "failed", "totalPricesSaved"],
            "additionalProperties": False,
            "properties": {
                "totalCompetitors": {"type": "integer", "minimum": 0},
                "successful": {"type": "integer", "minimum": 0},
                "failed": {"type": "integer", "minimum": 0},
                "totalPricesSaved": {"type": "integer", "minimum": 0},
            },
        },
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["competitor", "success", "productsFound"],
                "additionalProperties": False,
                "properties": {
                    "competitor": {"type": "string"},
                    "success": {"type": "boolean"},
                    "productsFound": {"type": "integer", "minimum": 0},
                    "error": {"type": "string"},
                },
            },
        },
    },
}

ERROR_SCHEMA = {
    "type": "object",
    "required": ["success", "error"],
    "properties": {
        "success": {"const": False},
        "error": {"type": "string", "minLength": 1},
    },
}


class FakeScrapeService:
    """Stands in for ScrapeService; returns a canned report or raises."""

    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error
        self.calls = 0

    async def run_batch(self, delay_seconds=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.report


@pytest.fixture
def partial_report():
    results = [
        ScrapeResult(competitor="Market 1", success=True, products_found=2),
        ScrapeResult(competitor="Market 2", success=False, error="Scraper error for Market 2: connection refused"),
        ScrapeResult(competitor="Market 3", success=True, products_found=1),
    ]
    return BatchReport(summary=BatchSummary.from_results(results), results=results)


@pytest.fixture
def use_service():
    """Install a FakeScrapeService as the scrape service dependency."""

    def _install(service):
        app.dependency_overrides[get_scrape_service] = lambda: service
        return service

    yield _install
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ============================================================================
# TESTS: SCRAPE TRIGGER
# ============================================================================

class TestScrapeCompetitors:
    """Tests for POST /api/v1/scrape-competitors."""

    async def test_partial_success_is_200(self, client, use_service, partial_report):
        service = use_service(FakeScrapeService(report=partial_report))

        response = await client.post("/api/v1/scrape-competitors")

        assert response.status_code == 200
        body = response.json()
        validate(instance=body, schema=BATCH_REPORT_SCHEMA)
        assert body["summary"] == {
            "totalCompetitors": 3,
            "successful": 2,
            "failed": 1,
            "totalPricesSaved": 3,
        }
        assert "error" not in body["results"][0]
        assert body["results"][1]["success"] is False
        assert body["results"][1]["error"].endswith("connection refused")
        assert service.calls == 1

    async def test_empty_batch(self, client, use_service):
        use_service(FakeScrapeService(report=BatchReport(summary=BatchSummary.from_results([]))))

        response = await client.post("/api/v1/scrape-competitors")

        assert response.status_code == 200
        assert response.json()["results"] == []

    async def test_fatal_error_is_500(self, client, use_service):
        use_service(FakeScrapeService(error=ConfigurationError("Cannot read competitor list: timeout")))

        response = await client.post("/api/v1/scrape-competitors")

        assert response.status_code == 500
        body = response.json()
        validate(instance=body, schema=ERROR_SCHEMA)
        assert body == {"success": False, "error": "Cannot read competitor list: timeout"}

    async def test_error_body_does_not_match_report_contract(self, client, use_service):
        use_service(FakeScrapeService(error=RuntimeError("boom")))

        response = await client.post("/api/v1/scrape-competitors")

        with pytest.raises(ValidationError):
            validate(instance=response.json(), schema=BATCH_REPORT_SCHEMA)

    async def test_get_is_not_allowed(self, client, use_service):
        use_service(FakeScrapeService(report=BatchReport(summary=BatchSummary.from_results([]))))

        response = await client.get("/api/v1/scrape-competitors")

        assert response.status_code == 405


# ============================================================================
# TESTS: CORS
# ============================================================================

class TestCors:
    """Tests for CORS handling of browser callers."""

    async def test_preflight(self, client):
        response = await client.options(
            "/api/v1/scrape-competitors",
            headers={
                "Origin": "https://admin.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization, x-client-info, apikey, content-type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        allowed = response.headers["access-control-allow-headers"].lower()
        for header in ("authorization", "x-client-info", "apikey", "content-type"):
            assert header in allowed

    async def test_simple_request_gets_cors_header(self, client, use_service, partial_report):
        use_service(FakeScrapeService(report=partial_report))

        response = await client.post(
            "/api/v1/scrape-competitors",
            headers={"Origin": "https://admin.example.com"},
        )

        assert response.headers["access-control-allow-origin"] == "*"


# ============================================================================
# TESTS: HEALTH
# ============================================================================

class TestHealth:
    """Tests for the health and root endpoints."""

    async def test_health(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "ok"
        assert body["status"] == "ok"
        assert body["scheduler"] == "disabled"

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/api/v1/health"
