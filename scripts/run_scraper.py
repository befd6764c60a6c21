"""Manual batch runner for testing competitor scraping configurations.

Runs one scraping batch and prints the JSON report. With a competitors
file and --dry-run, nothing touches the database and the scraped records
are printed as well.

Usage:
    python scripts/run_scraper.py
    python scripts/run_scraper.py --competitors-file competitors.json --dry-run
    python scripts/run_scraper.py --competitors-file competitors.json --dry-run --limit 5
"""

import argparse
import asyncio
import json
import os
import sys

# Add backend to path so we can import promowatch modules without installing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from promowatch.core.exceptions import PromoWatchException
from promowatch.core.logging import configure_logging
from promowatch.db.session import async_session_factory, engine
from promowatch.models import Base
from promowatch.services.competitor_service import FileCompetitorSource
from promowatch.services.price_service import InMemoryPriceStore
from promowatch.services.scrape_service import ScrapeService, run_batch


async def run_dry(competitors_file: str, limit: int, delay: float) -> int:
    """Scrape competitors from a JSON file without persistence."""
    store = InMemoryPriceStore()
    report = await run_batch(FileCompetitorSource(competitors_file), store, delay_seconds=delay)

    output = report.to_dict()
    output["records"] = {
        name: records[:limit] for name, records in store.records.items()
    }
    print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    return 0 if report.summary.failed == 0 else 1


async def run_db(delay: float) -> int:
    """Scrape active competitors from the database and persist the prices."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        async with async_session_factory() as session:
            report = await ScrapeService(session).run_batch(delay_seconds=delay)
    finally:
        await engine.dispose()

    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return 0 if report.summary.failed == 0 else 1


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run one competitor promo price scraping batch",
    )
    parser.add_argument(
        "--competitors-file",
        help="JSON file with a list of competitor rows (id, name, base_url, source_type, config_json)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write to the database (requires --competitors-file)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Records to print per competitor in dry-run mode (default: 10)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between competitors (default: COMPETITOR_DELAY_SECONDS)",
    )

    args = parser.parse_args()

    if args.dry_run and not args.competitors_file:
        parser.error("--dry-run requires --competitors-file")
    if args.competitors_file and not args.dry_run:
        parser.error("--competitors-file is only supported together with --dry-run")

    configure_logging()

    try:
        if args.dry_run:
            return asyncio.run(run_dry(args.competitors_file, args.limit, args.delay))
        return asyncio.run(run_db(args.delay))
    except PromoWatchException as e:
        print(f"\nError: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
