"""Command-line runner for site adapters.

Usage:
    # List bundled site adapters
    couponfarm sites

    # Scrape listing pages and send records to the coupon API
    couponfarm run --site gutscheine-chip-de --start-url https://gutscheine.chip.de/amazon

    # Start from a sitemap page, only follow the first 5 merchants
    couponfarm run --site wagjag-com-coupons --start-url https://coupons.wagjag.com/stores --test-limit 5

    # Dry run: keep records in memory (optionally dump JSON lines) instead of posting
    couponfarm run --site radins-com --start-url https://www.radins.com/code-promo/fnac --dry-run --output out.jsonl
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from couponfarm.config import settings
from couponfarm.logging_config import configure_logging
from couponfarm.scrapers.api_client import CouponApiClient
from couponfarm.scrapers.factory import get_adapter_factory
from couponfarm.scrapers.runner import CrawlRunner, RunStats
from couponfarm.scrapers.store import ApiRecordStore, DatasetStore

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="couponfarm",
        description="Run coupon site scrapers and forward results to the coupon API.",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sites", help="List registered site adapters")

    run = subparsers.add_parser("run", help="Scrape one site")
    run.add_argument("--site", required=True, help="Site slug (see `couponfarm sites`)")
    run.add_argument(
        "--start-url",
        dest="start_urls",
        action="append",
        required=True,
        help="Start URL; repeat for several pages",
    )
    run.add_argument(
        "--test-limit",
        type=int,
        default=0,
        help="Follow at most N listing pages from a sitemap page",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not send records to the coupon API",
    )
    run.add_argument("--output", default=None, help="Write records as JSON lines (dry run only)")
    run.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help=f"Worker count (default: {settings.MAX_CONCURRENCY})",
    )
    return parser


def print_summary(site: str, stats: RunStats, dry_run: bool) -> None:
    mode_label = "[DRY RUN] " if dry_run else ""
    print("\n" + "=" * 50)
    print(f"  {mode_label}{site}")
    print("=" * 50)
    for name, value in stats.as_dict().items():
        print(f"  {name:<18} {value:>8}")
    print("=" * 50)


async def run_site(
    site: str,
    start_urls: List[str],
    test_limit: int = 0,
    dry_run: bool = False,
    output: Optional[str] = None,
    concurrency: Optional[int] = None,
) -> RunStats:
    """Run one site adapter over the given start URLs.

    Raises:
        ValueError: If no adapter is registered for ``site``
    """
    adapter = get_adapter_factory().create_adapter(site)
    if adapter is None:
        raise ValueError(f"No adapter registered for site: {site}")

    logger.info("site_run_requested", site=site, environment=settings.ENVIRONMENT, dry_run=dry_run)

    async with CouponApiClient() as api_client:
        store = DatasetStore(output) if dry_run else ApiRecordStore(api_client)
        runner = CrawlRunner(
            adapter=adapter,
            store=store,
            api_client=api_client,
            max_concurrency=concurrency,
        )
        return await runner.run(adapter.build_start_requests(start_urls, test_limit=test_limit))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    factory = get_adapter_factory()

    if args.command == "sites":
        for slug in factory.get_registered_sites():
            print(slug)
        return 0

    if not factory.has_adapter(args.site):
        print(f"Unknown site '{args.site}'. Available sites:", file=sys.stderr)
        for slug in factory.get_registered_sites():
            print(f"  - {slug}", file=sys.stderr)
        return 2

    stats = asyncio.run(
        run_site(
            site=args.site,
            start_urls=args.start_urls,
            test_limit=args.test_limit,
            dry_run=args.dry_run,
            output=args.output,
            concurrency=args.concurrency,
        )
    )
    print_summary(args.site, stats, args.dry_run)
    # Per-page failures are reported, never turned into a failing exit code
    return 0


if __name__ == "__main__":
    sys.exit(main())
