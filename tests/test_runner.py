"""End-to-end tests for the crawl runner and the CLI."""

import json

import httpx

from couponfarm.cli import build_parser, main
from couponfarm.scrapers.adapters import GutscheineChipAdapter, WagjagAdapter
from couponfarm.scrapers.context import CrawlRequest, Label
from couponfarm.scrapers.runner import CrawlRunner
from couponfarm.scrapers.store import ApiRecordStore, DatasetStore
from couponfarm.scrapers.utils.hashing import generate_coupon_id

from tests.conftest import next_data_page
from tests.test_adapters import (
    CHIP_URL,
    EXPIRED,
    REVEAL_URL,
    VOUCHERS,
    WAGJAG_LISTING,
    WAGJAG_SITEMAP,
)


def site_client(pages) -> httpx.AsyncClient:
    """HTTP client serving ``pages`` (url -> body or exception) and 404 otherwise."""
    fetched = []

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        fetched.append(url)
        page = pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            return httpx.Response(404)
        return httpx.Response(200, text=page)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client.fetched = fetched
    return client


def make_runner(adapter, api_client, pages, store=None) -> CrawlRunner:
    return CrawlRunner(
        adapter=adapter,
        store=store if store is not None else DatasetStore(),
        api_client=api_client,
        http_client=site_client(pages),
        max_concurrency=2,
        request_delay=0,
    )


# ============================================================================
# TESTS: CRAWL RUNNER
# ============================================================================

class TestCrawlRunner:
    """Tests for CrawlRunner."""

    async def test_listing_with_reveal(self, api_client):
        adapter = GutscheineChipAdapter()
        runner = make_runner(
            adapter,
            api_client,
            {
                CHIP_URL: next_data_page(VOUCHERS, EXPIRED),
                REVEAL_URL: json.dumps({"code": "AMZ5EURO"}),
            },
        )

        stats = await runner.run(adapter.build_start_requests([CHIP_URL]))

        assert stats.requests == 2
        assert stats.failed_requests == 0
        assert stats.candidates == 4
        assert stats.saved == 4
        assert stats.scheduled == 1
        codes = sorted(r.code or "" for r in runner.store.records)
        assert codes == ["", "AMZ5EURO", "OLDCODE1", "SAVE10NOW"]

    async def test_known_coupon_is_not_fetched(self, api_client, fake_api):
        fake_api.known = {generate_coupon_id("Amazon", "102", CHIP_URL)}
        adapter = GutscheineChipAdapter()
        runner = make_runner(adapter, api_client, {CHIP_URL: next_data_page(VOUCHERS)})

        stats = await runner.run(adapter.build_start_requests([CHIP_URL]))

        assert runner.http_client.fetched == [CHIP_URL]
        assert stats.dropped == 1
        assert stats.scheduled == 0

    async def test_records_pushed_to_api_after_run(self, api_client, fake_api):
        adapter = GutscheineChipAdapter()
        store = ApiRecordStore(api_client, batch_size=50)
        runner = make_runner(
            adapter,
            api_client,
            {CHIP_URL: next_data_page([VOUCHERS[0], VOUCHERS[2]])},
            store=store,
        )

        await runner.run(adapter.build_start_requests([CHIP_URL]))

        assert sorted(item["idInSite"] for item in fake_api.items) == ["101", "103"]
        assert store.stats["sent"] == 2

    async def test_sitemap_to_listing(self, api_client):
        adapter = WagjagAdapter()
        runner = make_runner(
            adapter,
            api_client,
            {
                "https://coupons.wagjag.com/stores": WAGJAG_SITEMAP,
                "https://coupons.wagjag.com/stores/acme": WAGJAG_LISTING,
            },
        )

        stats = await runner.run(
            adapter.build_start_requests(["https://coupons.wagjag.com/stores"], test_limit=1)
        )

        assert stats.requests == 2
        assert stats.saved == 2
        assert stats.skipped == 1
        assert runner.http_client.fetched == [
            "https://coupons.wagjag.com/stores",
            "https://coupons.wagjag.com/stores/acme",
        ]

    async def test_transport_failure_is_counted(self, api_client):
        adapter = GutscheineChipAdapter()
        runner = make_runner(
            adapter,
            api_client,
            {CHIP_URL: httpx.ReadError("connection reset")},
        )

        stats = await runner.run(adapter.build_start_requests([CHIP_URL]))

        assert stats.requests == 1
        assert stats.failed_requests == 1
        assert runner.store.records == []

    async def test_malformed_url_does_not_stop_run(self, api_client):
        adapter = GutscheineChipAdapter()
        runner = make_runner(adapter, api_client, {CHIP_URL: next_data_page([VOUCHERS[0]])})
        requests = [CrawlRequest(url="http://[bad"), *adapter.build_start_requests([CHIP_URL])]

        stats = await runner.run(requests)

        assert stats.requests == 2
        assert stats.failed_requests == 1
        assert runner.http_client.fetched == [CHIP_URL]
        assert [r.id_in_site for r in runner.store.records] == ["101"]

    async def test_handler_failure_does_not_stop_run(self, api_client):
        adapter = WagjagAdapter()
        empty_directory = "https://coupons.wagjag.com/stores"
        runner = make_runner(
            adapter,
            api_client,
            {
                empty_directory: "<html><body></body></html>",
                "https://coupons.wagjag.com/stores/acme": WAGJAG_LISTING,
            },
        )
        requests = adapter.build_start_requests([empty_directory])
        requests.append(CrawlRequest(url="https://coupons.wagjag.com/stores/acme", label=Label.LISTING))

        stats = await runner.run(requests)

        assert stats.failed_requests == 1
        assert stats.saved == 2

    async def test_anomalous_page_is_counted(self, api_client):
        adapter = GutscheineChipAdapter()
        runner = make_runner(adapter, api_client, {CHIP_URL: "<html>Captcha</html>"})

        stats = await runner.run(adapter.build_start_requests([CHIP_URL]))

        assert stats.pages_aborted == 1
        assert stats.saved == 0

    async def test_forefront_requests_jump_the_queue(self, api_client):
        runner = make_runner(GutscheineChipAdapter(), api_client, {})

        await runner.enqueue(CrawlRequest(url="https://x.com/a"))
        await runner.enqueue(CrawlRequest(url="https://x.com/b"))
        await runner.enqueue(CrawlRequest(url="https://x.com/code", label=Label.GET_CODE), forefront=True)

        assert [r.url for r in runner._queue] == [
            "https://x.com/code",
            "https://x.com/a",
            "https://x.com/b",
        ]
        await runner.http_client.aclose()


# ============================================================================
# TESTS: CLI
# ============================================================================

class TestCli:
    """Tests for the couponfarm command line."""

    def test_run_arguments(self):
        args = build_parser().parse_args(
            [
                "run",
                "--site", "radins-com",
                "--start-url", "https://www.radins.com/code-promo/fnac",
                "--start-url", "https://www.radins.com/code-promo/darty",
                "--test-limit", "3",
                "--dry-run",
            ]
        )
        assert args.site == "radins-com"
        assert len(args.start_urls) == 2
        assert args.test_limit == 3
        assert args.dry_run is True
        assert args.output is None

    def test_sites_command(self, capsys):
        assert main(["sites"]) == 0
        output = capsys.readouterr().out.split()
        assert "gutscheine-chip-de" in output
        assert "wagjag-com-coupons" in output

    def test_unknown_site(self, capsys):
        assert main(["run", "--site", "nope", "--start-url", "https://x.com"]) == 2
        assert "radins-com" in capsys.readouterr().err
