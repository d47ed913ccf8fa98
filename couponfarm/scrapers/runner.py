"""Crawl runner: fetch pages and feed them to a site adapter.

This is deliberately small. It exists so an adapter can run end to end
from the CLI: a request queue with forefront insertion (reveal requests jump
the line), a fixed pool of asyncio workers, per-domain rate limiting and
retried httpx fetches. Every request is handled to completion or logged as
failed; nothing a single page does can stop the run.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, fields
from typing import Deque, Dict, Iterable, Optional

import httpx
import structlog

from couponfarm.config import settings
from couponfarm.scrapers.anomaly import AnomalyGuard
from couponfarm.scrapers.api_client import CouponApiClient
from couponfarm.scrapers.base import BaseCouponAdapter
from couponfarm.scrapers.context import CrawlRequest, Label, PageContext, PageStats
from couponfarm.scrapers.oracle import ExistenceOracle
from couponfarm.scrapers.store import RecordStore
from couponfarm.scrapers.utils.rate_limiter import DomainRateLimiter
from couponfarm.scrapers.utils.retry import http_retry

logger = structlog.get_logger(__name__)


@dataclass
class RunStats:
    """Totals for one run."""

    requests: int = 0
    failed_requests: int = 0
    pages_aborted: int = 0
    candidates: int = 0
    saved: int = 0
    failed: int = 0
    skipped: int = 0
    scheduled: int = 0
    dropped: int = 0

    def add_page(self, page: PageStats) -> None:
        self.candidates += page.candidates
        self.saved += page.saved
        self.failed += page.failed
        self.skipped += page.skipped
        self.scheduled += page.scheduled
        self.dropped += page.dropped
        if page.aborted:
            self.pages_aborted += 1

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class CrawlRunner:
    """Runs one adapter over a set of start requests.

    Args:
        adapter: Site adapter whose handlers process the pages
        store: Destination for finalized records
        api_client: Coupon API client shared by the oracle and anomaly guard
        http_client: Client used for page fetches (created if omitted)
        max_concurrency: Number of worker tasks
        request_delay: Seconds to wait before each reveal request
    """

    def __init__(
        self,
        adapter: BaseCouponAdapter,
        store: RecordStore,
        api_client: CouponApiClient,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        anomaly_guard: Optional[AnomalyGuard] = None,
        oracle: Optional[ExistenceOracle] = None,
        max_concurrency: Optional[int] = None,
        request_delay: Optional[float] = None,
    ):
        self.adapter = adapter
        self.store = store
        self.api_client = api_client
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            follow_redirects=True,
        )
        self.rate_limiter = rate_limiter or adapter.rate_limiter or DomainRateLimiter()
        self.anomaly_guard = anomaly_guard or AnomalyGuard(api_client=api_client)
        self.oracle = oracle or ExistenceOracle(api_client)
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENCY
        self.request_delay = settings.REQUEST_DELAY_SECONDS if request_delay is None else request_delay

        self.stats = RunStats()
        self._queue: Deque[CrawlRequest] = deque()
        self._active = 0
        self._cond = asyncio.Condition()
        self.logger = logger.bind(site=adapter.site_slug)

    async def enqueue(self, request: CrawlRequest, forefront: bool = False) -> None:
        async with self._cond:
            if forefront:
                self._queue.appendleft(request)
            else:
                self._queue.append(request)
            self._cond.notify()

    async def run(self, start_requests: Iterable[CrawlRequest]) -> RunStats:
        """Process start requests and everything they enqueue.

        Returns:
            Aggregated RunStats
        """
        for request in start_requests:
            self._queue.append(request)

        self.logger.info("run_started", start_requests=len(self._queue))

        try:
            workers = [
                asyncio.create_task(self._worker(), name=f"worker-{i}")
                for i in range(self.max_concurrency)
            ]
            results = await asyncio.gather(*workers, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self.logger.error("worker_crashed", error=str(result), exc_info=result)
        finally:
            await self.store.flush()
            if self._owns_http_client:
                await self.http_client.aclose()

        self.logger.info(
            "run_complete",
            rate_limit_wait=round(self.rate_limiter.total_wait(), 2),
            **self.stats.as_dict(),
        )
        return self.stats

    async def _worker(self) -> None:
        while True:
            async with self._cond:
                while not self._queue and self._active > 0:
                    await self._cond.wait()
                if not self._queue:
                    self._cond.notify_all()
                    return
                request = self._queue.popleft()
                self._active += 1

            try:
                await self._process(request)
            finally:
                async with self._cond:
                    self._active -= 1
                    self._cond.notify_all()

    @http_retry
    async def _fetch(self, request: CrawlRequest) -> str:
        await self.rate_limiter.acquire(request.url)

        response = await self.http_client.request(
            request.method,
            request.url,
            headers=request.headers or None,
        )
        response.raise_for_status()
        return response.text

    async def _process(self, request: CrawlRequest) -> None:
        self.stats.requests += 1

        if request.label == Label.GET_CODE and self.request_delay > 0:
            await asyncio.sleep(self.request_delay)

        try:
            body = await self._fetch(request)
        except httpx.HTTPError as e:
            self.stats.failed_requests += 1
            self.logger.error(
                "request_failed",
                url=request.url,
                label=request.label.value,
                error=str(e),
            )
            return
        except Exception as e:
            # Malformed URLs fail before any I/O; count them like any other failed request
            self.stats.failed_requests += 1
            self.logger.error(
                "request_failed",
                url=request.url,
                label=request.label.value,
                error=str(e),
                exc_info=True,
            )
            return

        context = PageContext(
            request=request,
            body=body,
            enqueue=self.enqueue,
            store=self.store,
            anomaly_guard=self.anomaly_guard,
            oracle=self.oracle,
            logger=self.logger,
        )

        try:
            await self.adapter.route(context)
        except Exception as e:
            # Failed-request handler: log and move on, the run must finish
            self.stats.failed_requests += 1
            self.logger.error(
                "request_handler_failed",
                url=request.url,
                label=request.label.value,
                error=str(e),
                exc_info=True,
            )
        finally:
            self.stats.add_page(context.stats)
