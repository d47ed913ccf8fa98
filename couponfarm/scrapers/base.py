"""Base coupon site adapter.

All site-specific scrapers inherit from BaseCouponAdapter. A subclass only
describes its site: which elements are candidates, where the merchant name
lives, and how one candidate maps onto a DataValidator. The base class owns
the sequencing every site must follow:

    classify page -> anomaly check -> extract all candidates
        -> persist coupons with visible codes
        -> batch existence check -> schedule reveals for the rest
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from couponfarm.core.exceptions import AnomalyError, ExtractionError, ScraperError
from couponfarm.scrapers.context import CrawlRequest, Label, PageContext
from couponfarm.scrapers.hooks import (
    AnomalyCheckHandler,
    IndexPageHandler,
    pre_process,
    save_or_skip,
)
from couponfarm.scrapers.orchestrator import CodeRevealOrchestrator
from couponfarm.scrapers.utils.user_agents import build_headers
from couponfarm.scrapers.validator import DataValidator


@dataclass
class MerchantInfo:
    """Merchant details resolved once per listing page."""

    name: str
    domain: Optional[str] = None


@dataclass
class CouponItemResult:
    """One processed candidate.

    needs_reveal is set when the code is hidden and coupon_url points at the
    page (or API) that reveals it.
    """

    fingerprint: str
    validator: DataValidator
    needs_reveal: bool = False
    coupon_url: str = ""


class BaseCouponAdapter(ABC):
    """Abstract base class for all coupon site adapters."""

    site_slug: str = ""  # Must be overridden in subclass (e.g., "savings-com")
    site_name: str = ""

    # Page classification markers, see IndexPageHandler
    index_page_selectors: List[str] = []
    non_index_page_selectors: List[str] = []

    # Label of the requests built from start URLs
    start_label: Label = Label.LISTING

    # Reveal hidden codes with a follow-up request (True) or persist unknown
    # coupons straight from the listing page (False)
    reveal_in_follow_up: bool = True

    custom_headers: Dict[str, str] = {}

    def __init__(self):
        self.rate_limiter = None  # Injected by factory
        self.logger = structlog.get_logger(adapter=self.site_slug)

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    @abstractmethod
    def extract_candidates(self, context: PageContext) -> Sequence[Any]:
        """Return the raw candidate elements (or JSON objects) of a listing page."""
        pass

    @abstractmethod
    def extract_merchant(self, context: PageContext) -> MerchantInfo:
        """Resolve the merchant the listing page is about.

        Raises:
            ExtractionError: If the merchant name cannot be found
        """
        pass

    @abstractmethod
    def process_candidate(
        self, context: PageContext, merchant: MerchantInfo, candidate: Any
    ) -> CouponItemResult:
        """Map one raw candidate onto a validator and fingerprint it.

        Raises:
            ExtractionError: If the candidate lacks a title or id
        """
        pass

    def extract_code(self, context: PageContext) -> Optional[str]:
        """Pull the revealed code out of a follow-up page."""
        return None

    def extract_listing_urls(self, context: PageContext) -> List[str]:
        """Return listing page URLs found on a sitemap page."""
        raise ScraperError(self.site_slug, "adapter does not support sitemap pages")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def build_start_requests(
        self, urls: Iterable[str], test_limit: int = 0, metadata: Optional[Dict[str, Any]] = None
    ) -> List[CrawlRequest]:
        """Build the initial requests for a run.

        Args:
            urls: Start URLs
            test_limit: If positive, cap the number of listing pages a sitemap
                page may enqueue
            metadata: Extra user data carried by every request
        """
        user_data = dict(metadata or {})
        user_data["label"] = self.start_label.value
        if test_limit > 0:
            user_data["testLimit"] = test_limit

        return [
            CrawlRequest(
                url=url,
                label=self.start_label,
                user_data=dict(user_data),
                headers=build_headers(self.custom_headers),
            )
            for url in urls
        ]

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def route(self, context: PageContext) -> None:
        """Dispatch a fetched page to the handler for its label."""
        handlers = {
            Label.SITEMAP: self.handle_sitemap,
            Label.LISTING: self.handle_listing,
            Label.GET_CODE: self.handle_get_code,
        }
        handler = handlers.get(context.request.label)
        if handler is None:
            context.logger.warning("no_handler_for_label")
            return
        await handler(context)

    async def handle_sitemap(self, context: PageContext) -> None:
        urls = self.extract_listing_urls(context)
        if not urls:
            raise ScraperError(self.site_slug, f"no listing links on {context.request.url}")

        test_limit = int(context.request.user_data.get("testLimit") or 0)
        if test_limit > 0 and test_limit < len(urls):
            context.logger.info("sitemap_test_limit", found=len(urls), limit=test_limit)
            urls = urls[:test_limit]

        base_user_data = {k: v for k, v in context.request.user_data.items() if k != "testLimit"}
        for url in urls:
            await context.enqueue(
                CrawlRequest(
                    url=url,
                    label=Label.LISTING,
                    user_data={**base_user_data, "label": Label.LISTING.value},
                    headers=build_headers(self.custom_headers),
                )
            )
        context.logger.info("listing_pages_enqueued", count=len(urls))

    async def handle_listing(self, context: PageContext) -> None:
        """Run the full extraction pipeline for one listing page."""
        candidates = list(self.extract_candidates(context))
        context.stats.candidates = len(candidates)

        try:
            await pre_process(
                context,
                anomaly_check=AnomalyCheckHandler(coupons=candidates, url=context.request.url),
                index_page=IndexPageHandler(
                    index_page_selectors=list(self.index_page_selectors),
                    non_index_page_selectors=list(self.non_index_page_selectors),
                ),
            )
        except AnomalyError:
            return

        try:
            merchant = self.extract_merchant(context)
        except ExtractionError as e:
            context.stats.aborted = True
            context.logger.error("merchant_not_found", error=str(e))
            return

        if not merchant.domain:
            context.logger.warning("merchant_domain_not_found", merchant=merchant.name)

        orchestrator = CodeRevealOrchestrator(context, headers=self.custom_headers)

        for index, candidate in enumerate(candidates, 1):
            try:
                result = self.process_candidate(context, merchant, candidate)
            except ExtractionError as e:
                context.stats.skipped += 1
                context.logger.warning("candidate_skipped", item=index, field=e.field, error=str(e))
                continue

            if result.needs_reveal:
                orchestrator.add(result.fingerprint, result.validator, result.coupon_url)
                continue

            await save_or_skip(context, result.validator)

        if self.reveal_in_follow_up:
            await orchestrator.schedule()
        else:
            await orchestrator.persist_unknown()

        context.logger.info("listing_processed", merchant=merchant.name, **context.stats.as_dict())

    async def handle_get_code(self, context: PageContext) -> None:
        try:
            code = self.extract_code(context)
        except (ValueError, KeyError, TypeError) as e:
            context.logger.warning("code_extraction_failed", error=str(e))
            code = None
        await CodeRevealOrchestrator.reveal(context, code)
