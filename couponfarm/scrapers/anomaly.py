"""Anomaly guard: refuse to process pages that did not render what we expect.

A bot-blocked response, a changed template or a misrouted URL usually shows
up as a page with zero candidates, or as a page that carries the markers of
some other page type. Such pages are aborted before any field extraction or
network call, so a false positive costs a skipped page, never bad data.
"""

from typing import Iterable, Optional, Sequence, Union

import httpx
import structlog
from bs4 import BeautifulSoup

from couponfarm.config import settings
from couponfarm.core.exceptions import AnomalyError
from couponfarm.scrapers.api_client import CouponApiClient

logger = structlog.get_logger(__name__)


Candidates = Union[int, Sequence]


def _as_soup(page: Union[str, bytes, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    if isinstance(page, bytes):
        page = page.decode("utf-8", errors="replace")
    return BeautifulSoup(page or "", "lxml")


class AnomalyGuard:
    """Page-level sanity checks run before extraction.

    Args:
        api_client: Coupon API client for the remote baseline check
        remote: Consult the API's anomaly detector (defaults to settings)
        min_candidates: Fewest candidates a listing page may yield
    """

    def __init__(
        self,
        api_client: Optional[CouponApiClient] = None,
        remote: Optional[bool] = None,
        min_candidates: int = 1,
        logger=None,
    ):
        self.api_client = api_client
        self.remote = settings.ANOMALY_CHECK_REMOTE if remote is None else remote
        self.min_candidates = min_candidates
        self.logger = logger or structlog.get_logger(__name__)

    def check_page_type(
        self,
        page: Union[str, bytes, BeautifulSoup],
        url: str,
        index_page_selectors: Iterable[str] = (),
        non_index_page_selectors: Iterable[str] = (),
    ) -> None:
        """Verify the page is the listing page the handler was routed for.

        Every selector in ``index_page_selectors`` must match and none of
        ``non_index_page_selectors`` may match.

        Raises:
            AnomalyError: If the page looks like a different page type
        """
        index_page_selectors = list(index_page_selectors or [])
        non_index_page_selectors = list(non_index_page_selectors or [])
        if not index_page_selectors and not non_index_page_selectors:
            return

        soup = _as_soup(page)

        missing = [s for s in index_page_selectors if soup.select_one(s) is None]
        if missing:
            self.logger.error("index_selectors_missing", url=url, selectors=missing)
            raise AnomalyError(url, f"index page selectors missing: {', '.join(missing)}")

        present = [s for s in non_index_page_selectors if soup.select_one(s) is not None]
        if present:
            self.logger.error("non_index_selectors_present", url=url, selectors=present)
            raise AnomalyError(url, f"non-index page selectors present: {', '.join(present)}")

    async def check_candidates(self, url: str, candidates: Candidates) -> None:
        """Verify the page produced a sane number of candidates.

        Args:
            url: Page URL, also sent to the remote detector
            candidates: Candidate list (or its length)

        Raises:
            AnomalyError: If too few candidates were found or the coupon API
                reports the count as anomalous
        """
        count = candidates if isinstance(candidates, int) else len(candidates)

        if count < self.min_candidates:
            self.logger.error("coupons_anomaly_detected", url=url, count=count, reason="too_few")
            raise AnomalyError(url, f"found {count} candidates, expected at least {self.min_candidates}")

        if not (self.remote and self.api_client):
            return

        try:
            anomaly_type = await self.api_client.detect_anomaly(url, count)
        except (httpx.HTTPError, ValueError) as e:
            self.logger.error("anomaly_detector_unavailable", url=url, error=str(e))
            return

        if anomaly_type:
            self.logger.error(
                "coupons_anomaly_detected", url=url, count=count, reason=anomaly_type
            )
            raise AnomalyError(url, f"coupon API reported {anomaly_type}")
