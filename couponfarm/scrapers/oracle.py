"""Existence oracle: which fingerprints does the coupon API not know yet?

Revealing a hidden code costs one extra HTTP request per coupon, usually
against a rate-limited endpoint. Before scheduling those requests a page asks
the coupon API, in a single batched call, which of its fingerprints are
already stored and only follows up on the rest.

If the API cannot be reached the oracle fails open: every fingerprint is
reported unknown, so a transient outage costs extra requests, never data.
"""

from typing import Iterable, List, Optional

import httpx
import structlog

from couponfarm.core.exceptions import OracleTransportError
from couponfarm.scrapers.api_client import CouponApiClient

logger = structlog.get_logger(__name__)


def _dedupe(fingerprints: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for fp in fingerprints:
        if fp and fp not in seen:
            seen.add(fp)
            unique.append(fp)
    return unique


class ExistenceOracle:
    """Batched fingerprint lookup against the coupon API."""

    def __init__(self, api_client: CouponApiClient, logger=None):
        self.api_client = api_client
        self.logger = logger or structlog.get_logger(__name__)

    async def lookup_unknown(self, fingerprints: Iterable[str]) -> List[str]:
        """Return fingerprints the API does not know, without fallback.

        Raises:
            OracleTransportError: If the API call or its response is unusable
        """
        ids = _dedupe(fingerprints)
        if not ids:
            return []

        try:
            known_indices = await self.api_client.match_ids(ids)
        except (httpx.HTTPError, ValueError) as e:
            raise OracleTransportError(f"match-ids request failed: {e}") from e

        known = {ids[i] for i in known_indices if 0 <= i < len(ids)}
        return [fp for fp in ids if fp not in known]

    async def filter_unknown(
        self, fingerprints: Iterable[str], source_url: Optional[str] = None
    ) -> List[str]:
        """Return unknown fingerprints, treating all as unknown on failure.

        Args:
            fingerprints: Fingerprints of one page's candidates
            source_url: Page URL, for log context only

        Returns:
            De-duplicated unknown fingerprints in first-seen order
        """
        ids = _dedupe(fingerprints)
        try:
            unknown = await self.lookup_unknown(ids)
        except OracleTransportError as e:
            self.logger.warning(
                "existence_check_failed_open",
                url=source_url,
                count=len(ids),
                error=str(e),
            )
            return ids

        self.logger.info(
            "existence_checked",
            url=source_url,
            checked=len(ids),
            unknown=len(unknown),
        )
        return unknown
