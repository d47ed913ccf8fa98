"""HTTP client for the central coupon API.

The scrapers talk to three endpoints:

    POST /items/match-ids         {"ids": [...]}                  -> [index, ...]
    POST /items/anomaly-detector  {"sourceUrl", "couponsCount"}   -> {"anomalyType": str | null}
    POST /items                   {"items": [record, ...]}        -> {"received": N, ...}

match-ids answers with the indices (into the submitted list) of ids that are
already stored.
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from couponfarm.config import settings
from couponfarm.scrapers.utils.retry import api_retry

logger = structlog.get_logger(__name__)

MATCH_IDS_ENDPOINT = "/items/match-ids"
ANOMALY_ENDPOINT = "/items/anomaly-detector"
ITEMS_ENDPOINT = "/items"


class CouponApiClient:
    """Thin async wrapper around the coupon API.

    An httpx.AsyncClient can be injected (tests pass one built on
    httpx.MockTransport); otherwise one is created and owned by this object.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.COUPON_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.COUPON_API_KEY
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS
        )
        self.logger = logger.bind(service="coupon_api")

    async def __aenter__(self) -> "CouponApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    @api_retry
    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        response = await self.http_client.post(
            self.base_url + endpoint,
            json=payload,
            headers=self._headers(),
        )
        response.raise_for_status()
        return response.json()

    async def match_ids(self, ids: Sequence[str]) -> List[int]:
        """Return indices into ``ids`` of fingerprints the API already knows.

        Raises:
            httpx.HTTPError: On transport or HTTP status failures
            ValueError: If the response body is not a list of indices
        """
        data = await self._post(MATCH_IDS_ENDPOINT, {"ids": list(ids)})
        if not isinstance(data, list):
            raise ValueError(f"Unexpected match-ids response: {type(data).__name__}")
        try:
            return [int(index) for index in data]
        except TypeError as e:
            raise ValueError(f"Unexpected match-ids index: {e}") from e

    async def detect_anomaly(self, source_url: str, coupons_count: int) -> Optional[str]:
        """Ask the API whether a page's candidate count deviates from history.

        Returns:
            The anomaly type reported by the API, or None
        """
        data = await self._post(
            ANOMALY_ENDPOINT,
            {"sourceUrl": source_url, "couponsCount": coupons_count},
        )
        if isinstance(data, dict):
            return data.get("anomalyType") or None
        return None

    async def push_items(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Send finalized records to the API.

        Returns:
            The API's stats payload (may be empty)
        """
        data = await self._post(ITEMS_ENDPOINT, {"items": items})
        return data if isinstance(data, dict) else {}
