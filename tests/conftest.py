"""Pytest configuration and shared fixtures."""

import json
from typing import Any, Dict, Iterable, List, Optional

import httpx
import pytest
import pytest_asyncio
import structlog

from couponfarm.core.exceptions import ExtractionError
from couponfarm.scrapers.anomaly import AnomalyGuard
from couponfarm.scrapers.api_client import CouponApiClient
from couponfarm.scrapers.base import BaseCouponAdapter, CouponItemResult, MerchantInfo
from couponfarm.scrapers.context import CrawlRequest, Label, PageContext
from couponfarm.scrapers.oracle import ExistenceOracle
from couponfarm.scrapers.store import DatasetStore
from couponfarm.scrapers.utils.hashing import generate_hash
from couponfarm.scrapers.utils.normalizer import get_merchant_domain_from_url
from couponfarm.scrapers.validator import DataValidator


API_BASE_URL = "http://coupon-api.test"


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo configure_logging() so no test logs into another test's captured stream."""
    yield
    structlog.reset_defaults()


# ============================================================================
# FAKE COUPON API
# ============================================================================

class FakeCouponApi:
    """In-memory stand-in for the coupon API, served through httpx.MockTransport."""

    def __init__(self):
        self.known: set = set()
        self.anomaly_type: Optional[str] = None
        self.match_ids_status = 200
        self.match_ids_body: Optional[bytes] = None  # Raw override
        self.calls: List[tuple] = []
        self.items: List[Dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content or b"{}")
        path = request.url.path
        self.calls.append((path, payload))

        if path == "/items/match-ids":
            if self.match_ids_status != 200:
                return httpx.Response(self.match_ids_status, json={"error": "unavailable"})
            if self.match_ids_body is not None:
                return httpx.Response(200, content=self.match_ids_body)
            return httpx.Response(
                200, json=[i for i, fp in enumerate(payload["ids"]) if fp in self.known]
            )

        if path == "/items/anomaly-detector":
            return httpx.Response(200, json={"anomalyType": self.anomaly_type})

        if path == "/items":
            self.items.extend(payload["items"])
            return httpx.Response(200, json={"received": len(payload["items"])})

        return httpx.Response(404)

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [payload for p, payload in self.calls if p == path]


@pytest.fixture
def fake_api() -> FakeCouponApi:
    return FakeCouponApi()


@pytest_asyncio.fixture
async def api_client(fake_api: FakeCouponApi):
    """CouponApiClient wired to the fake API."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    client = CouponApiClient(base_url=API_BASE_URL, api_key="test-key", http_client=http_client)
    yield client
    await http_client.aclose()


# ============================================================================
# PAGE CONTEXTS
# ============================================================================

@pytest.fixture
def make_context(api_client: CouponApiClient):
    """Build PageContexts whose enqueued requests are recorded on ``context.enqueued``."""

    def _make(
        url: str = "https://coupons.example.com/stores/acme.com",
        body: str = "",
        label: Label = Label.LISTING,
        user_data: Optional[Dict[str, Any]] = None,
        store=None,
        remote_anomaly: bool = False,
    ) -> PageContext:
        enqueued = []

        async def enqueue(request: CrawlRequest, forefront: bool = False) -> None:
            enqueued.append((request, forefront))

        context = PageContext(
            request=CrawlRequest(url=url, label=label, user_data=dict(user_data or {})),
            body=body,
            enqueue=enqueue,
            store=store if store is not None else DatasetStore(),
            anomaly_guard=AnomalyGuard(api_client=api_client, remote=remote_anomaly),
            oracle=ExistenceOracle(api_client),
        )
        context.enqueued = enqueued
        return context

    return _make


# ============================================================================
# STUB ADAPTER
# ============================================================================

class StubAdapter(BaseCouponAdapter):
    """Adapter over a JSON body: {"merchant": str, "coupons": [...]}.

    A coupon with "revealUrl" needs a follow-up request for its code.
    """

    site_slug = "stub-site"
    site_name = "Stub"

    def extract_candidates(self, context: PageContext):
        return context.json().get("coupons", [])

    def extract_merchant(self, context: PageContext) -> MerchantInfo:
        name = context.json().get("merchant")
        if not name:
            raise ExtractionError("merchantName")
        return MerchantInfo(name=name, domain=get_merchant_domain_from_url(context.request.url))

    def process_candidate(self, context, merchant, candidate) -> CouponItemResult:
        if not candidate.get("idInSite"):
            raise ExtractionError("idInSite")

        validator = DataValidator()
        validator.add_value("sourceUrl", context.request.url)
        validator.add_value("merchantName", merchant.name)
        validator.add_value("title", candidate.get("title"))
        validator.add_value("idInSite", candidate["idInSite"])
        validator.add_value("domain", merchant.domain)

        fingerprint = generate_hash(merchant.name, candidate.get("title") or "", context.request.url)

        if candidate.get("revealUrl"):
            return CouponItemResult(
                fingerprint=fingerprint,
                validator=validator,
                needs_reveal=True,
                coupon_url=candidate["revealUrl"],
            )

        validator.add_value("code", candidate.get("code"))
        return CouponItemResult(fingerprint=fingerprint, validator=validator)

    def extract_code(self, context: PageContext):
        return context.json().get("code")


@pytest.fixture
def stub_adapter() -> StubAdapter:
    return StubAdapter()


def stub_body(merchant: Optional[str], coupons: Iterable[Dict[str, Any]]) -> str:
    return json.dumps({"merchant": merchant, "coupons": list(coupons)})


# ============================================================================
# HTML FIXTURES
# ============================================================================

def next_data_page(
    vouchers: Iterable[Dict[str, Any]],
    expired: Iterable[Dict[str, Any]] = (),
    retailer: Optional[Dict[str, Any]] = None,
    client_id: str = "42",
    assets_base_url: str = "https://assets.example.com",
    extra_html: str = "",
) -> str:
    """Render a merchant page of the Next.js publisher template."""
    if retailer is None:
        retailer = {"name": "Amazon", "merchant_url": "https://www.amazon.de/", "country": "de"}
    next_data = {
        "query": {"clientId": client_id},
        "props": {
            "pageProps": {
                "retailer": retailer,
                "assetsBaseUrl": assets_base_url,
                "vouchers": list(vouchers),
                "expiredVouchers": list(expired),
            }
        },
    }
    return (
        "<html><head></head><body>"
        f"{extra_html}"
        '<script id="__NEXT_DATA__" type="application/json">'
        f"{json.dumps(next_data)}"
        "</script></body></html>"
    )
