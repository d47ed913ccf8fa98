"""Tests for the bundled site adapters and the adapter factory."""

import json

import pytest

from couponfarm.scrapers.adapters import (
    GutscheineChipAdapter,
    MetroDiscountCodeAdapter,
    RadinsAdapter,
    WagjagAdapter,
)
from couponfarm.scrapers.base import BaseCouponAdapter
from couponfarm.scrapers.context import Label
from couponfarm.scrapers.factory import AdapterFactory, get_adapter_factory, register_all_adapters
from couponfarm.scrapers.orchestrator import PendingRecord
from couponfarm.scrapers.utils.hashing import generate_coupon_id

from tests.conftest import next_data_page


CHIP_URL = "https://gutscheine.chip.de/gutscheine/amazon"
REVEAL_URL = "https://assets.example.com/api/voucher/country/de/client/42/id/pool_102"

VOUCHERS = [
    {
        "idPool": "pool_101",
        "title": "10% auf alles",
        "code": "SAVE10NOW",
        "description": "Gilt für Neukunden",
        "endTime": "2030-01-31T23:59:59Z",
        "exclusiveVoucher": True,
    },
    {"idPool": "pool_102", "title": "5€ Rabatt", "code": "...X7"},
    {"idVoucher": 103, "title": "Gratis Versand", "code": ""},
]
EXPIRED = [{"idPool": "pool_104", "title": "Alter Deal", "code": "OLDCODE1"}]


WAGJAG_SITEMAP = """
<html><body>
<dl class="merchant-list">
  <dd class="merchant-list-item__merchant"><a href="/stores/acme?utm_source=newsletter">Acme</a></dd>
  <dd class="merchant-list-item__merchant"><a href="https://coupons.wagjag.com/stores/globex">Globex</a></dd>
  <dd class="merchant-list-item__merchant"><a>Coming soon</a></dd>
</dl>
</body></html>
"""

WAGJAG_LISTING = """
<html><body>
<ol class="breadcrumb">
  <li><a class="breadcrumb-item__link" href="/">Home</a></li>
  <li><a class="breadcrumb-item__link" href="/stores/acme">Acme Store</a></li>
</ol>
<div class="promotion-list__promotions">
  <div class="promotion" data-promotion-id="501">
    <h3>15% Off Sitewide</h3>
    <div class="btn-peel"><span class="btn-peel__secret">ACME15</span></div>
    <div class="promotion-term-extra-tab__detail-content">
      <p>Valid on full-price items.</p>
      <p>  One per customer. </p>
    </div>
  </div>
  <div class="promotion promotion--expired" data-promotion-id="502">
    <h3>Spring Sale</h3>
  </div>
  <div class="promotion" data-promotion-id="">
    <h3>Broken card</h3>
  </div>
</div>
</body></html>
"""


# ============================================================================
# TESTS: NEXT.JS PUBLISHER PORTALS
# ============================================================================

class TestNextDataAdapter:
    """Tests for NextDataAdapter and its site subclasses."""

    async def test_listing_page(self, make_context, fake_api):
        adapter = GutscheineChipAdapter()
        context = make_context(url=CHIP_URL, body=next_data_page(VOUCHERS, EXPIRED))

        await adapter.handle_listing(context)

        assert context.stats.candidates == 4
        records = {r.id_in_site: r for r in context.store.records}
        assert sorted(records) == ["101", "103", "104"]

        visible = records["101"]
        assert visible.code == "SAVE10NOW"
        assert visible.merchant_name == "Amazon"
        assert visible.domain == "amazon.de"
        assert visible.is_exclusive is True
        assert visible.is_expired is False
        assert visible.expiry_date_at == "2030-01-31T23:59:59"

        assert records["103"].code is None
        assert records["104"].is_expired is True
        assert records["104"].code == "OLDCODE1"

    async def test_masked_code_is_scheduled_for_reveal(self, make_context, fake_api):
        adapter = GutscheineChipAdapter()
        context = make_context(url=CHIP_URL, body=next_data_page(VOUCHERS, EXPIRED))

        await adapter.handle_listing(context)

        assert [request.url for request, _ in context.enqueued] == [REVEAL_URL]
        pending = PendingRecord.from_user_data(context.enqueued[0][0].user_data)
        assert pending.fingerprint == generate_coupon_id("Amazon", "102", CHIP_URL)
        assert fake_api.calls_to("/items/match-ids") == [{"ids": [pending.fingerprint]}]

    async def test_known_masked_code_is_dropped(self, make_context, fake_api):
        fake_api.known = {generate_coupon_id("Amazon", "102", CHIP_URL)}
        context = make_context(url=CHIP_URL, body=next_data_page(VOUCHERS))

        await GutscheineChipAdapter().handle_listing(context)

        assert context.enqueued == []
        assert context.stats.dropped == 1

    async def test_reveal_response(self, make_context):
        adapter = GutscheineChipAdapter()
        listing = make_context(url=CHIP_URL, body=next_data_page(VOUCHERS))
        await adapter.handle_listing(listing)
        follow_up, _ = listing.enqueued[0]

        context = make_context(
            url=follow_up.url,
            body=json.dumps({"code": "AMZ5EURO", "idPool": "pool_102"}),
            label=follow_up.label,
            user_data=follow_up.user_data,
        )
        await adapter.route(context)

        assert len(context.store.records) == 1
        record = context.store.records[0]
        assert record.code == "AMZ5EURO"
        assert record.title == "5€ Rabatt"
        assert record.source_url == CHIP_URL

    async def test_masked_code_without_reveal_url_is_stored(self, make_context):
        retailer = {"name": "Amazon", "merchant_url": "https://www.amazon.de/"}  # No country
        context = make_context(url=CHIP_URL, body=next_data_page([VOUCHERS[1]], retailer=retailer))

        await GutscheineChipAdapter().handle_listing(context)

        assert context.enqueued == []
        assert len(context.store.records) == 1
        assert context.store.records[0].code is None

    async def test_missing_retailer_aborts_page(self, make_context):
        context = make_context(url=CHIP_URL, body=next_data_page(VOUCHERS, retailer={}))

        await GutscheineChipAdapter().handle_listing(context)

        assert context.stats.aborted is True
        assert context.store.records == []

    async def test_page_without_next_data_is_anomaly(self, make_context):
        context = make_context(url=CHIP_URL, body="<html><body>Access denied</body></html>")

        await GutscheineChipAdapter().handle_listing(context)

        assert context.stats.aborted is True
        assert context.stats.candidates == 0

    async def test_untitled_voucher_is_skipped(self, make_context):
        vouchers = [{"idPool": "pool_1", "code": "NOTITLE1"}, VOUCHERS[0]]
        context = make_context(url=CHIP_URL, body=next_data_page(vouchers))

        await MetroDiscountCodeAdapter().handle_listing(context)

        assert context.stats.skipped == 1
        assert len(context.store.records) == 1

    async def test_radins_requires_voucher_cards(self, make_context):
        url = "https://www.radins.com/code-promo/fnac"
        context = make_context(url=url, body=next_data_page([VOUCHERS[0]]))

        await RadinsAdapter().handle_listing(context)

        assert context.stats.aborted is True
        assert context.store.records == []

    async def test_radins_listing_page(self, make_context):
        url = "https://www.radins.com/code-promo/fnac"
        card = '<div data-testid="vouchers-ui-voucher-card"></div>'
        context = make_context(url=url, body=next_data_page([VOUCHERS[0]], extra_html=card))

        await RadinsAdapter().handle_listing(context)

        assert context.stats.aborted is False
        assert [r.code for r in context.store.records] == ["SAVE10NOW"]


# ============================================================================
# TESTS: WAGJAG
# ============================================================================

class TestWagjagAdapter:
    """Tests for WagjagAdapter."""

    def test_start_requests_begin_at_sitemap(self):
        requests = WagjagAdapter().build_start_requests(
            ["https://coupons.wagjag.com/stores"], test_limit=1
        )
        assert requests[0].label == Label.SITEMAP
        assert requests[0].user_data == {"label": Label.SITEMAP.value, "testLimit": 1}
        assert "User-Agent" in requests[0].headers

    async def test_sitemap_enqueues_listing_pages(self, make_context):
        context = make_context(
            url="https://coupons.wagjag.com/stores",
            body=WAGJAG_SITEMAP,
            label=Label.SITEMAP,
            user_data={"label": Label.SITEMAP.value},
        )

        await WagjagAdapter().route(context)

        assert [(r.url, r.label, forefront) for r, forefront in context.enqueued] == [
            ("https://coupons.wagjag.com/stores/acme", Label.LISTING, False),
            ("https://coupons.wagjag.com/stores/globex", Label.LISTING, False),
        ]
        assert context.enqueued[0][0].user_data["label"] == Label.LISTING.value

    async def test_sitemap_test_limit(self, make_context):
        context = make_context(
            url="https://coupons.wagjag.com/stores",
            body=WAGJAG_SITEMAP,
            label=Label.SITEMAP,
            user_data={"label": Label.SITEMAP.value, "testLimit": 1},
        )

        await WagjagAdapter().route(context)

        assert len(context.enqueued) == 1
        assert "testLimit" not in context.enqueued[0][0].user_data

    async def test_listing_page(self, make_context, fake_api):
        context = make_context(url="https://coupons.wagjag.com/stores/acme", body=WAGJAG_LISTING)

        await WagjagAdapter().route(context)

        records = {r.id_in_site: r for r in context.store.records}
        assert sorted(records) == ["501", "502"]
        assert context.stats.skipped == 1

        active = records["501"]
        assert active.merchant_name == "Acme Store"
        assert active.title == "15% Off Sitewide"
        assert active.code == "ACME15"
        assert active.description == "Valid on full-price items.\nOne per customer."
        assert active.is_expired is False

        assert records["502"].is_expired is True
        assert records["502"].code is None
        # Codes are on the page, no existence check needed
        assert fake_api.calls == []

    async def test_directory_page_routed_as_listing_is_aborted(self, make_context):
        context = make_context(url="https://coupons.wagjag.com/stores", body=WAGJAG_SITEMAP)

        await WagjagAdapter().route(context)

        assert context.stats.aborted is True
        assert context.store.records == []


# ============================================================================
# TESTS: FACTORY
# ============================================================================

class TestAdapterFactory:
    """Tests for AdapterFactory."""

    def test_bundled_sites_registered(self):
        factory = AdapterFactory()
        register_all_adapters(factory)
        assert factory.get_registered_sites() == [
            "discountcode-metro-co-uk",
            "gutscheine-chip-de",
            "radins-com",
            "wagjag-com-coupons",
        ]

    def test_created_adapters_share_rate_limiter(self):
        factory = AdapterFactory()
        register_all_adapters(factory)

        chip = factory.create_adapter("gutscheine-chip-de")
        wagjag = factory.create_adapter("wagjag-com-coupons")

        assert isinstance(chip, GutscheineChipAdapter)
        assert chip.rate_limiter is factory.rate_limiter
        assert wagjag.rate_limiter is factory.rate_limiter

    def test_unknown_site_returns_none(self):
        assert AdapterFactory().create_adapter("nope") is None

    def test_register_rejects_non_adapters(self):
        with pytest.raises(ValueError):
            AdapterFactory().register_adapter("bad", dict)

    def test_global_factory_is_cached(self):
        factory = get_adapter_factory()
        assert factory is get_adapter_factory()
        assert factory.has_adapter("radins-com")

    def test_base_adapter_is_abstract(self):
        with pytest.raises(TypeError):
            BaseCouponAdapter()
