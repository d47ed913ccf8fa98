"""Adapter for publisher coupon portals built on the shared Next.js template.

A family of news-publisher voucher sites (gutscheine.chip.de, radins.com,
discountcode.metro.co.uk, ...) run the same white-label Next.js frontend.
Every merchant page embeds its full voucher list in the ``__NEXT_DATA__``
script tag. Codes that are fully visible are stored straight away; masked
codes ("...X7" or a short teaser) are revealed through the site's voucher
API, one JSON request per coupon.
"""

import json
from typing import Any, Dict, List, Optional

from couponfarm.core.exceptions import ExtractionError
from couponfarm.scrapers.base import BaseCouponAdapter, CouponItemResult, MerchantInfo
from couponfarm.scrapers.context import PageContext
from couponfarm.scrapers.utils.hashing import generate_coupon_id
from couponfarm.scrapers.utils.normalizer import (
    check_voucher_code,
    format_datetime,
    get_merchant_domain_from_url,
)
from couponfarm.scrapers.validator import DataValidator


NEXT_DATA_KEY = "next_data"


class NextDataAdapter(BaseCouponAdapter):
    """Voucher listing pages rendered from ``__NEXT_DATA__`` JSON."""

    site_slug = "next-data"
    site_name = "Next.js publisher portal"

    index_page_selectors: List[str] = []
    non_index_page_selectors: List[str] = []

    def _next_data(self, context: PageContext) -> Dict[str, Any]:
        """Parse (once per page) the __NEXT_DATA__ payload."""
        if NEXT_DATA_KEY not in context.page_data:
            data: Dict[str, Any] = {}
            script = context.soup.find("script", id="__NEXT_DATA__")
            if script and script.string:
                try:
                    data = json.loads(script.string)
                except ValueError as e:
                    context.logger.warning("next_data_invalid", error=str(e))
            context.page_data[NEXT_DATA_KEY] = data
        return context.page_data[NEXT_DATA_KEY]

    def _page_props(self, context: PageContext) -> Dict[str, Any]:
        return (self._next_data(context).get("props") or {}).get("pageProps") or {}

    def extract_candidates(self, context: PageContext) -> List[Dict[str, Any]]:
        page_props = self._page_props(context)
        active = [dict(v, is_expired=False) for v in page_props.get("vouchers") or []]
        expired = [dict(v, is_expired=True) for v in page_props.get("expiredVouchers") or []]

        context.logger.info("vouchers_found", active=len(active), expired=len(expired))
        return active + expired

    def extract_merchant(self, context: PageContext) -> MerchantInfo:
        retailer = self._page_props(context).get("retailer")
        if not retailer or not retailer.get("name"):
            raise ExtractionError("merchantName", "retailer data is missing in __NEXT_DATA__")

        return MerchantInfo(
            name=retailer["name"].strip(),
            domain=get_merchant_domain_from_url(retailer.get("merchant_url")),
        )

    @staticmethod
    def _id_in_site(item: Dict[str, Any]) -> Optional[str]:
        id_pool = item.get("idPool")
        if isinstance(id_pool, str) and "_" in id_pool:
            return id_pool.split("_")[1] or None
        value = item.get("idVoucher") or item.get("idInSite")
        return str(value) if value not in (None, "") else None

    def _reveal_url(self, context: PageContext, item: Dict[str, Any]) -> Optional[str]:
        next_data = self._next_data(context)
        page_props = self._page_props(context)
        try:
            retailer_id = next_data["query"]["clientId"]
            country = page_props["retailer"]["country"]
            assets_base_url = page_props["assetsBaseUrl"].rstrip("/")
            id_pool = item["idPool"]
        except (KeyError, TypeError, AttributeError):
            return None
        return f"{assets_base_url}/api/voucher/country/{country}/client/{retailer_id}/id/{id_pool}"

    def process_candidate(
        self, context: PageContext, merchant: MerchantInfo, candidate: Dict[str, Any]
    ) -> CouponItemResult:
        title = (candidate.get("title") or "").strip()
        if not title:
            raise ExtractionError("title")

        id_in_site = self._id_in_site(candidate)
        if not id_in_site:
            raise ExtractionError("idInSite")

        source_url = context.request.url

        validator = DataValidator(logger=context.logger)
        validator.add_value("sourceUrl", source_url)
        validator.add_value("merchantName", merchant.name)
        validator.add_value("title", title)
        validator.add_value("idInSite", id_in_site)

        validator.add_value("domain", merchant.domain)
        validator.add_value("description", candidate.get("description"))
        validator.add_value("termsAndConditions", candidate.get("termsAndConditions"))
        validator.add_value("expiryDateAt", format_datetime(candidate.get("endTime")))
        validator.add_value("startDateAt", format_datetime(candidate.get("startTime")))
        validator.add_value("isExclusive", bool(candidate.get("exclusiveVoucher")))
        validator.add_value("isExpired", candidate["is_expired"])
        validator.add_value("isShown", True)

        fingerprint = generate_coupon_id(merchant.name, id_in_site, source_url)
        code = check_voucher_code(candidate.get("code"))

        if code.is_empty:
            return CouponItemResult(fingerprint=fingerprint, validator=validator)

        if not code.is_masked:
            validator.add_value("code", code.code)
            return CouponItemResult(fingerprint=fingerprint, validator=validator)

        reveal_url = self._reveal_url(context, candidate)
        if not reveal_url:
            context.logger.warning("reveal_url_unavailable", id_in_site=id_in_site)
            return CouponItemResult(fingerprint=fingerprint, validator=validator)

        return CouponItemResult(
            fingerprint=fingerprint,
            validator=validator,
            needs_reveal=True,
            coupon_url=reveal_url,
        )

    def extract_code(self, context: PageContext) -> Optional[str]:
        data = context.json()
        if not isinstance(data, dict) or not data.get("code"):
            return None
        return str(data["code"])


class GutscheineChipAdapter(NextDataAdapter):
    site_slug = "gutscheine-chip-de"
    site_name = "CHIP Gutscheine"


class RadinsAdapter(NextDataAdapter):
    site_slug = "radins-com"
    site_name = "Radins.com"

    index_page_selectors = ['div[data-testid="vouchers-ui-voucher-card"]']
    non_index_page_selectors = [
        "div[data-testid='alphabet-sections']",
        "div[data-testid='heroheader']",
    ]


class MetroDiscountCodeAdapter(NextDataAdapter):
    site_slug = "discountcode-metro-co-uk"
    site_name = "Metro Discount Codes"
