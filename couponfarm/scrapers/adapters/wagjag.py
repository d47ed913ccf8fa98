"""WagJag coupons adapter.

Server-rendered HTML. The run starts on the merchant directory (sitemap),
which links to one listing page per merchant. Codes are printed in the
listing markup behind a CSS "peel" effect, so no follow-up request is needed.
"""

from typing import List, Optional
from urllib.parse import urljoin

from bs4 import Tag

from couponfarm.core.exceptions import ExtractionError
from couponfarm.scrapers.base import BaseCouponAdapter, CouponItemResult, MerchantInfo
from couponfarm.scrapers.context import Label, PageContext
from couponfarm.scrapers.utils.hashing import generate_coupon_id
from couponfarm.scrapers.utils.normalizer import get_merchant_domain_from_url, normalize_url
from couponfarm.scrapers.validator import DataValidator


class WagjagAdapter(BaseCouponAdapter):
    """Adapter for coupons.wagjag.com."""

    site_slug = "wagjag-com-coupons"
    site_name = "WagJag Coupons"

    start_label = Label.SITEMAP
    index_page_selectors = ["div.promotion-list__promotions"]
    non_index_page_selectors = ["dd.merchant-list-item__merchant"]

    SITEMAP_LINK_SELECTOR = "dd.merchant-list-item__merchant > a"
    CANDIDATE_SELECTOR = "div.promotion-list__promotions > div"
    MERCHANT_SELECTOR = "ol.breadcrumb > li:last-child > a.breadcrumb-item__link"

    def extract_listing_urls(self, context: PageContext) -> List[str]:
        urls = []
        for link in context.soup.select(self.SITEMAP_LINK_SELECTOR):
            href = link.get("href")
            if not href:
                context.logger.warning("sitemap_link_without_href")
                continue
            urls.append(normalize_url(urljoin(context.request.url, href)))
        return urls

    def extract_candidates(self, context: PageContext) -> List[Tag]:
        return context.soup.select(self.CANDIDATE_SELECTOR)

    def extract_merchant(self, context: PageContext) -> MerchantInfo:
        link = context.soup.select_one(self.MERCHANT_SELECTOR)
        name = link.get_text(strip=True) if link else ""
        if not name:
            raise ExtractionError("merchantName", "breadcrumb link is missing")
        return MerchantInfo(name=name, domain=get_merchant_domain_from_url(context.request.url))

    @staticmethod
    def _description(element: Tag) -> Optional[str]:
        node = element.select_one("div.promotion-term-extra-tab__detail-content")
        if node is None:
            return None
        # Keep meaningful line breaks, drop indentation and blank lines
        lines = [line.strip() for line in node.get_text("\n").split("\n")]
        return "\n".join(line for line in lines if line) or None

    def process_candidate(
        self, context: PageContext, merchant: MerchantInfo, candidate: Tag
    ) -> CouponItemResult:
        id_in_site = candidate.get("data-promotion-id")
        if not id_in_site:
            raise ExtractionError("idInSite", "data-promotion-id attribute is missing")

        title_node = candidate.select_one("h3")
        title = title_node.get_text(" ", strip=True) if title_node else ""
        if not title:
            raise ExtractionError("title", "h3 is missing")

        classes = candidate.get("class") or []
        is_expired = any("expired" in cls for cls in classes)

        source_url = context.request.url

        validator = DataValidator(logger=context.logger)
        validator.add_value("sourceUrl", source_url)
        validator.add_value("merchantName", merchant.name)
        validator.add_value("title", title)
        validator.add_value("idInSite", id_in_site)

        validator.add_value("domain", merchant.domain)
        validator.add_value("description", self._description(candidate))
        validator.add_value("isExpired", is_expired)
        validator.add_value("isShown", True)

        code_node = candidate.select_one("div span.btn-peel__secret")
        if code_node is not None:
            validator.add_value("code", code_node.get_text(strip=True))

        return CouponItemResult(
            fingerprint=generate_coupon_id(merchant.name, id_in_site, source_url),
            validator=validator,
        )
