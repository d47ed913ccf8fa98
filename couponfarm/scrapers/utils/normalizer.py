"""Text, URL and date normalization utilities shared by all site adapters."""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog

logger = structlog.get_logger()


_WHITESPACE_RE = re.compile(r"\s+")

# Formats tried, in order, after ISO-8601 parsing fails
DATE_FORMATS = [
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
]

# Codes shorter than this are treated as partially hidden teasers
MIN_VISIBLE_CODE_LENGTH = 5


def normalize_string(value: Optional[str]) -> str:
    """Trim, lowercase and collapse runs of whitespace to a single space."""
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value).strip().lower())


def get_domain_name(url: str) -> str:
    """Extract the merchant domain a coupon applies to from a page URL.

    Coupon sites usually carry the merchant domain as the last path segment
    (``https://www.savings.com/coupons/amazon.com``). When the path holds no
    dotted segment the URL's own host is used instead.

    Args:
        url: Page URL

    Returns:
        Domain without a leading ``www.``, or "" if none could be found
    """
    if not url:
        return ""

    parsed = urlparse(url.strip())
    hostname = parsed.hostname or ""
    path = re.sub(r"^/?(https?://)", "", parsed.path)
    path = path.rstrip("/")

    if "." not in path and "." in hostname:
        domain = hostname
    else:
        domain = path.split("/")[-1]

    if domain.startswith("www."):
        domain = domain[4:]

    return domain if "." in domain else ""


def get_merchant_domain_from_url(url: Optional[str]) -> Optional[str]:
    """Like get_domain_name(), but returns None when no domain is found."""
    if not url:
        return None
    return get_domain_name(url) or None


def format_datetime(value) -> str:
    """Format a scraped date into an ISO-8601 string without time zone.

    Accepts ``datetime``/``date`` objects, ISO-8601 strings and a handful of
    common listing formats (see DATE_FORMATS).

    Args:
        value: Raw date text or date object

    Returns:
        ISO-8601 string (``YYYY-MM-DDTHH:MM:SS``) or "" if unparseable
    """
    if value is None:
        return ""

    if isinstance(value, datetime):
        return value.replace(tzinfo=None).strftime("%Y-%m-%dT%H:%M:%S")
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).strftime("%Y-%m-%dT%H:%M:%S")

    text = _WHITESPACE_RE.sub(" ", str(value).strip())
    if not text:
        return ""

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        logger.debug("date_parse_failed", value=text)
        return ""

    return parsed.replace(tzinfo=None).strftime("%Y-%m-%dT%H:%M:%S")


@dataclass(frozen=True)
class VoucherCode:
    """Classification of a scraped code string."""

    code: str
    is_empty: bool
    is_masked: bool  # Partially hidden; the full code needs a second fetch


def check_voucher_code(code: Optional[str]) -> VoucherCode:
    """Classify a scraped code as empty, masked or fully visible.

    A code is considered masked when it starts with ``...`` or is shorter
    than MIN_VISIBLE_CODE_LENGTH characters.

    Args:
        code: Raw code text as found on the listing page

    Returns:
        VoucherCode with the trimmed code
    """
    trimmed = (code or "").strip()

    if not trimmed:
        return VoucherCode(code="", is_empty=True, is_masked=False)

    if trimmed.startswith("...") or len(trimmed) < MIN_VISIBLE_CODE_LENGTH:
        return VoucherCode(code=trimmed, is_empty=False, is_masked=True)

    return VoucherCode(code=trimmed, is_empty=False, is_masked=False)


TRACKING_PARAMS = frozenset(
    {"utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term", "fbclid", "gclid", "ref", "aff_id"}
)


def normalize_url(url: str) -> str:
    """Drop tracking query parameters and the fragment from a listing URL."""
    if not url:
        return url

    parsed = urlparse(url.strip())
    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    ]
    return urlunparse(parsed._replace(query=urlencode(query), fragment=""))
