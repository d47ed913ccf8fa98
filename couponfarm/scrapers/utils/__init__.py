"""Scraper utilities for hashing, normalization, rate limiting and retries."""

from .rate_limiter import DomainRateLimiter, TokenBucket
from .user_agents import (
    get_random_user_agent,
    build_headers,
    CUSTOM_HEADERS,
    USER_AGENTS,
)
from .normalizer import (
    VoucherCode,
    check_voucher_code,
    format_datetime,
    get_domain_name,
    get_merchant_domain_from_url,
    normalize_string,
    normalize_url,
)
from .hashing import generate_hash, generate_coupon_id
from .retry import http_retry, api_retry


__all__ = [
    # Rate limiting
    "DomainRateLimiter",
    "TokenBucket",
    # User agents / headers
    "get_random_user_agent",
    "build_headers",
    "CUSTOM_HEADERS",
    "USER_AGENTS",
    # Normalization
    "VoucherCode",
    "check_voucher_code",
    "format_datetime",
    "get_domain_name",
    "get_merchant_domain_from_url",
    "normalize_string",
    "normalize_url",
    # Fingerprints
    "generate_hash",
    "generate_coupon_id",
    # Retry decorators
    "http_retry",
    "api_retry",
]
