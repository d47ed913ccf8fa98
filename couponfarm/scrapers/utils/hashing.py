"""Coupon fingerprinting.

A fingerprint identifies one coupon offer across runs. It is computed from
the merchant name, the site's id (or the coupon title) and the source, each
normalized so that whitespace and case noise in scraped text never yields a
different fingerprint. The coupon API stores fingerprints and answers
existence checks against them, so both functions here must stay stable.
"""

import hashlib

from .normalizer import normalize_string, get_domain_name

FINGERPRINT_DELIMITER = "|"


def _digest(*parts: str) -> str:
    combined = FINGERPRINT_DELIMITER.join(normalize_string(p) for p in parts)
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def generate_hash(merchant_name: str, id_in_site_or_title: str, source_url: str) -> str:
    """Fingerprint a coupon from merchant, id/title and the full source URL.

    Args:
        merchant_name: Merchant name as scraped
        id_in_site_or_title: Site-native coupon id, or the title when none exists
        source_url: Page the coupon was scraped from

    Returns:
        SHA-256 hex digest
    """
    return _digest(merchant_name, id_in_site_or_title, source_url)


def generate_coupon_id(merchant_name: str, id_in_site: str, source_url: str) -> str:
    """Fingerprint a coupon using only the merchant domain of the source URL.

    Listing URLs change (tracking parameters, path rewrites) far more often
    than the merchant they describe, so the URL is reduced to its domain
    before hashing.
    """
    return _digest(merchant_name, id_in_site, get_domain_name(source_url))
