"""Custom exception classes for the scraping pipeline."""

from typing import Iterable


class CouponFarmException(Exception):
    """Base exception for all couponfarm errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(CouponFarmException):
    """Raised by final_check() when required record fields are missing."""

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Missing required field(s): {', '.join(self.missing_fields)}"
        )


class AnomalyError(CouponFarmException):
    """Raised when a page's candidate count or shape fails a sanity check."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Anomaly detected at {url}: {reason}")


class OracleTransportError(CouponFarmException):
    """Raised when the batched existence check cannot reach the coupon API."""


class ExtractionError(CouponFarmException):
    """Raised when a raw candidate lacks a field needed to build a record."""

    def __init__(self, field: str, message: str = ""):
        self.field = field
        super().__init__(f"Could not extract {field}" + (f": {message}" if message else ""))


class ScraperError(CouponFarmException):
    """Raised when a site adapter encounters an error."""

    def __init__(self, site: str, message: str):
        self.site = site
        super().__init__(f"Scraper error for {site}: {message}")
