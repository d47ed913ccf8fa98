"""couponfarm: coupon site scrapers feeding a central coupon API."""

__version__ = "0.1.0"
