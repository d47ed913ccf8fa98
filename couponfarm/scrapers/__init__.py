"""Coupon scraping pipeline.

This package provides:
- The field validator and record type every adapter produces
- Fingerprinting, anomaly checks and the batched existence oracle
- Two-phase code revelation and the pre/post-processing hooks
- Base adapter class, factory and a small crawl runner
"""

from .validator import CouponRecord, DataValidator, ValidationResultCode
from .context import CrawlRequest, Label, PageContext, PageStats
from .hooks import (
    AnomalyCheckHandler,
    IndexPageHandler,
    SaveDataHandler,
    pre_process,
    post_process,
    save_or_skip,
)
from .anomaly import AnomalyGuard
from .oracle import ExistenceOracle
from .orchestrator import CodeRevealOrchestrator, PendingRecord, PendingState
from .base import BaseCouponAdapter, CouponItemResult, MerchantInfo
from .factory import AdapterFactory, get_adapter_factory

__all__ = [
    # Records
    "CouponRecord",
    "DataValidator",
    "ValidationResultCode",
    # Requests and pages
    "CrawlRequest",
    "Label",
    "PageContext",
    "PageStats",
    # Hooks
    "AnomalyCheckHandler",
    "IndexPageHandler",
    "SaveDataHandler",
    "pre_process",
    "post_process",
    "save_or_skip",
    # Guards and dedup
    "AnomalyGuard",
    "ExistenceOracle",
    "CodeRevealOrchestrator",
    "PendingRecord",
    "PendingState",
    # Adapters
    "BaseCouponAdapter",
    "CouponItemResult",
    "MerchantInfo",
    "AdapterFactory",
    "get_adapter_factory",
]
