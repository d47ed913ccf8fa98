"""Requests, page contexts and per-page counters passed to adapter handlers."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from bs4 import BeautifulSoup


class Label(str, Enum):
    """Request labels; each maps to one adapter handler."""

    SITEMAP = "SitemapPage"
    LISTING = "ProviderCouponsPage"
    GET_CODE = "GetCodePage"


@dataclass
class CrawlRequest:
    """A page to fetch plus the opaque user data carried with it."""

    url: str
    label: Label = Label.LISTING
    user_data: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    retry_count: int = 0


@dataclass
class PageStats:
    """What happened to the candidates of one page."""

    candidates: int = 0
    saved: int = 0
    failed: int = 0  # Finalization or store failures
    skipped: int = 0  # Extraction failures
    scheduled: int = 0  # Follow-up requests enqueued
    dropped: int = 0  # Already known to the coupon API
    aborted: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


EnqueueFn = Callable[..., Awaitable[None]]


@dataclass
class PageContext:
    """Everything a handler needs for one fetched page.

    Components never share a PageContext; all state on it dies with the page.
    """

    request: CrawlRequest
    body: str
    enqueue: EnqueueFn
    store: Any  # RecordStore
    anomaly_guard: Any  # AnomalyGuard
    oracle: Any  # ExistenceOracle
    logger: Any = None
    stats: PageStats = field(default_factory=PageStats)
    page_data: Dict[str, Any] = field(default_factory=dict)  # Adapter scratch space
    _soup: Optional[BeautifulSoup] = field(default=None, repr=False)

    def __post_init__(self):
        if self.logger is None:
            self.logger = structlog.get_logger(__name__)
        self.logger = self.logger.bind(url=self.request.url, label=self.request.label.value)

    @property
    def soup(self) -> BeautifulSoup:
        """Parsed DOM of the page, built on first access."""
        if self._soup is None:
            self._soup = BeautifulSoup(self.body or "", "lxml")
        return self._soup

    def json(self) -> Any:
        """Decode the page body as JSON."""
        return json.loads(self.body)
