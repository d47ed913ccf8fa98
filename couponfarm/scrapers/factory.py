"""Factory for creating and managing site adapter instances."""

from typing import Dict, Optional, Type
import structlog

from couponfarm.scrapers.base import BaseCouponAdapter
from couponfarm.scrapers.utils import DomainRateLimiter


logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Registry of site adapters with shared dependency injection."""

    def __init__(self):
        # Shared rate limiter for all adapters
        self.rate_limiter = DomainRateLimiter()
        self._adapter_registry: Dict[str, Type[BaseCouponAdapter]] = {}

    def register_adapter(self, site_slug: str, adapter_class: Type[BaseCouponAdapter]) -> None:
        """Register an adapter class for a site.

        Raises:
            ValueError: If adapter_class is not a BaseCouponAdapter
        """
        if not (isinstance(adapter_class, type) and issubclass(adapter_class, BaseCouponAdapter)):
            raise ValueError(f"Adapter class must inherit from BaseCouponAdapter: {adapter_class}")

        self._adapter_registry[site_slug] = adapter_class
        logger.debug("adapter_registered", site_slug=site_slug, adapter_class=adapter_class.__name__)

    def create_adapter(self, site_slug: str) -> Optional[BaseCouponAdapter]:
        """Create and configure an adapter instance.

        Returns:
            Configured adapter instance, or None if not registered
        """
        adapter_class = self._adapter_registry.get(site_slug)
        if not adapter_class:
            logger.warning("adapter_not_found", site_slug=site_slug)
            return None

        adapter = adapter_class()
        adapter.rate_limiter = self.rate_limiter

        logger.info("adapter_created", site_slug=site_slug)
        return adapter

    def get_registered_sites(self) -> list[str]:
        return sorted(self._adapter_registry.keys())

    def has_adapter(self, site_slug: str) -> bool:
        return site_slug in self._adapter_registry


def register_all_adapters(factory: "AdapterFactory") -> None:
    """Register the bundled site adapters with a factory."""
    from couponfarm.scrapers.adapters import (
        GutscheineChipAdapter,
        MetroDiscountCodeAdapter,
        RadinsAdapter,
        WagjagAdapter,
    )

    for adapter_class in (
        GutscheineChipAdapter,
        RadinsAdapter,
        MetroDiscountCodeAdapter,
        WagjagAdapter,
    ):
        factory.register_adapter(adapter_class.site_slug, adapter_class)

    logger.debug("all_adapters_registered", sites=factory.get_registered_sites())


_adapter_factory: Optional[AdapterFactory] = None


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory, registering bundled adapters on first use."""
    global _adapter_factory
    if _adapter_factory is None:
        _adapter_factory = AdapterFactory()
        register_all_adapters(_adapter_factory)
    return _adapter_factory
