"""Site-specific coupon adapters."""

from .next_data import (
    NextDataAdapter,
    GutscheineChipAdapter,
    RadinsAdapter,
    MetroDiscountCodeAdapter,
)
from .wagjag import WagjagAdapter

__all__ = [
    "NextDataAdapter",
    "GutscheineChipAdapter",
    "RadinsAdapter",
    "MetroDiscountCodeAdapter",
    "WagjagAdapter",
]
