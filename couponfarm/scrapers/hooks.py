"""Pre- and post-processing hooks every listing handler runs.

pre_process() is called once per page, after the raw candidates have been
selected and before any field extraction. post_process() is called once per
finalized candidate and is the only path to the record store.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import structlog

from couponfarm.core.exceptions import AnomalyError, CouponFarmException, ValidationError
from couponfarm.scrapers.context import PageContext
from couponfarm.scrapers.validator import CouponRecord, DataValidator

logger = structlog.get_logger(__name__)


@dataclass
class AnomalyCheckHandler:
    """Candidates found on the page (or their count)."""

    coupons: Union[int, Sequence]
    url: Optional[str] = None  # Defaults to the request URL


@dataclass
class IndexPageHandler:
    """Markers that tell a listing page apart from other page types."""

    index_page_selectors: List[str] = field(default_factory=list)
    non_index_page_selectors: List[str] = field(default_factory=list)


@dataclass
class SaveDataHandler:
    validator: DataValidator


async def pre_process(
    context: PageContext,
    anomaly_check: Optional[AnomalyCheckHandler] = None,
    index_page: Optional[IndexPageHandler] = None,
) -> None:
    """Classify the page and run the anomaly guard.

    Raises:
        ValueError: If context is missing
        AnomalyError: If the page should not be processed
    """
    if context is None:
        raise ValueError("Context is missing")

    url = context.request.url
    try:
        if index_page:
            context.anomaly_guard.check_page_type(
                context.soup,
                url,
                index_page_selectors=index_page.index_page_selectors,
                non_index_page_selectors=index_page.non_index_page_selectors,
            )

        if anomaly_check:
            await context.anomaly_guard.check_candidates(
                anomaly_check.url or url, anomaly_check.coupons
            )
    except AnomalyError as e:
        context.stats.aborted = True
        context.logger.warning("pre_process_failed", reason=e.reason)
        raise


async def post_process(context: PageContext, save_data: SaveDataHandler) -> CouponRecord:
    """Finalize a validator and hand the record to the store.

    Raises:
        ValueError: If context is missing
        ValidationError: If required fields are missing; nothing is stored
    """
    if context is None:
        raise ValueError("Context is missing")

    validator = save_data.validator
    validator.final_check()
    record = validator.to_record()
    await context.store.save(record)
    context.stats.saved += 1
    return record


async def save_or_skip(context: PageContext, validator: DataValidator) -> Optional[CouponRecord]:
    """post_process() that logs and swallows per-record failures.

    One bad record must not abort the page, so validation and store errors
    are counted and logged here and the caller moves on.

    Returns:
        The stored record, or None if it was dropped
    """
    try:
        return await post_process(context, SaveDataHandler(validator=validator))
    except ValidationError as e:
        context.stats.failed += 1
        context.logger.warning(
            "record_dropped",
            missing_fields=e.missing_fields,
            record=repr(validator),
        )
    except CouponFarmException as e:
        context.stats.failed += 1
        context.logger.error("record_store_failed", error=str(e), record=repr(validator))
    except Exception as e:
        # Store ports may raise anything (I/O, transport); the page goes on
        context.stats.failed += 1
        context.logger.error(
            "record_store_failed",
            error=str(e),
            record=repr(validator),
            exc_info=True,
        )
    return None
