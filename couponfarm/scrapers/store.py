"""Record stores: where finalized coupons go.

post_process() hands every finalized CouponRecord to a RecordStore. The
production store batches records to the coupon API; DatasetStore keeps them
in memory (and optionally writes JSON lines), which is what dry runs and
tests use.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import structlog

from couponfarm.config import settings
from couponfarm.scrapers.api_client import CouponApiClient
from couponfarm.scrapers.validator import CouponRecord

logger = structlog.get_logger(__name__)


class RecordStore(ABC):
    """Persistence port for finalized coupon records."""

    @abstractmethod
    async def save(self, record: CouponRecord) -> None:
        """Persist one finalized record."""
        pass

    async def flush(self) -> None:
        """Push any buffered records. No-op by default."""
        return None

    async def close(self) -> None:
        await self.flush()


class DatasetStore(RecordStore):
    """In-memory store, optionally dumped as JSON lines on flush."""

    def __init__(self, output_path: Optional[str] = None):
        self.records: List[CouponRecord] = []
        self.output_path = Path(output_path) if output_path else None
        self._written = 0

    async def save(self, record: CouponRecord) -> None:
        self.records.append(record)

    async def flush(self) -> None:
        if not self.output_path:
            return
        pending = self.records[self._written:]
        if not pending:
            return
        with self.output_path.open("a", encoding="utf-8") as fh:
            for record in pending:
                fh.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
        self._written = len(self.records)
        logger.info("dataset_written", path=str(self.output_path), count=len(pending))


class ApiRecordStore(RecordStore):
    """Buffers records and sends them to the coupon API in batches."""

    def __init__(self, api_client: CouponApiClient, batch_size: Optional[int] = None):
        self.api_client = api_client
        self.batch_size = batch_size or settings.STORE_BATCH_SIZE
        self._buffer: List[Dict[str, Any]] = []
        self.stats = {"sent": 0, "failed": 0}
        self.logger = logger.bind(service="api_record_store")

    async def save(self, record: CouponRecord) -> None:
        self._buffer.append(record.to_dict())
        if len(self._buffer) >= self.batch_size:
            await self.flush()

    async def flush(self) -> None:
        if not self._buffer:
            return

        batch, self._buffer = self._buffer, []
        try:
            result = await self.api_client.push_items(batch)
            self.stats["sent"] += len(batch)
            self.logger.info("records_pushed", count=len(batch), api_stats=result)
        except (httpx.HTTPError, ValueError) as e:
            # Dropped, not retried: the next run re-scrapes the same pages
            self.stats["failed"] += len(batch)
            self.logger.error("records_push_failed", count=len(batch), error=str(e))
