"""Two-phase code revelation.

Some sites only show a coupon's code after a second page load (the "reveal"
click). For those coupons the listing handler does not persist anything
itself; it registers each partially built record here:

    LISTED    candidate found on the listing page, code unknown
    QUEUED    fingerprint unknown to the coupon API, follow-up request enqueued
    REVEALED  follow-up page fetched, code (if any) added
    PERSISTED record finalized and stored

Known fingerprints end in DROPPED; records that fail finalization in FAILED.
The partially built record travels with the follow-up request as a
serialized PendingRecord, so nothing but the request queue outlives the page.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from couponfarm.scrapers.context import CrawlRequest, Label, PageContext
from couponfarm.scrapers.hooks import save_or_skip
from couponfarm.scrapers.utils.user_agents import build_headers
from couponfarm.scrapers.validator import CouponRecord, DataValidator

USER_DATA_KEY = "pendingRecord"


class PendingState(str, Enum):
    LISTED = "listed"
    QUEUED = "queued"
    REVEALED = "revealed"
    PERSISTED = "persisted"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass
class PendingRecord:
    """A record waiting for its code, in a form that survives the request queue."""

    fingerprint: str
    fields: Dict[str, Any]
    target_url: str
    state: PendingState = PendingState.LISTED

    def to_user_data(self) -> Dict[str, Any]:
        return {
            USER_DATA_KEY: {
                "fingerprint": self.fingerprint,
                "fields": dict(self.fields),
                "targetUrl": self.target_url,
                "state": self.state.value,
            }
        }

    @classmethod
    def from_user_data(cls, user_data: Mapping[str, Any]) -> "PendingRecord":
        """Rebuild a PendingRecord from a follow-up request's user data.

        Raises:
            ValueError: If the user data carries no pending record
        """
        payload = user_data.get(USER_DATA_KEY)
        if not isinstance(payload, Mapping):
            raise ValueError("Request user data carries no pending record")
        return cls(
            fingerprint=payload["fingerprint"],
            fields=dict(payload.get("fields") or {}),
            target_url=payload.get("targetUrl", ""),
            state=PendingState(payload.get("state", PendingState.QUEUED.value)),
        )

    def to_validator(self, logger=None) -> DataValidator:
        validator = DataValidator(logger=logger)
        validator.load_data(self.fields)
        return validator


class CodeRevealOrchestrator:
    """Collects one listing page's hidden-code coupons and schedules reveals.

    Create one per page invocation; it keeps the fingerprint -> pending map
    for that page only.
    """

    def __init__(self, context: PageContext, label: Label = Label.GET_CODE, headers: Optional[Dict[str, str]] = None):
        self.context = context
        self.label = label
        self.headers = headers
        self._pending: Dict[str, PendingRecord] = {}

    @property
    def pending(self) -> Dict[str, PendingRecord]:
        return self._pending

    def add(self, fingerprint: str, validator: DataValidator, target_url: str = "") -> PendingRecord:
        """Register a listed coupon whose code needs a second fetch."""
        if fingerprint in self._pending:
            self.context.logger.debug("duplicate_fingerprint_on_page", fingerprint=fingerprint)
            return self._pending[fingerprint]

        pending = PendingRecord(
            fingerprint=fingerprint,
            fields=validator.get_data(),
            target_url=target_url,
        )
        self._pending[fingerprint] = pending
        return pending

    async def resolve_unknown(self) -> List[PendingRecord]:
        """Run the existence check once and drop coupons the API already has."""
        listed = [fp for fp, p in self._pending.items() if p.state == PendingState.LISTED]
        if not listed:
            return []

        unknown = set(
            await self.context.oracle.filter_unknown(listed, source_url=self.context.request.url)
        )

        result = []
        for fp in listed:
            pending = self._pending[fp]
            if fp in unknown:
                result.append(pending)
            else:
                pending.state = PendingState.DROPPED
                self.context.stats.dropped += 1
        return result

    async def schedule(self) -> int:
        """Enqueue a follow-up request for every unknown coupon.

        Returns:
            Number of follow-up requests enqueued
        """
        request = self.context.request
        base_user_data = {k: v for k, v in request.user_data.items() if k != USER_DATA_KEY}
        count = 0

        for pending in await self.resolve_unknown():
            if not pending.target_url:
                # Nothing to follow up; store what the listing page gave us
                self.context.logger.warning("reveal_url_missing", fingerprint=pending.fingerprint)
                record = await save_or_skip(self.context, pending.to_validator(self.context.logger))
                pending.state = PendingState.PERSISTED if record else PendingState.FAILED
                continue

            pending.state = PendingState.QUEUED
            follow_up = CrawlRequest(
                url=pending.target_url,
                label=self.label,
                user_data={**base_user_data, "label": self.label.value, **pending.to_user_data()},
                headers=build_headers(self.headers),
            )
            await self.context.enqueue(follow_up, forefront=True)
            count += 1

        self.context.stats.scheduled += count
        if count:
            self.context.logger.info("reveal_requests_scheduled", count=count)
        return count

    async def persist_unknown(self) -> int:
        """Store unknown coupons directly, for sites whose code is already on the page.

        Returns:
            Number of records stored
        """
        saved = 0
        for pending in await self.resolve_unknown():
            record = await save_or_skip(self.context, pending.to_validator(self.context.logger))
            pending.state = PendingState.PERSISTED if record else PendingState.FAILED
            saved += 1 if record else 0
        return saved

    @staticmethod
    async def reveal(context: PageContext, code: Optional[str]) -> Optional[CouponRecord]:
        """Finish a queued coupon inside the follow-up page handler.

        A missing code is logged but not fatal; the record is still stored
        when its required fields are present.

        Returns:
            The stored record, or None if it was dropped
        """
        pending = PendingRecord.from_user_data(context.request.user_data)
        validator = pending.to_validator(context.logger)

        if code and code.strip():
            validator.add_value("code", code)
            context.logger.info("code_revealed", fingerprint=pending.fingerprint)
        else:
            context.logger.warning("code_not_found", fingerprint=pending.fingerprint)
        pending.state = PendingState.REVEALED

        record = await save_or_skip(context, validator)
        pending.state = PendingState.PERSISTED if record else PendingState.FAILED
        return record
