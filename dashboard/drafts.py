"""
In-memory draft registry for the dashboard.

Drafts that have not been touched for ttl_seconds are evicted, and the
store never holds more than max_drafts; when full, the least recently
used draft is dropped to make room.
"""
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from pipeline.flow import PurchaseOrderFlow

logger = logging.getLogger(__name__)


class DraftStore:
    def __init__(
        self,
        ttl_seconds: float = 1800,
        max_drafts: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_drafts = max(1, max_drafts)
        self._clock = clock
        # draft_id -> (flow, last_seen); least recently used first
        self._drafts: "OrderedDict[str, tuple[PurchaseOrderFlow, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._drafts)

    def __contains__(self, draft_id: str) -> bool:
        return draft_id in self._drafts

    def _drop(self, draft_id: str, reason: str) -> None:
        flow, _ = self._drafts.pop(draft_id)
        flow.reset()
        logger.info("Draft %s evicted (%s)", draft_id, reason)

    def evict_idle(self) -> int:
        """Drop every draft idle for longer than the TTL. Returns how many went."""
        cutoff = self._clock() - self.ttl_seconds
        stale = [draft_id for draft_id, (_, seen) in self._drafts.items() if seen < cutoff]
        for draft_id in stale:
            self._drop(draft_id, "idle")
        return len(stale)

    def put(self, draft_id: str, flow: PurchaseOrderFlow) -> None:
        self.evict_idle()
        while len(self._drafts) >= self.max_drafts:
            self._drop(next(iter(self._drafts)), "store full")
        self._drafts[draft_id] = (flow, self._clock())

    def get(self, draft_id: str) -> Optional[PurchaseOrderFlow]:
        self.evict_idle()
        entry = self._drafts.get(draft_id)
        if entry is None:
            return None
        self._drafts[draft_id] = (entry[0], self._clock())
        self._drafts.move_to_end(draft_id)
        return entry[0]

    def pop(self, draft_id: str) -> Optional[PurchaseOrderFlow]:
        entry = self._drafts.pop(draft_id, None)
        return entry[0] if entry else None
