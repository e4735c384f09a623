# Filename: dedup_guard.py

import logging
from collections import OrderedDict

logger = logging.getLogger("DedupGuard")


class ProcessedTxSet:
    """
    Bounded set of transaction ids that were already classified.
    Once the high-water mark is passed, the oldest-inserted batch is evicted.
    """

    def __init__(self, high_water_mark: int = 2000, evict_batch: int = 500):
        if evict_batch <= 0 or evict_batch > high_water_mark:
            raise ValueError("evict_batch must be between 1 and high_water_mark")
        self.high_water_mark = high_water_mark
        self.evict_batch = evict_batch
        self._seen = OrderedDict()

    def admit_once(self, tx_id: str) -> bool:
        if tx_id in self._seen:
            return False
        self._seen[tx_id] = None
        if len(self._seen) > self.high_water_mark:
            self._evict()
        return True

    def discard(self, tx_id: str):
        self._seen.pop(tx_id, None)

    def _evict(self):
        count = min(self.evict_batch, len(self._seen))
        for _ in range(count):
            self._seen.popitem(last=False)
        logger.debug(f"[DEDUP] Evicted {count} oldest entries, {len(self._seen)} remain")

    def __contains__(self, tx_id: str) -> bool:
        return tx_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)
