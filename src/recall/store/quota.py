"""
Entry-count enforcement for the history log.

Two explicit policies, never mixed:
    - Eviction: maintain_limit() keeps the newest records and rewrites the log
    - Refusal: ensure_capacity() raises when the log is already full

Maintenance rewrites the whole file, so it is not run on every append by
default. HistoryConfig.eviction decides when the History service calls it.
"""

import logging

from recall.errors import HistoryQuotaExceededError
from recall.store.jsonl import HistoryStore

logger = logging.getLogger(__name__)


class QuotaManager:
    """
    Bounds the number of records in a HistoryStore.

    Usage:
        quota = QuotaManager(store)
        removed = quota.maintain_limit(1000)
    """

    def __init__(self, store: HistoryStore) -> None:
        self.store = store

    def maintain_limit(self, max_entries: int) -> int:
        """
        Keep only the newest ``max_entries`` records.

        Records are ordered by timestamp with ties broken by file order, the
        oldest are evicted, and the log is rebuilt atomically. Lines that do
        not parse are dropped by the rebuild as well.

        Args:
            max_entries: Maximum number of records to keep (positive)

        Returns:
            Number of records evicted
        """
        if max_entries <= 0:
            msg = f"max_entries must be positive, got {max_entries}"
            raise ValueError(msg)

        if not self.store.exists():
            return 0

        records = list(self.store.load_all())
        excess = len(records) - max_entries
        if excess <= 0:
            return 0

        # sorted() is stable, so equal timestamps keep file order
        ordered = sorted(records, key=lambda r: r.timestamp)
        self.store.rebuild(ordered[excess:])

        logger.info(
            "Evicted %d oldest history records from %s (limit %d)",
            excess,
            self.store.path,
            max_entries,
        )
        return excess

    def ensure_capacity(self, max_entries: int) -> int:
        """
        Refuse further appends once the log is full.

        Lines are counted without being decoded, so corrupt lines take up
        capacity until repair() removes them.

        Returns:
            The current line count

        Raises:
            HistoryQuotaExceededError: If the log holds max_entries or more
        """
        current = self.store.count_lines()
        if current >= max_entries:
            raise HistoryQuotaExceededError(current_count=current, max_count=max_entries)
        return current
