"""
History service for Recall.

The History service is the entry point collaborators use. It coordinates:
- Pipeline: decides what is stored and strips secrets and oversized bodies
- Storage: appends, loads and rewrites the history file
- Quota: enforces the entry limit according to the eviction policy

Save Flow:
    1. Build a record from a completed exchange
    2. Prepare it (selective storage, sanitization, truncation)
    3. Under strict eviction, refuse if the log is full
    4. Append the prepared record
    5. Under after_append eviction, trim the log every N appends

Design Principles:
    - Never crash the host: every method returns a HistoryOutcome
    - Configuration per call: no hidden global settings
    - Serialized access: one lock per instance guards the file
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from recall.errors import RecallError, RecordNotFoundError
from recall.pipeline import prepare_for_storage
from recall.schema import (
    EvictionPolicy,
    HistoryConfig,
    HistoryRecord,
    RequestSnapshot,
    ResponseSnapshot,
)
from recall.store import HistoryStore, QuotaManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryOutcome:
    """
    Result of a History operation.

    Attributes:
        success: Whether the operation completed
        record: The record involved, if any (None when a record was filtered out)
        records: Records returned by read operations
        error: The failure, if success is False
        metadata: Operation details (counts, flags)
    """

    success: bool
    record: HistoryRecord | None = None
    records: list[HistoryRecord] = field(default_factory=list)
    error: RecallError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        record: HistoryRecord | None = None,
        records: list[HistoryRecord] | None = None,
        **metadata: Any,
    ) -> "HistoryOutcome":
        """Create a successful outcome."""
        return cls(success=True, record=record, records=records or [], metadata=metadata)

    @classmethod
    def fail(cls, error: RecallError, **metadata: Any) -> "HistoryOutcome":
        """Create a failed outcome."""
        return cls(success=False, error=error, metadata=metadata)


class History:
    """
    Request history bound to one storage location.

    Usage:
        history = History("history.json")
        outcome = history.record(request, response)
        if not outcome.success:
            print(outcome.error)
        for record in history.load().records:
            print(record.request.url)

    Attributes:
        store: The underlying line-delimited store
        quota: Entry-count enforcement for the store
        config: Configuration used when a call does not pass its own
    """

    def __init__(
        self,
        path: str | Path | None = None,
        config: HistoryConfig | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            path: History file location (defaults to the per-user location)
            config: Default configuration for calls that do not pass one
        """
        self.store = HistoryStore(path)
        self.quota = QuotaManager(self.store)
        self.config = config or HistoryConfig()
        self._lock = threading.Lock()
        self._appends_since_maintenance = 0

    @property
    def path(self) -> Path:
        return self.store.path

    # =========================================================================
    # Write Operations
    # =========================================================================

    def record(
        self,
        request: RequestSnapshot,
        response: ResponseSnapshot | None,
        tags: Iterable[str] | None = None,
        config: HistoryConfig | None = None,
    ) -> HistoryOutcome:
        """Build a record from a completed exchange and save it."""
        return self.save(HistoryRecord.new(request, response, tags), config)

    def save(
        self,
        record: HistoryRecord,
        config: HistoryConfig | None = None,
    ) -> HistoryOutcome:
        """
        Prepare and append a record.

        Returns:
            Outcome whose ``record`` is the stored (prepared) record, or None
            with ``stored=False`` when the selective-storage policy dropped it
        """
        config = config or self.config
        try:
            prepared = prepare_for_storage(record, config)
        except RecallError as e:
            logger.error("Failed to prepare history record %s: %s", record.id, e.message)
            return HistoryOutcome.fail(e, stored=False)

        if prepared is None:
            logger.debug(
                "Not storing record %s (status %s)", record.id, record.status_code
            )
            return HistoryOutcome.ok(stored=False)

        with self._lock:
            try:
                if config.eviction == EvictionPolicy.STRICT:
                    self.quota.ensure_capacity(config.max_entries)

                self.store.append(prepared)

                evicted = 0
                if config.eviction == EvictionPolicy.AFTER_APPEND:
                    self._appends_since_maintenance += 1
                    if self._appends_since_maintenance >= config.maintain_interval:
                        evicted = self.quota.maintain_limit(config.max_entries)
                        self._appends_since_maintenance = 0
            except RecallError as e:
                logger.error("Failed to save history record %s: %s", record.id, e.message)
                return HistoryOutcome.fail(e, stored=False)

        return HistoryOutcome.ok(prepared, stored=True, evicted=evicted)

    def clear(self) -> HistoryOutcome:
        """Delete every stored record."""
        with self._lock:
            try:
                self.store.clear()
            except RecallError as e:
                return HistoryOutcome.fail(e)
            self._appends_since_maintenance = 0
        return HistoryOutcome.ok()

    def maintain(self, config: HistoryConfig | None = None) -> HistoryOutcome:
        """Evict the oldest records beyond ``max_entries``."""
        config = config or self.config
        with self._lock:
            try:
                evicted = self.quota.maintain_limit(config.max_entries)
            except RecallError as e:
                return HistoryOutcome.fail(e)
            self._appends_since_maintenance = 0
        return HistoryOutcome.ok(evicted=evicted, max_entries=config.max_entries)

    def repair(self) -> HistoryOutcome:
        """Rewrite the file without its corrupted lines."""
        with self._lock:
            try:
                report = self.store.repair()
            except RecallError as e:
                return HistoryOutcome.fail(e)
        return HistoryOutcome.ok(valid=report.valid, corrupted=report.corrupted)

    def tag(self, record_id: str, tag: str) -> HistoryOutcome:
        """Add a tag to a stored record."""
        return self._update_tags(record_id, lambda r: r.add_tag(tag))

    def untag(self, record_id: str, tag: str) -> HistoryOutcome:
        """Remove a tag from a stored record."""
        return self._update_tags(record_id, lambda r: r.remove_tag(tag))

    def _update_tags(
        self,
        record_id: str,
        change: Callable[[HistoryRecord], HistoryRecord],
    ) -> HistoryOutcome:
        with self._lock:
            try:
                records = list(self.store.load_all())
                for index, existing in enumerate(records):
                    if existing.id == record_id:
                        updated = change(existing)
                        break
                else:
                    raise RecordNotFoundError(record_id=record_id)

                if updated is not existing:
                    records[index] = updated
                    self.store.rebuild(records)
            except RecallError as e:
                return HistoryOutcome.fail(e)
        return HistoryOutcome.ok(updated)

    # =========================================================================
    # Read Operations
    # =========================================================================

    def load(self) -> HistoryOutcome:
        """All records in file order, with the number of skipped lines."""
        with self._lock:
            load = self.store.load_all()
            try:
                records = list(load)
            except RecallError as e:
                return HistoryOutcome.fail(e)
        return HistoryOutcome.ok(records=records, corrupted_lines=load.corrupted_lines)

    def find(self, record_id: str) -> HistoryOutcome:
        """Look up one record, e.g. for re-execution."""
        with self._lock:
            try:
                record = self.store.find(record_id)
            except RecallError as e:
                return HistoryOutcome.fail(e)
        if record is None:
            return HistoryOutcome.fail(RecordNotFoundError(record_id=record_id))
        return HistoryOutcome.ok(record)

    def recent(self, count: int) -> HistoryOutcome:
        """The newest ``count`` records, newest first."""
        with self._lock:
            try:
                records = self.store.load_recent(count)
            except RecallError as e:
                return HistoryOutcome.fail(e)
        return HistoryOutcome.ok(records=records)
