"""
Filtering and ordering helpers for loaded history.

These operate on lists already loaded from the store; nothing here is
indexed. They back the CLI filters and the history report.
"""

from dataclasses import dataclass

from recall.schema import HistoryRecord


@dataclass(frozen=True)
class HistoryStats:
    """
    Summary counts over a set of records.

    Attributes:
        total: Number of records
        successful: Records with a 2xx/3xx response
        errors: Records with a 4xx/5xx response or no response at all
    """

    total: int
    successful: int
    errors: int

    @property
    def success_rate(self) -> float:
        """Share of successful records, in percent."""
        return (self.successful / self.total) * 100.0 if self.total else 0.0

    @property
    def error_rate(self) -> float:
        """Share of failed records, in percent."""
        return (self.errors / self.total) * 100.0 if self.total else 0.0


def filter_by_tag(tag: str, records: list[HistoryRecord]) -> list[HistoryRecord]:
    return [r for r in records if r.has_tag(tag)]


def filter_by_method(method: str, records: list[HistoryRecord]) -> list[HistoryRecord]:
    """Records whose request used ``method`` (case-insensitive)."""
    wanted = method.upper()
    return [r for r in records if r.request.method.value == wanted]


def filter_by_status(status_code: int, records: list[HistoryRecord]) -> list[HistoryRecord]:
    return [r for r in records if r.status_code == status_code]


def filter_successful(records: list[HistoryRecord]) -> list[HistoryRecord]:
    return [r for r in records if r.should_save()]


def filter_errors(records: list[HistoryRecord]) -> list[HistoryRecord]:
    """Records with a 4xx/5xx response, or none at all."""
    return [r for r in records if not r.should_save()]


def sort_by_timestamp_asc(records: list[HistoryRecord]) -> list[HistoryRecord]:
    return sorted(records, key=lambda r: r.timestamp)


def sort_by_timestamp_desc(records: list[HistoryRecord]) -> list[HistoryRecord]:
    """Newest first; equal timestamps keep later file positions first."""
    return sorted(reversed(records), key=lambda r: r.timestamp, reverse=True)


def get_recent_entries(count: int, records: list[HistoryRecord]) -> list[HistoryRecord]:
    return sort_by_timestamp_desc(records)[:count]


def compute_stats(records: list[HistoryRecord]) -> HistoryStats:
    successful = len(filter_successful(records))
    return HistoryStats(
        total=len(records),
        successful=successful,
        errors=len(records) - successful,
    )
