"""
Prepare-for-storage pipeline.

Stages run in a fixed order:
    1. Selective storage: drop failed exchanges unless configured otherwise
    2. Sanitization: strip credential headers
    3. Truncation: elide oversized response bodies

Filtering comes first so dropped exchanges never pay for the later stages,
and truncation comes last so its marker is never touched by sanitization.
"""

from recall.pipeline.sanitizer import sanitize_headers
from recall.pipeline.truncator import truncate_large_response
from recall.schema import HistoryConfig, HistoryRecord


def should_store(record: HistoryRecord, config: HistoryConfig) -> bool:
    """Whether the selective-storage policy keeps this record."""
    return config.save_failed_requests or record.should_save()


def prepare_for_storage(
    record: HistoryRecord,
    config: HistoryConfig,
) -> HistoryRecord | None:
    """
    Apply the storage pipeline to a record.

    Args:
        record: The record built from a completed exchange
        config: Active history configuration

    Returns:
        The record as it should be written, or None if it must not be stored
    """
    if not should_store(record, config):
        return None

    prepared = sanitize_headers(record, config.sanitize_sensitive_headers)
    return truncate_large_response(prepared)
