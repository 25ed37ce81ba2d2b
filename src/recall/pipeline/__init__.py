"""
Storage pipeline for Recall.

Every record passes through this pipeline before it is written:
selective storage, then header sanitization, then body truncation.

Example:
    from recall.pipeline import prepare_for_storage

    prepared = prepare_for_storage(record, HistoryConfig())
    if prepared is not None:
        store.append(prepared)
"""

from recall.pipeline.prepare import prepare_for_storage, should_store
from recall.pipeline.sanitizer import (
    SENSITIVE_HEADERS,
    is_credential_value,
    is_sensitive_header,
    sanitize_headers,
    strip_sensitive,
)
from recall.pipeline.truncator import (
    MAX_RESPONSE_BODY_SIZE,
    has_large_response,
    truncate_large_response,
)

__all__ = [
    "MAX_RESPONSE_BODY_SIZE",
    "SENSITIVE_HEADERS",
    "has_large_response",
    "is_credential_value",
    "is_sensitive_header",
    "prepare_for_storage",
    "sanitize_headers",
    "should_store",
    "strip_sensitive",
    "truncate_large_response",
]
