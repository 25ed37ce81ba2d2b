"""
Response body truncation for history records.

Bodies above MAX_RESPONSE_BODY_SIZE are replaced by a short marker so a
single huge download cannot bloat the history file. The marker is explicit:
``truncated`` is set and ``original_size`` keeps the real size, so an elided
body is never confused with an empty one.

The limit applies to the payload, i.e. the decoded bytes. A binary body is
stored as base64, so a payload just under the limit takes about 4/3 of it
on disk (roughly 1.4 MB per line at most).
"""

from recall.errors import SerializationError
from recall.schema import BodyEncoding, HistoryRecord, ResponseSnapshot

# Fixed, not user-configurable
MAX_RESPONSE_BODY_SIZE = 1_048_576  # 1 MB

TRUNCATION_MARKER = "[Response body truncated: {size} bytes exceeds the {limit} byte history limit]"


def _payload_size(response: ResponseSnapshot) -> int:
    try:
        return response.body_size
    except ValueError as e:
        # Unencodable text or bad base64 in a snapshot built without validation
        raise SerializationError(underlying_error=f"unreadable response body: {e}") from e


def has_large_response(record: HistoryRecord) -> bool:
    """
    Whether the response body is over the storage limit.

    Raises:
        SerializationError: If the body cannot be measured
    """
    if record.response is None or record.response.truncated:
        return False
    return _payload_size(record.response) > MAX_RESPONSE_BODY_SIZE


def truncate_large_response(record: HistoryRecord) -> HistoryRecord:
    """
    Replace an oversized response body with a truncation marker.

    Status, headers and every other field are left untouched. A body of
    exactly MAX_RESPONSE_BODY_SIZE bytes is kept. Idempotent.

    Args:
        record: The record to truncate

    Returns:
        The truncated record, or the same record when within the limit
    """
    if not has_large_response(record):
        return record

    size = record.response.body_size
    truncated_response = record.response.model_copy(
        update={
            "body": TRUNCATION_MARKER.format(size=size, limit=MAX_RESPONSE_BODY_SIZE),
            "body_encoding": BodyEncoding.TEXT,
            "truncated": True,
            "original_size": size,
        }
    )
    return record.model_copy(update={"response": truncated_response})
