"""
Recall - Bounded, append-friendly history of HTTP requests.

Recall keeps past request/response exchanges in a single line-delimited
file so they can be browsed, tagged and re-run later. It provides:
- Selective storage (successful exchanges by default)
- Credential header stripping before anything reaches disk
- Oversized response bodies replaced by a size marker
- Corruption-tolerant loading and an enforced entry limit

Example usage:
    from recall import History

    history = History("history.json")
    history.record(request, response)

    $ recall list --tag api
    $ recall maintain --max-entries 500
"""

__version__ = "0.1.0"
__author__ = "Recall Contributors"

from recall.history import History, HistoryOutcome
from recall.schema import (
    HistoryConfig,
    HistoryRecord,
    RequestSnapshot,
    ResponseSnapshot,
)
from recall.store import HistoryStore, QuotaManager

__all__ = [
    "__version__",
    "__author__",
    "History",
    "HistoryConfig",
    "HistoryOutcome",
    "HistoryRecord",
    "HistoryStore",
    "QuotaManager",
    "RequestSnapshot",
    "ResponseSnapshot",
]
