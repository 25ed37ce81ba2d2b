"""
Storage module for Recall.

This module persists history records to a line-delimited JSON file and keeps
that file within its configured size.

Components:
    - HistoryStore: append, load, rebuild and clear over one history file
    - HistoryLoad: lazy, corruption-tolerant iteration over the file
    - QuotaManager: oldest-first eviction and strict capacity checks

Design principles:
    - Append-only: new records never rewrite existing lines
    - Tolerant: one bad line never blocks the rest of the history
    - Atomic: full rewrites go through a temporary file and a rename
    - Self-contained: one file holds the whole history
"""

from recall.store.jsonl import (
    HistoryLoad,
    HistoryStore,
    RepairReport,
    StoreState,
    decode_line,
    default_history_path,
    encode_record,
)
from recall.store.quota import QuotaManager

__all__ = [
    "HistoryLoad",
    "HistoryStore",
    "QuotaManager",
    "RepairReport",
    "StoreState",
    "decode_line",
    "default_history_path",
    "encode_record",
]
