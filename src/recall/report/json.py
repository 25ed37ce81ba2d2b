"""
JSON export for Recall.

Produces a single JSON document describing a set of history records, for
programmatic consumption or for moving history between machines by hand.

Design Principles:
    - Complete data: records are exported exactly as stored
    - Consistent schema: same structure for every export
    - ISO timestamps: standard datetime format
"""

import json
from datetime import UTC, datetime
from typing import Any

from recall.schema import HistoryRecord
from recall.search import compute_stats

EXPORT_VERSION = "1.0"


def build_export_dict(
    records: list[HistoryRecord],
    corrupted_lines: int = 0,
) -> dict[str, Any]:
    """
    Build an export dictionary for a set of records.

    Args:
        records: Records to export, in the order given
        corrupted_lines: Lines skipped while loading, reported for reference

    Returns:
        Dictionary with export metadata, statistics and the records
    """
    stats = compute_stats(records)
    return {
        "export_version": EXPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "statistics": {
            "total": stats.total,
            "successful": stats.successful,
            "errors": stats.errors,
            "corrupted_lines": corrupted_lines,
        },
        "records": [record.model_dump(mode="json") for record in records],
    }


def generate_json_export(
    records: list[HistoryRecord],
    corrupted_lines: int = 0,
    indent: int = 2,
) -> str:
    """Serialize build_export_dict() output to a JSON string."""
    return json.dumps(build_export_dict(records, corrupted_lines), indent=indent)
