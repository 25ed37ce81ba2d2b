"""
Reporting module for Recall.

This module renders stored history for people and for programs.

Output formats:
    - Console: Rich tables and panels for listing and inspecting records
    - JSON: A structured export of records plus summary statistics

Example:
    from recall.report import print_history_table, generate_json_export

    print_history_table(records)
    print(generate_json_export(records))
"""

from recall.report.console import (
    format_record_line,
    format_relative_time,
    print_history_table,
    print_record_details,
    print_stats,
)
from recall.report.json import build_export_dict, generate_json_export

__all__ = [
    "build_export_dict",
    "format_record_line",
    "format_relative_time",
    "generate_json_export",
    "print_history_table",
    "print_record_details",
    "print_stats",
]
