"""
Unit tests for the Report module.

Tests cover:
- Console rendering of tables, record details and statistics
- JSON export structure
- Time formatting helpers
"""

import json
from datetime import UTC, datetime, timedelta
from io import StringIO

import pytest
from rich.console import Console

from recall.pipeline import MAX_RESPONSE_BODY_SIZE, truncate_large_response
from recall.report import (
    build_export_dict,
    format_record_line,
    format_relative_time,
    generate_json_export,
    print_history_table,
    print_record_details,
    print_stats,
)
from recall.schema import RequestSnapshot, ResponseSnapshot
from recall.search import compute_stats


@pytest.fixture
def output() -> StringIO:
    return StringIO()


@pytest.fixture
def console(output: StringIO) -> Console:
    """Console writing plain text to a buffer."""
    return Console(file=output, width=200, color_system=None)


class TestRelativeTime:
    """Tests for format_relative_time()."""

    NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(seconds=30), "just now"),
            (timedelta(minutes=1), "1 minute ago"),
            (timedelta(minutes=5), "5 minutes ago"),
            (timedelta(hours=3), "3 hours ago"),
            (timedelta(days=1), "yesterday"),
            (timedelta(days=3), "3 days ago"),
            (timedelta(days=14), "2 weeks ago"),
            (timedelta(days=90), "3 months ago"),
            (timedelta(days=800), "2 years ago"),
        ],
    )
    def test_phrases(self, delta: timedelta, expected: str) -> None:
        assert format_relative_time(self.NOW - delta, now=self.NOW) == expected


class TestConsoleReport:
    """Tests for console rendering."""

    def test_record_line(self, make_record) -> None:
        line = format_record_line(make_record(status=404, url="https://x.example/a"))
        assert line.startswith("GET https://x.example/a - 404")

    def test_record_line_without_response(self, make_record) -> None:
        assert "no response" in format_record_line(make_record(status=None))

    def test_history_table(self, console: Console, output: StringIO, make_record) -> None:
        records = [
            make_record(0, url="https://api.example.com/one", tags=["api"]),
            make_record(1, status=500, method="POST", url="https://api.example.com/two"),
        ]
        print_history_table(records, console=console)
        text = output.getvalue()
        assert "rec-0000" in text
        assert "https://api.example.com/two" in text
        assert "POST" in text
        assert "500" in text
        assert "api" in text

    def test_record_details(self, console: Console, output: StringIO, make_record) -> None:
        record = make_record(body='{"ok": true}', tags=["smoke"])
        record = record.model_copy(
            update={
                "request": record.request.model_copy(
                    update={"headers": [("Accept", "[application/json]")]}
                )
            }
        )
        print_record_details(record, console=console)
        text = output.getvalue()
        assert record.id in text
        assert "Accept: [application/json]" in text
        assert '{"ok": true}' in text
        assert "smoke" in text

    def test_truncated_body_is_labelled(
        self, console: Console, output: StringIO, make_record
    ) -> None:
        record = truncate_large_response(make_record(body="z" * (MAX_RESPONSE_BODY_SIZE + 1)))
        print_record_details(record, console=console)
        assert f"Body not stored: {MAX_RESPONSE_BODY_SIZE + 1} bytes" in output.getvalue()

    def test_binary_body_not_printed(
        self, console: Console, output: StringIO, make_record
    ) -> None:
        record = make_record()
        record = record.model_copy(
            update={"response": ResponseSnapshot.from_bytes(200, b"\xff\x00\xfe")}
        )
        print_record_details(record, console=console)
        assert "binary data (3 bytes)" in output.getvalue()

    def test_binary_request_body_not_printed(
        self, console: Console, output: StringIO, make_record
    ) -> None:
        request = RequestSnapshot.from_bytes("POST", "https://api.example.com/blob", b"\x00\xff")
        record = make_record().model_copy(update={"request": request})
        print_record_details(record, console=console)
        assert "binary data (2 bytes)" in output.getvalue()

    def test_missing_response(self, console: Console, output: StringIO, make_record) -> None:
        print_record_details(make_record(status=None), console=console)
        assert "No response received" in output.getvalue()

    def test_stats(self, console: Console, output: StringIO, make_record) -> None:
        stats = compute_stats([make_record(0), make_record(1, status=404)])
        print_stats(stats, console=console, corrupted_lines=3)
        text = output.getvalue()
        assert "Total" in text
        assert "50.0%" in text
        assert "Corrupted lines" in text


class TestJsonExport:
    """Tests for JSON export."""

    def test_export_structure(self, make_record) -> None:
        records = [make_record(0, tags=["api"]), make_record(1, status=500)]
        data = build_export_dict(records, corrupted_lines=1)

        assert data["export_version"] == "1.0"
        assert data["statistics"] == {
            "total": 2,
            "successful": 1,
            "errors": 1,
            "corrupted_lines": 1,
        }
        assert [r["id"] for r in data["records"]] == ["rec-0000", "rec-0001"]
        assert data["records"][0]["tags"] == ["api"]

    def test_export_is_valid_json(self, make_record) -> None:
        parsed = json.loads(generate_json_export([make_record()]))
        assert parsed["statistics"]["total"] == 1
        assert parsed["records"][0]["timestamp"].startswith("2024-05-01T12:00:00")

    def test_empty_export(self) -> None:
        parsed = json.loads(generate_json_export([]))
        assert parsed["records"] == []
        assert parsed["statistics"]["total"] == 0
