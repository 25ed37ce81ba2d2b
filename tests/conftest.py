"""
Pytest configuration and fixtures for Recall tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Generator

import pytest

from recall.schema import HistoryRecord, RequestSnapshot, ResponseSnapshot

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def history_path(temp_dir: Path) -> Path:
    """Location of a history file that does not exist yet."""
    return temp_dir / "history.json"


@pytest.fixture
def sample_request() -> RequestSnapshot:
    """A GET request carrying a credential header."""
    return RequestSnapshot(
        method="GET",
        url="https://api.example.com/users",
        headers=[
            ("Accept", "application/json"),
            ("Authorization", "Bearer secret-token"),
        ],
    )


@pytest.fixture
def sample_response() -> ResponseSnapshot:
    """A small successful JSON response."""
    return ResponseSnapshot(
        status_code=200,
        status_text="OK",
        headers=[("Content-Type", "application/json")],
        body='{"users": []}',
        duration_ms=12.5,
    )


@pytest.fixture
def make_record() -> Callable[..., HistoryRecord]:
    """
    Factory for records with controlled timestamps.

    ``offset`` is the number of seconds after a fixed base time, so records
    built with increasing offsets are strictly ordered.
    """

    def _make(
        offset: int = 0,
        status: int | None = 200,
        url: str = "https://api.example.com/items",
        method: str = "GET",
        tags: list[str] | None = None,
        body: str = "ok",
        record_id: str | None = None,
    ) -> HistoryRecord:
        response = None
        if status is not None:
            response = ResponseSnapshot(status_code=status, body=body)
        return HistoryRecord(
            id=record_id or f"rec-{offset:04d}",
            timestamp=BASE_TIME + timedelta(seconds=offset),
            request=RequestSnapshot(method=method, url=url),
            response=response,
            tags=tags or [],
        )

    return _make
