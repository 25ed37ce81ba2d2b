"""
Unit tests for line-delimited storage.

Tests cover:
- Appending and loading records
- Corruption tolerance while loading
- Atomic rebuilds and clearing
- Failure handling (write errors, unreadable files, torn tails)
- Quota enforcement
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from recall.errors import (
    HistoryQuotaExceededError,
    SerializationError,
    StorageDirectoryError,
    StorageWriteError,
)
from recall.store import (
    HistoryStore,
    QuotaManager,
    StoreState,
    decode_line,
    default_history_path,
    encode_record,
)


@pytest.fixture
def store(history_path: Path) -> HistoryStore:
    """Create a store bound to a fresh path."""
    return HistoryStore(history_path)


# =============================================================================
# Encoding
# =============================================================================


class TestEncoding:
    """Tests for line encoding and decoding."""

    def test_encoded_record_is_one_line(self, make_record) -> None:
        line = encode_record(make_record(body="multi\nline\nbody"))
        assert line.endswith(b"\n")
        assert line.count(b"\n") == 1

    def test_headers_are_pairs(self, make_record) -> None:
        record = make_record()
        record = record.model_copy(
            update={
                "request": record.request.model_copy(update={"headers": [("Accept", "*/*")]})
            }
        )
        data = json.loads(encode_record(record))
        assert data["request"]["headers"] == [["Accept", "*/*"]]
        assert set(data) == {"id", "timestamp", "request", "response", "tags"}

    def test_decode_round_trip(self, make_record) -> None:
        record = make_record(tags=["api"])
        assert decode_line(encode_record(record)) == record

    def test_decode_invalid_json(self) -> None:
        with pytest.raises(SerializationError) as exc_info:
            decode_line(b"{not json", line_number=3)
        assert exc_info.value.line_number == 3

    def test_decode_invalid_utf8(self) -> None:
        with pytest.raises(SerializationError):
            decode_line(b"\xff\xfe\n")

    def test_decode_wrong_shape(self) -> None:
        with pytest.raises(SerializationError):
            decode_line(b'{"id": "x"}')


class TestDefaultPath:
    """Tests for the per-user history location."""

    def test_file_name_and_namespace(self) -> None:
        path = default_history_path()
        assert path.name == "history.json"
        assert path.parts[-4:-1] == ("zed", "extensions", "rest-client")


# =============================================================================
# Append and Load
# =============================================================================


class TestAppendAndLoad:
    """Tests for append() and load_all()."""

    def test_missing_file_loads_empty(self, store: HistoryStore) -> None:
        load = store.load_all()
        assert list(load) == []
        assert load.corrupted_lines == 0
        assert not store.exists()

    def test_append_creates_file_and_directory(self, temp_dir: Path, make_record) -> None:
        store = HistoryStore(temp_dir / "nested" / "dir" / "history.json")
        store.append(make_record())
        assert store.exists()
        assert store.count() == 1

    def test_append_then_load_round_trip(self, store: HistoryStore, make_record) -> None:
        records = [make_record(offset=i, tags=["t"] if i % 2 else []) for i in range(3)]
        for record in records:
            store.append(record)
        assert list(store.load_all()) == records

    def test_each_record_is_one_line(self, store: HistoryStore, make_record) -> None:
        for i in range(4):
            store.append(make_record(offset=i))
        lines = store.path.read_bytes().splitlines()
        assert len(lines) == 4

    def test_load_is_restartable(self, store: HistoryStore, make_record) -> None:
        store.append(make_record())
        load = store.load_all()
        assert len(list(load)) == 1
        assert len(list(load)) == 1

    def test_load_is_lazy(self, store: HistoryStore, make_record) -> None:
        """Creating the load does not touch the file."""
        load = store.load_all()
        store.append(make_record())
        assert len(list(load)) == 1

    def test_blank_lines_ignored(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0))
        with store.path.open("ab") as f:
            f.write(b"\n   \n")
        store.append(make_record(offset=1))
        load = store.load_all()
        assert len(list(load)) == 2
        assert load.corrupted_lines == 0

    def test_find(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0))
        store.append(make_record(offset=1))
        assert store.find("rec-0001").id == "rec-0001"
        assert store.find("missing") is None

    def test_load_recent_newest_first(self, store: HistoryStore, make_record) -> None:
        for offset in (5, 1, 3):
            store.append(make_record(offset=offset))
        recent = store.load_recent(2)
        assert [r.id for r in recent] == ["rec-0005", "rec-0003"]

    def test_load_recent_ties_prefer_later_lines(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=1, record_id="first"))
        store.append(make_record(offset=1, record_id="second"))
        assert [r.id for r in store.load_recent(2)] == ["second", "first"]

    def test_load_page(self, store: HistoryStore, make_record) -> None:
        for i in range(5):
            store.append(make_record(offset=i))
        page, total = store.load_page(1, 2)
        assert total == 5
        assert [r.id for r in page] == ["rec-0002", "rec-0003"]

        last, _ = store.load_page(2, 2)
        assert [r.id for r in last] == ["rec-0004"]


class TestCorruptionTolerance:
    """Tests for loading files with bad lines."""

    def test_bad_line_skipped_and_counted(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0))
        store.append(make_record(offset=1))
        with store.path.open("ab") as f:
            f.write(b"this is not json\n")
        store.append(make_record(offset=2))

        load = store.load_all()
        records = list(load)
        assert [r.id for r in records] == ["rec-0000", "rec-0001", "rec-0002"]
        assert load.corrupted_lines == 1
        assert load.valid_entries == 3

    def test_bad_line_is_logged(self, store: HistoryStore, make_record, caplog) -> None:
        store.append(make_record())
        with store.path.open("ab") as f:
            f.write(b"{broken\n")

        with caplog.at_level("WARNING", logger="recall.store.jsonl"):
            list(store.load_all())
        assert "line 2" in caplog.text

    def test_heavy_corruption_warning(self, store: HistoryStore, make_record, caplog) -> None:
        store.append(make_record())
        with store.path.open("ab") as f:
            f.write(b"bad\nworse\n")

        with caplog.at_level("WARNING", logger="recall.store.jsonl"):
            list(store.load_all())
        assert "significant corruption" in caplog.text

    def test_inspect_states(self, store: HistoryStore, make_record) -> None:
        assert store.inspect() == StoreState.ABSENT
        store.append(make_record())
        assert store.inspect() == StoreState.CLEAN
        with store.path.open("ab") as f:
            f.write(b"garbage\n")
        assert store.inspect() == StoreState.CORRUPT

    def test_repair_drops_bad_lines(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0))
        with store.path.open("ab") as f:
            f.write(b"garbage\n{\"id\": 1}\n")
        store.append(make_record(offset=1))

        report = store.repair()
        assert report.valid == 2
        assert report.corrupted == 2
        assert store.inspect() == StoreState.CLEAN
        assert store.path.read_bytes().count(b"\n") == 2

    def test_repair_missing_file(self, store: HistoryStore) -> None:
        report = store.repair()
        assert (report.valid, report.corrupted) == (0, 0)
        assert not store.exists()

    def test_torn_tail_does_not_swallow_next_record(
        self, store: HistoryStore, make_record
    ) -> None:
        store.append(make_record(offset=0))
        with store.path.open("ab") as f:
            f.write(b'{"id": "half-writ')
        store.append(make_record(offset=1))

        load = store.load_all()
        assert [r.id for r in load] == ["rec-0000", "rec-0001"]
        assert load.corrupted_lines == 1


# =============================================================================
# Failure Handling
# =============================================================================


class TestWriteFailures:
    """Tests for failed writes leaving the file intact."""

    def test_failed_append_leaves_file_unchanged(
        self, store: HistoryStore, make_record
    ) -> None:
        store.append(make_record(offset=0))
        before = store.path.read_bytes()

        with patch("recall.store.jsonl.os.fsync", side_effect=OSError("disk full")):
            with pytest.raises(StorageWriteError) as exc_info:
                store.append(make_record(offset=1))

        assert store.path.read_bytes() == before
        assert exc_info.value.operation == "append"
        assert "disk full" in exc_info.value.message

    def test_failed_rebuild_keeps_old_file(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0))
        before = store.path.read_bytes()

        with patch("recall.store.jsonl.os.replace", side_effect=OSError("busy")):
            with pytest.raises(StorageWriteError):
                store.rebuild([make_record(offset=5)])

        assert store.path.read_bytes() == before
        leftovers = [p for p in store.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_directory_failure(self, temp_dir: Path, make_record) -> None:
        blocker = temp_dir / "blocker"
        blocker.write_text("a file, not a directory")
        store = HistoryStore(blocker / "history.json")

        with pytest.raises(StorageDirectoryError):
            store.append(make_record())


# =============================================================================
# Rebuild and Clear
# =============================================================================


class TestRebuildAndClear:
    """Tests for rebuild() and clear()."""

    def test_rebuild_replaces_contents(self, store: HistoryStore, make_record) -> None:
        for i in range(3):
            store.append(make_record(offset=i))
        written = store.rebuild([make_record(offset=9)])
        assert written == 1
        assert [r.id for r in store.load_all()] == ["rec-0009"]

    def test_rebuild_empty(self, store: HistoryStore, make_record) -> None:
        store.append(make_record())
        store.rebuild([])
        assert store.exists()
        assert store.path.read_bytes() == b""
        assert list(store.load_all()) == []

    def test_rebuild_leaves_no_temp_files(self, store: HistoryStore, make_record) -> None:
        store.rebuild([make_record()])
        assert [p.name for p in store.path.parent.iterdir()] == ["history.json"]

    def test_clear_removes_file(self, store: HistoryStore, make_record) -> None:
        store.append(make_record())
        store.clear()
        assert not store.exists()
        assert list(store.load_all()) == []

    def test_clear_missing_file(self, store: HistoryStore) -> None:
        store.clear()
        assert not store.exists()

    def test_append_after_clear(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0))
        store.clear()
        store.append(make_record(offset=1))
        assert [r.id for r in store.load_all()] == ["rec-0001"]


# =============================================================================
# Quota
# =============================================================================


class TestQuotaManager:
    """Tests for entry-limit enforcement."""

    def test_maintain_keeps_newest(self, store: HistoryStore, make_record) -> None:
        for i in range(5):
            store.append(make_record(offset=i))
        evicted = QuotaManager(store).maintain_limit(3)
        assert evicted == 2
        assert [r.id for r in store.load_all()] == ["rec-0002", "rec-0003", "rec-0004"]

    def test_maintain_orders_by_timestamp_not_file_position(
        self, store: HistoryStore, make_record
    ) -> None:
        for offset in (4, 0, 3, 1, 2):
            store.append(make_record(offset=offset))
        QuotaManager(store).maintain_limit(2)
        assert [r.id for r in store.load_all()] == ["rec-0003", "rec-0004"]

    def test_maintain_ties_keep_later_lines(self, store: HistoryStore, make_record) -> None:
        store.append(make_record(offset=0, record_id="a"))
        store.append(make_record(offset=0, record_id="b"))
        QuotaManager(store).maintain_limit(1)
        assert [r.id for r in store.load_all()] == ["b"]

    def test_maintain_within_limit_does_not_rewrite(
        self, store: HistoryStore, make_record
    ) -> None:
        store.append(make_record())
        mtime = os.stat(store.path).st_mtime_ns
        with patch.object(store, "rebuild") as rebuild:
            assert QuotaManager(store).maintain_limit(5) == 0
        rebuild.assert_not_called()
        assert os.stat(store.path).st_mtime_ns == mtime

    def test_maintain_missing_file(self, store: HistoryStore) -> None:
        assert QuotaManager(store).maintain_limit(10) == 0
        assert not store.exists()

    def test_maintain_rejects_non_positive(self, store: HistoryStore) -> None:
        with pytest.raises(ValueError):
            QuotaManager(store).maintain_limit(0)

    def test_ensure_capacity(self, store: HistoryStore, make_record) -> None:
        quota = QuotaManager(store)
        assert quota.ensure_capacity(2) == 0
        store.append(make_record(offset=0))
        assert quota.ensure_capacity(2) == 1
        store.append(make_record(offset=1))

        with pytest.raises(HistoryQuotaExceededError) as exc_info:
            quota.ensure_capacity(2)
        assert exc_info.value.current_count == 2
        assert exc_info.value.max_count == 2

    def test_ensure_capacity_does_not_decode(self, store: HistoryStore, make_record) -> None:
        for offset in range(3):
            store.append(make_record(offset=offset))

        with patch("recall.store.jsonl.decode_line") as decode:
            assert QuotaManager(store).ensure_capacity(10) == 3
        decode.assert_not_called()

    def test_ensure_capacity_counts_corrupt_lines(
        self, store: HistoryStore, make_record
    ) -> None:
        store.append(make_record(offset=0))
        with store.path.open("ab") as f:
            f.write(b"not json\n\n")

        assert store.count() == 1
        assert store.count_lines() == 2
        with pytest.raises(HistoryQuotaExceededError):
            QuotaManager(store).ensure_capacity(2)

        store.repair()
        assert QuotaManager(store).ensure_capacity(2) == 1
