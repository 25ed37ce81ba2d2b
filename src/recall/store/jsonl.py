"""
Line-delimited storage for Recall.

This module persists history records to a single file holding one JSON
object per line. There is no header, footer or index; a sequential scan is
the only access path.

Design Principles:
    - Append-only writes: a new record is one buffered write at the end of the file
    - Corruption tolerance: a bad line is skipped, never fatal to a load
    - Atomic rewrites: maintenance writes a temporary file and replaces the log
    - Owned handle: every HistoryStore is bound to exactly one path

States of the log file:
    - ABSENT: no file yet (loads are empty, the first append creates it)
    - CLEAN: every non-blank line parses
    - CORRUPT: at least one line fails to parse (repair() rewrites it clean)

Concurrency:
    One writer per file. HistoryStore does no locking of its own; callers
    serialize writes (see recall.history.History).
"""

import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from recall.errors import (
    SerializationError,
    StorageDirectoryError,
    StorageReadError,
    StorageWriteError,
)
from recall.schema import HistoryRecord

logger = logging.getLogger(__name__)

HISTORY_FILE_NAME = "history.json"

# <config dir>/zed/extensions/rest-client/history.json
HISTORY_NAMESPACE = ("zed", "extensions", "rest-client")


class StoreState(str, Enum):
    """Observable state of a history file."""

    ABSENT = "absent"
    CLEAN = "clean"
    CORRUPT = "corrupt"


@dataclass(frozen=True)
class RepairReport:
    """
    Outcome of rewriting a history file from its valid lines.

    Attributes:
        valid: Records kept
        corrupted: Lines dropped because they did not parse
    """

    valid: int
    corrupted: int


def default_history_path() -> Path:
    """
    Per-user location of the history file.

    The directory is not created here; the first append creates it.
    """
    if os.name == "nt":
        base = Path(os.environ.get("USERPROFILE", str(Path.home()))) / "AppData" / "Roaming"
    else:
        base = Path.home() / ".config"
    return base.joinpath(*HISTORY_NAMESPACE, HISTORY_FILE_NAME)


def encode_record(record: HistoryRecord) -> bytes:
    """Serialize a record to one newline-terminated UTF-8 line."""
    try:
        line = record.model_dump_json()
    except (ValueError, TypeError) as e:
        raise SerializationError(underlying_error=str(e)) from e
    return (line + "\n").encode("utf-8")


def decode_line(raw: bytes, line_number: int | None = None) -> HistoryRecord:
    """
    Parse one stored line back into a record.

    Raises:
        SerializationError: If the line is not valid UTF-8 or not a valid record
    """
    try:
        text = raw.decode("utf-8")
        return HistoryRecord.model_validate_json(text)
    except (UnicodeDecodeError, ValidationError) as e:
        raise SerializationError(line_number=line_number, underlying_error=str(e)) from e


class HistoryLoad:
    """
    Lazy, restartable view over a history file.

    Every iteration reopens the file and yields records in file order.
    Lines that fail to parse are skipped and counted; the counters describe
    the most recent pass.

    Usage:
        load = store.load_all()
        records = list(load)
        if load.corrupted_lines:
            print(f"{load.corrupted_lines} lines skipped")
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.valid_entries = 0
        self.corrupted_lines = 0

    def __iter__(self) -> Iterator[HistoryRecord]:
        self.valid_entries = 0
        self.corrupted_lines = 0

        try:
            handle = self.path.open("rb")
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageReadError(
                operation="load",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

        with handle:
            try:
                for line_number, raw in enumerate(handle, start=1):
                    if not raw.strip():
                        continue
                    try:
                        record = decode_line(raw, line_number)
                    except SerializationError as e:
                        self.corrupted_lines += 1
                        logger.warning(
                            "Skipping corrupted history entry at line %d of %s: %s",
                            line_number,
                            self.path,
                            e.underlying_error.splitlines()[0] if e.underlying_error else "",
                        )
                        continue
                    self.valid_entries += 1
                    yield record
            except OSError as e:
                raise StorageReadError(
                    operation="load",
                    path=str(self.path),
                    underlying_error=str(e),
                ) from e

        if self.corrupted_lines > self.valid_entries:
            logger.warning(
                "History file %s has significant corruption (%d corrupted lines, %d valid entries)",
                self.path,
                self.corrupted_lines,
                self.valid_entries,
            )


class HistoryStore:
    """
    Line-delimited history file bound to one path.

    Usage:
        store = HistoryStore("history.json")
        store.append(record)
        for record in store.load_all():
            ...
        store.rebuild(kept_records)
        store.clear()
    """

    def __init__(self, path: str | Path | None = None) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the history file. Defaults to the per-user
                  location from default_history_path(). Nothing is created
                  until the first write.
        """
        self.path = Path(path) if path is not None else default_history_path()

    def __repr__(self) -> str:
        return f"<HistoryStore: {self.path}>"

    def exists(self) -> bool:
        return self.path.exists()

    def _ensure_directory(self, operation: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageDirectoryError(
                operation=operation,
                path=str(self.path),
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Write Operations
    # =========================================================================

    def append(self, record: HistoryRecord) -> None:
        """
        Append one record to the end of the file.

        The full line is encoded before the file is opened and written with a
        single call, then flushed and synced. If the write fails the file is
        cut back to its previous length, so either the whole line lands or
        nothing does. Existing content is never rewritten; only the last byte
        is read, to start on a fresh line after a torn tail.

        Raises:
            SerializationError: If the record cannot be encoded
            StorageDirectoryError: If the parent directory cannot be created
            StorageWriteError: If the line cannot be written and flushed
        """
        line = encode_record(record)
        self._ensure_directory("append")

        try:
            with self.path.open("a+b") as f:
                size_before = f.seek(0, os.SEEK_END)
                if size_before > 0:
                    f.seek(size_before - 1)
                    if f.read(1) != b"\n":
                        logger.warning(
                            "History file %s does not end with a newline; starting a new line",
                            self.path,
                        )
                        line = b"\n" + line
                try:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
                except OSError:
                    f.truncate(size_before)
                    raise
        except OSError as e:
            raise StorageWriteError(
                operation="append",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

        logger.debug("Appended history record %s to %s", record.id, self.path)

    def rebuild(self, records: Iterable[HistoryRecord]) -> int:
        """
        Replace the file with exactly the given records.

        Records are written to a temporary file in the same directory which
        then replaces the log in one rename, so readers see either the old
        file or the new one. On failure the old file is left untouched.

        Returns:
            Number of records written
        """
        lines = [encode_record(record) for record in records]
        self._ensure_directory("rebuild")

        tmp_path: Path | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{self.path.name}.",
                suffix=".tmp",
                dir=self.path.parent,
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.writelines(lines)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise StorageWriteError(
                operation="rebuild",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

        logger.info("Rebuilt history file %s with %d records", self.path, len(lines))
        return len(lines)

    def clear(self) -> None:
        """Remove every entry by deleting the file."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageWriteError(
                operation="clear",
                path=str(self.path),
                underlying_error=str(e),
            ) from e
        logger.info("Cleared history file %s", self.path)

    # =========================================================================
    # Read Operations
    # =========================================================================

    def load_all(self) -> HistoryLoad:
        """Lazy, restartable sequence of every valid record in file order."""
        return HistoryLoad(self.path)

    def count(self) -> int:
        """Number of valid records in the file."""
        return sum(1 for _ in self.load_all())

    def count_lines(self) -> int:
        """
        Number of non-blank lines in the file, without decoding them.

        Equals count() on a clean file. Corrupt lines are included.
        """
        try:
            with self.path.open("rb") as handle:
                return sum(1 for raw in handle if raw.strip())
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise StorageReadError(
                operation="count",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

    def find(self, record_id: str) -> HistoryRecord | None:
        """Look up a record by ID."""
        for record in self.load_all():
            if record.id == record_id:
                return record
        return None

    def load_recent(self, count: int) -> list[HistoryRecord]:
        """
        The newest records, newest first.

        Equal timestamps are ordered by file position, later lines first.
        """
        records = list(self.load_all())
        records.reverse()
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[:count]

    def load_page(self, page: int, page_size: int) -> tuple[list[HistoryRecord], int]:
        """
        One page of records in file order.

        Args:
            page: Zero-based page number
            page_size: Records per page

        Returns:
            (records on this page, total number of valid records)
        """
        start = page * page_size
        page_records: list[HistoryRecord] = []
        total = 0
        for record in self.load_all():
            if start <= total < start + page_size:
                page_records.append(record)
            total += 1
        return page_records, total

    # =========================================================================
    # Maintenance
    # =========================================================================

    def inspect(self) -> StoreState:
        """Scan the file and report its state."""
        if not self.exists():
            return StoreState.ABSENT
        load = self.load_all()
        for _ in load:
            pass
        return StoreState.CORRUPT if load.corrupted_lines else StoreState.CLEAN

    def repair(self) -> RepairReport:
        """Rewrite the file keeping only the lines that parse."""
        if not self.exists():
            return RepairReport(valid=0, corrupted=0)

        load = self.load_all()
        records = list(load)
        corrupted = load.corrupted_lines
        self.rebuild(records)

        if corrupted:
            logger.info("Dropped %d corrupted lines from %s", corrupted, self.path)
        return RepairReport(valid=len(records), corrupted=corrupted)
