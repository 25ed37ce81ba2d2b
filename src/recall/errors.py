"""
Exception hierarchy for Recall.

All Recall exceptions inherit from RecallError, allowing callers to catch
all Recall-specific exceptions with a single except clause.

Exception Categories:
    - StorageError: The history file could not be created, read or written
    - SerializationError: A record could not be encoded or decoded
    - HistoryQuotaExceededError: Strict eviction refused an append at capacity
    - RecordNotFoundError: No stored record carries the requested ID

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (path, operation, record) where applicable
    - All errors provide actionable suggestions where possible
    - Errors are designed to be both human-readable and machine-parseable
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Storage errors: 5xxx
ERROR_STORAGE_DIRECTORY = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003

# Serialization errors: 6xxx
ERROR_SERIALIZATION = 6001

# Quota errors: 7xxx
ERROR_QUOTA_EXCEEDED = 7001

# Lookup errors: 8xxx
ERROR_RECORD_NOT_FOUND = 8001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class RecallError(Exception):
    """
    Base exception for all Recall errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(RecallError):
    """
    Base class for history file I/O errors.

    Attributes:
        operation: The operation that failed (e.g., "append", "rebuild")
        path: The history file involved
    """

    operation: str = ""
    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "operation": self.operation,
            "path": self.path,
        })


@dataclass
class StorageDirectoryError(StorageError):
    """Raised when the history directory cannot be created."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot create history directory for {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_DIRECTORY
        if not self.suggestion:
            self.suggestion = "Check that the parent directory exists and is writable"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageWriteError(StorageError):
    """Raised when writing to the history file fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"History write failed ({self.operation}): {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        if not self.suggestion:
            self.suggestion = "Check free disk space and permissions on the history file"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when the history file exists but cannot be read."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"History read failed ({self.operation}): {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        if not self.suggestion:
            self.suggestion = "Check read permissions on the history file"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Serialization Errors
# =============================================================================


@dataclass
class SerializationError(RecallError):
    """
    Raised when a record cannot be encoded, or a line cannot be decoded.

    During loading these are counted and logged rather than raised, so one
    corrupt line never hides the rest of the history.
    """

    line_number: int | None = None
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            where = f" at line {self.line_number}" if self.line_number else ""
            self.message = f"History serialization failed{where}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_SERIALIZATION
        self.context.update({
            "line_number": self.line_number,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Quota Errors
# =============================================================================


@dataclass
class HistoryQuotaExceededError(RecallError):
    """Raised by strict eviction when the history is already full."""

    current_count: int = 0
    max_count: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"History quota exceeded: {self.current_count} entries (max: {self.max_count})"
            )
        if self.code == 0:
            self.code = ERROR_QUOTA_EXCEEDED
        if not self.suggestion:
            self.suggestion = "Run 'recall maintain', raise max_entries, or switch eviction to after_append"
        self.context.update({
            "current_count": self.current_count,
            "max_count": self.max_count,
        })


# =============================================================================
# Lookup Errors
# =============================================================================


@dataclass
class RecordNotFoundError(RecallError):
    """Raised when no stored record has the requested ID."""

    record_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"History record not found: {self.record_id}"
        if self.code == 0:
            self.code = ERROR_RECORD_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Run 'recall list' to see stored record IDs"
        self.context["record_id"] = self.record_id
