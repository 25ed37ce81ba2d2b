"""
Schema definitions for Recall.

This module defines all the Pydantic models used throughout Recall:
- RequestSnapshot/ResponseSnapshot: The two halves of an HTTP exchange
- HistoryRecord: One stored entry in the history log
- HistoryConfig: The options controlling what is stored and how it is bounded

Design Decisions:
    - Records are immutable (frozen=True); transforms return new records
    - Identifiers and timestamps are derived in HistoryRecord.new(), never passed in
    - Headers are ordered (name, value) pairs so duplicates survive a round trip
    - Binary response bodies are kept as base64 text so every line stays valid JSON

Why Pydantic?
    - Type safety with runtime validation of every loaded line
    - Automatic JSON serialization for the line-delimited store
    - Clear error messages for malformed records and config files
"""

import base64
import threading
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAX_ENTRIES = 1000

Header = tuple[str, str]


# =============================================================================
# Enums
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP request methods that can appear in history."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    CONNECT = "CONNECT"
    TRACE = "TRACE"


class BodyEncoding(str, Enum):
    """How a response body is represented in the ``body`` field."""

    TEXT = "text"
    BASE64 = "base64"


class EvictionPolicy(str, Enum):
    """
    When the entry limit is enforced.

    MANUAL leaves maintenance to the caller, AFTER_APPEND trims the log after
    appends, STRICT refuses appends once the log is full.
    """

    MANUAL = "manual"
    AFTER_APPEND = "after_append"
    STRICT = "strict"


# =============================================================================
# Identity and Time
# =============================================================================

_clock_lock = threading.Lock()
_last_timestamp: datetime | None = None


def generate_id() -> str:
    """Generate a unique ID for a history record."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """
    Current UTC time, strictly increasing within this process.

    A wall clock that stalls or steps backwards is bumped one microsecond
    past the previous value.
    """
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(UTC)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


def find_header(headers: list[Header], name: str) -> str | None:
    """Return the first value for a header name (case-insensitive)."""
    lowered = name.lower()
    for key, value in headers:
        if key.lower() == lowered:
            return value
    return None


def encode_body(raw: bytes) -> tuple[str, BodyEncoding]:
    """Represent a raw body as text, falling back to base64 for non UTF-8 payloads."""
    try:
        return raw.decode("utf-8"), BodyEncoding.TEXT
    except UnicodeDecodeError:
        return base64.b64encode(raw).decode("ascii"), BodyEncoding.BASE64


def decode_body(body: str, encoding: BodyEncoding) -> bytes:
    """Inverse of encode_body()."""
    if encoding == BodyEncoding.BASE64:
        return base64.b64decode(body)
    return body.encode("utf-8")


def ensure_utf8(value: str) -> str:
    """
    Reject text that cannot be written as UTF-8.

    Lone surrogates (e.g. from ``surrogateescape`` decoding) survive in a
    str but fail on encode, which would only surface when the record is
    measured or written.
    """
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        msg = f"text is not valid UTF-8 at position {e.start}"
        raise ValueError(msg) from e
    return value


def _accept_raw_body(data: Any) -> Any:
    """Turn a bytes ``body`` into its text form plus ``body_encoding``."""
    if isinstance(data, dict) and isinstance(data.get("body"), (bytes, bytearray)):
        text, encoding = encode_body(bytes(data["body"]))
        data = {**data, "body": text, "body_encoding": encoding}
    return data


def _check_headers(headers: list[Header]) -> list[Header]:
    for name, value in headers:
        ensure_utf8(name)
        ensure_utf8(value)
    return headers


# =============================================================================
# Exchange Snapshots
# =============================================================================


class RequestSnapshot(BaseModel):
    """
    The outbound half of an exchange.

    A ``bytes`` body is accepted and stored as text, or as base64 when it
    is not UTF-8.

    Attributes:
        method: HTTP method
        url: Request target
        headers: Ordered (name, value) pairs, duplicates allowed
        body: Request body as text, or base64 when body_encoding is BASE64
        body_encoding: Representation of ``body``
        http_version: Protocol version as written in the request, if known
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: HttpMethod = Field(default=HttpMethod.GET, description="HTTP method")
    url: str = Field(..., description="Request target", min_length=1)
    headers: list[Header] = Field(
        default_factory=list,
        description="Ordered (name, value) header pairs",
    )
    body: str | None = Field(default=None, description="Request body")
    body_encoding: BodyEncoding = Field(
        default=BodyEncoding.TEXT,
        description="Representation of the body field",
    )
    http_version: str | None = Field(default=None, description="HTTP version")

    @model_validator(mode="before")
    @classmethod
    def accept_raw_body(cls, data: Any) -> Any:
        return _accept_raw_body(data)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        """Accept lowercase method names."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("url")
    @classmethod
    def url_is_utf8(cls, v: str) -> str:
        return ensure_utf8(v)

    @field_validator("headers")
    @classmethod
    def headers_are_utf8(cls, v: list[Header]) -> list[Header]:
        return _check_headers(v)

    @field_validator("body")
    @classmethod
    def body_is_utf8(cls, v: str | None) -> str | None:
        return ensure_utf8(v) if v is not None else v

    @classmethod
    def from_bytes(
        cls,
        method: HttpMethod | str,
        url: str,
        body: bytes,
        headers: list[Header] | None = None,
    ) -> "RequestSnapshot":
        """Build a snapshot from a raw body."""
        return cls(method=method, url=url, headers=list(headers or []), body=body)

    @property
    def body_bytes(self) -> bytes | None:
        """The body as raw bytes, None when there is no body."""
        if self.body is None:
            return None
        return decode_body(self.body, self.body_encoding)

    def header(self, name: str) -> str | None:
        """Return the first value of a header, or None."""
        return find_header(self.headers, name)


class ResponseSnapshot(BaseModel):
    """
    The inbound half of an exchange.

    Attributes:
        status_code: HTTP status code
        status_text: Reason phrase
        headers: Ordered (name, value) pairs, duplicates allowed
        body: Body as text, or base64 when body_encoding is BASE64
        body_encoding: Representation of ``body``
        duration_ms: Time from send to last byte
        truncated: Whether the body was replaced by a size-limit marker
        original_size: Body size in bytes before truncation
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int = Field(..., description="HTTP status code", ge=100, le=599)
    status_text: str = Field(default="", description="Reason phrase")
    headers: list[Header] = Field(
        default_factory=list,
        description="Ordered (name, value) header pairs",
    )
    body: str = Field(default="", description="Response body")
    body_encoding: BodyEncoding = Field(
        default=BodyEncoding.TEXT,
        description="Representation of the body field",
    )
    duration_ms: float = Field(default=0.0, description="Exchange duration", ge=0)
    truncated: bool = Field(default=False, description="Body elided for size")
    original_size: int | None = Field(
        default=None,
        description="Body size in bytes before truncation",
        ge=0,
    )

    @model_validator(mode="before")
    @classmethod
    def accept_raw_body(cls, data: Any) -> Any:
        return _accept_raw_body(data)

    @field_validator("status_text", "body")
    @classmethod
    def text_is_utf8(cls, v: str) -> str:
        return ensure_utf8(v)

    @field_validator("headers")
    @classmethod
    def headers_are_utf8(cls, v: list[Header]) -> list[Header]:
        return _check_headers(v)

    @classmethod
    def from_bytes(
        cls,
        status_code: int,
        body: bytes,
        status_text: str = "",
        headers: list[Header] | None = None,
        duration_ms: float = 0.0,
    ) -> "ResponseSnapshot":
        """Build a snapshot from a raw body, base64-encoding non UTF-8 payloads."""
        return cls(
            status_code=status_code,
            status_text=status_text,
            headers=list(headers or []),
            body=body,
            duration_ms=duration_ms,
        )

    @property
    def body_bytes(self) -> bytes:
        """The body as raw bytes."""
        return decode_body(self.body, self.body_encoding)

    @property
    def body_size(self) -> int:
        """Size of the body payload in bytes (decoded, not as stored)."""
        return len(self.body_bytes)

    def header(self, name: str) -> str | None:
        """Return the first value of a header, or None."""
        return find_header(self.headers, name)

    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600


# =============================================================================
# History Record
# =============================================================================


class HistoryRecord(BaseModel):
    """
    One persisted request/response pair with its metadata.

    Create new records with HistoryRecord.new(); the constructor is used
    when loading stored lines, where id and timestamp are restored verbatim.

    Attributes:
        id: Unique identifier, used for reference only
        timestamp: Creation instant in UTC
        request: The outbound request
        response: The inbound response, None if the exchange failed first
        tags: User labels with set semantics
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique record identifier", min_length=1)
    timestamp: datetime = Field(..., description="Creation instant (UTC)")
    request: RequestSnapshot = Field(..., description="Outbound request")
    response: ResponseSnapshot | None = Field(
        default=None,
        description="Inbound response, absent if none was received",
    )
    tags: tuple[str, ...] = Field(default=(), description="User tags")

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Normalize timestamps to aware UTC datetimes."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @classmethod
    def new(
        cls,
        request: RequestSnapshot,
        response: ResponseSnapshot | None,
        tags: Iterable[str] | None = None,
    ) -> "HistoryRecord":
        """Create a record with a fresh ID and the current UTC timestamp."""
        unique_tags = tuple(dict.fromkeys(tags or ()))
        return cls(
            id=generate_id(),
            timestamp=utc_now(),
            request=request,
            response=response,
            tags=unique_tags,
        )

    @property
    def status_code(self) -> int | None:
        """Response status code, or None when there is no response."""
        return self.response.status_code if self.response else None

    def should_save(self) -> bool:
        """Whether the exchange succeeded (2xx) or redirected (3xx)."""
        if self.response is None:
            return False
        return self.response.is_success() or self.response.is_redirect()

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def add_tag(self, tag: str) -> "HistoryRecord":
        """Return a copy carrying ``tag``; a no-op when already present."""
        if tag in self.tags:
            return self
        return self.model_copy(update={"tags": (*self.tags, tag)})

    def remove_tag(self, tag: str) -> "HistoryRecord":
        """Return a copy without ``tag``."""
        if tag not in self.tags:
            return self
        return self.model_copy(update={"tags": tuple(t for t in self.tags if t != tag)})


# =============================================================================
# Configuration
# =============================================================================


class HistoryConfig(BaseModel):
    """
    Options controlling what is stored and how the log is bounded.

    Accepts snake_case names and the camelCase spelling used by editor
    settings (``historyLimit``, ``saveFailedRequests``, ...).

    Attributes:
        max_entries: Maximum number of records kept
        sanitize_sensitive_headers: Strip credential headers before storage
        save_failed_requests: Also store 4xx/5xx and response-less exchanges
        eviction: When the limit is enforced
        maintain_interval: Appends between maintenance runs (after_append only)
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    max_entries: int = Field(
        default=DEFAULT_MAX_ENTRIES,
        alias="historyLimit",
        description="Maximum number of records kept",
        gt=0,
    )
    sanitize_sensitive_headers: bool = Field(
        default=True,
        description="Strip credential headers before storage",
    )
    save_failed_requests: bool = Field(
        default=False,
        description="Store 4xx/5xx and failed exchanges too",
    )
    eviction: EvictionPolicy = Field(
        default=EvictionPolicy.MANUAL,
        description="When the entry limit is enforced",
    )
    maintain_interval: int = Field(
        default=1,
        description="Appends between maintenance runs under after_append",
        gt=0,
    )


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_config(path: Path | str) -> HistoryConfig:
    """
    Load a history configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated HistoryConfig object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return HistoryConfig.model_validate(data or {})


def load_config_from_string(content: str) -> HistoryConfig:
    """Load a history configuration from a YAML string."""
    data = yaml.safe_load(content)
    return HistoryConfig.model_validate(data or {})
