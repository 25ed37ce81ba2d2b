"""
Header sanitization for history records.

Credentials must never reach the history file by default. When enabled,
sanitization removes (does not mask) every header whose name is on a fixed
deny-list, plus any header whose value is an authentication credential,
whatever the header is called.

A value counts as a credential only when it has the shape of one:
    - "Bearer <token>", "Token <token>": a single token68 of 8+ characters
      that is not a plain word
    - "Basic <token>": as above, or any base64 "user:password" pair
    - "Digest k=v, ...": a parameter list
Prose that merely starts with one of these words ("Basic tier",
"Token expired, please retry") is kept.

Security Note:
    This module is the only thing standing between a user's tokens and the
    disk. Changes to the deny-list should be reviewed carefully.
"""

import base64
import binascii
import re

from recall.schema import Header, HistoryRecord

# Compared case-insensitively
SENSITIVE_HEADERS: frozenset[str] = frozenset({
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "api-key",
    "auth-token",
    "x-auth-token",
    "access-token",
    "x-access-token",
    "bearer",
})

# RFC 7235 token68
TOKEN68 = r"[A-Za-z0-9\-._~+/]+=*"

# "<scheme> <token68>" such as "Bearer eyJ..." or "Basic dXNlcjpw..."
TOKEN_CREDENTIAL_PATTERN = re.compile(
    rf"^\s*(bearer|basic|token)\s+({TOKEN68})\s*$",
    re.IGNORECASE,
)

# 'Digest username="alice", realm="api", ...'
DIGEST_CREDENTIAL_PATTERN = re.compile(
    r'^\s*digest\s+[A-Za-z0-9_-]+\s*=\s*("[^"]*"|[^\s,"]+)\s*(,|$)',
    re.IGNORECASE,
)

MIN_TOKEN_LENGTH = 8


def _is_basic_pair(credential: str) -> bool:
    try:
        decoded = base64.b64decode(credential, validate=True)
    except (binascii.Error, ValueError):
        return False
    return b":" in decoded


def _looks_like_token(credential: str) -> bool:
    if len(credential) < MIN_TOKEN_LENGTH:
        return False
    # "unavailable" or "Expired" is a word, not a token
    is_word = credential.isalpha() and (credential.islower() or credential.istitle())
    return not is_word


def is_credential_value(value: str) -> bool:
    """Whether a header value has the shape of an authentication credential."""
    if DIGEST_CREDENTIAL_PATTERN.match(value):
        return True

    match = TOKEN_CREDENTIAL_PATTERN.match(value)
    if match is None:
        return False
    scheme, credential = match.group(1).lower(), match.group(2)
    if scheme == "basic" and _is_basic_pair(credential):
        return True
    return _looks_like_token(credential)


def is_sensitive_header(name: str, value: str) -> bool:
    """
    Check whether a header carries a secret.

    Args:
        name: Header name
        value: Header value

    Returns:
        True if the name is on the deny-list or the value looks like a credential
    """
    if name.strip().lower() in SENSITIVE_HEADERS:
        return True
    return is_credential_value(value)


def strip_sensitive(headers: list[Header]) -> list[Header]:
    """Return the headers without the secret-bearing ones, order preserved."""
    return [(name, value) for name, value in headers if not is_sensitive_header(name, value)]


def sanitize_headers(record: HistoryRecord, enabled: bool) -> HistoryRecord:
    """
    Remove secret-bearing headers from both halves of a record.

    Idempotent: a sanitized record has nothing left to remove.

    Args:
        record: The record to sanitize
        enabled: When False the record is returned unchanged

    Returns:
        The sanitized record (the same object if nothing was removed)
    """
    if not enabled:
        return record

    request_headers = strip_sensitive(record.request.headers)
    response = record.response
    response_headers = strip_sensitive(response.headers) if response else []

    request_changed = len(request_headers) != len(record.request.headers)
    response_changed = response is not None and len(response_headers) != len(response.headers)
    if not request_changed and not response_changed:
        return record

    update = {}
    if request_changed:
        update["request"] = record.request.model_copy(update={"headers": request_headers})
    if response_changed:
        update["response"] = response.model_copy(update={"headers": response_headers})
    return record.model_copy(update=update)
