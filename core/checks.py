"""Small value checks used when validating untrusted JSON."""

from __future__ import annotations

import json
import re
from typing import Any, Optional
from urllib.parse import SplitResult, urlsplit

_ISO8601_MILLIS_UTC = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z")
_UUID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)

# Sentinel distinguishing "not JSON" from a JSON null.
INVALID = object()


def is_string_record(obj: Any) -> bool:
    """True for a JSON object (a plain dict)."""
    return type(obj) is dict


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


def try_parse_json(text: str) -> Any:
    """Parse *text* as strict JSON, returning INVALID on failure."""
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return INVALID


def try_decode_text(data: bytes) -> Optional[str]:
    """Decode strict UTF-8, or None if *data* is not valid UTF-8."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def try_parse_url(value: str) -> Optional[SplitResult]:
    """Parse an absolute URL (scheme required), or None."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if not parts.scheme or not re.fullmatch(r"[A-Za-z][A-Za-z0-9+.-]*", parts.scheme):
        return None
    # hierarchical schemes need an authority; opaque ones (mailto:, urn:) need a path
    if not parts.netloc and not parts.path:
        return None
    if any(ch.isspace() for ch in value):
        return None
    return parts


def is_valid_url(value: str) -> bool:
    return try_parse_url(value) is not None


def is_valid_iso8601(value: str) -> bool:
    """Strict ``YYYY-MM-DDTHH:MM:SS.sssZ`` (millisecond precision, UTC)."""
    return _ISO8601_MILLIS_UTC.fullmatch(value) is not None


def is_valid_uuid(value: str) -> bool:
    return _UUID.fullmatch(value) is not None
