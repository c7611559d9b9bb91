"""
Data models for storage layer.

Defines the usage event persisted by the JSON Lines store and its
line-level encoding.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

# Fractional seconds beyond microsecond precision (e.g. nanosecond logs)
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")

# Full RFC3339 date-time: seconds and an explicit offset are required
_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 / ISO 8601 timestamp.

    Accepts a trailing ``Z`` and truncates sub-microsecond fractions.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    return datetime.fromisoformat(text)


def parse_rfc3339(value: str) -> datetime:
    """Parse a strict RFC3339 timestamp with seconds and an offset.

    Raises:
        ValueError: If the value is not RFC3339
    """
    if not isinstance(value, str) or not _RFC3339_RE.match(value.strip()):
        raise ValueError(f"not an RFC3339 timestamp: {value!r}")
    return parse_timestamp(value)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as RFC3339, using ``Z`` for UTC.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def _int_field(data: Dict[str, Any], name: str) -> int:
    value = data.get(name, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{name}' must be an integer")
    return value


def _str_field(data: Dict[str, Any], name: str) -> str:
    value = data.get(name, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a string")
    return value


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one completed API request.

    Append-only events that make up the usage log.
    Once written, these records must never be modified.

    ``total_tokens`` is supplied by the caller and is never re-derived here.
    ``api_key_hash`` holds a digest of the caller's credential, never the
    credential itself.
    """
    timestamp: datetime
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    status: int
    request_id: str = ""
    api_key_hash: str = ""

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.prompt_tokens < 0:
            raise ValueError("prompt_tokens cannot be negative")
        if self.completion_tokens < 0:
            raise ValueError("completion_tokens cannot be negative")
        if self.total_tokens < 0:
            raise ValueError("total_tokens cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dict, omitting empty optional fields."""
        data: Dict[str, Any] = {
            "timestamp": format_timestamp(self.timestamp),
            "model": self.model,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "status": self.status,
        }
        if self.request_id:
            data["request_id"] = self.request_id
        if self.api_key_hash:
            data["api_key_hash"] = self.api_key_hash
        return data

    def to_json(self) -> str:
        """Convert to a single-line JSON string for JSONL storage."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageEvent":
        """Build an event from a decoded JSON object.

        Args:
            data: Decoded JSON object

        Returns:
            The parsed UsageEvent

        Raises:
            ValueError: If the object is not a valid event
        """
        if not isinstance(data, dict):
            raise ValueError("event must be a JSON object")
        if "timestamp" not in data:
            raise ValueError("missing required 'timestamp'")

        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            model=_str_field(data, "model"),
            prompt_tokens=_int_field(data, "prompt_tokens"),
            completion_tokens=_int_field(data, "completion_tokens"),
            total_tokens=_int_field(data, "total_tokens"),
            status=_int_field(data, "status"),
            request_id=_str_field(data, "request_id"),
            api_key_hash=_str_field(data, "api_key_hash"),
        )

    @classmethod
    def from_json(cls, line: str) -> "UsageEvent":
        """Parse one JSONL line.

        Raises:
            ValueError: If the line is not valid JSON or not a valid event
        """
        return cls.from_dict(json.loads(line))


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
