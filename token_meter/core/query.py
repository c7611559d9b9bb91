"""
Metrics query boundary.

Validates caller input before it reaches the aggregation engine and runs
the load-then-aggregate query path against a store.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from .aggregation import MetricsResponse, aggregate_metrics, to_utc
from token_meter.storage.json_store import JSONStore
from token_meter.storage.models import parse_rfc3339, utc_now

DEFAULT_WINDOW = timedelta(hours=24)


class InvalidQueryError(ValueError):
    """Raised when query parameters are malformed or inconsistent."""


@dataclass(frozen=True)
class MetricsQuery:
    """Validated metrics query."""
    from_time: datetime
    to_time: datetime
    model: str = ""

    def __post_init__(self):
        """Validate the window is not inverted."""
        if to_utc(self.to_time) < to_utc(self.from_time):
            raise InvalidQueryError("'to' must be after 'from'")


def _parse_bound(value: str, name: str) -> datetime:
    try:
        parsed = parse_rfc3339(value)
    except ValueError:
        raise InvalidQueryError(f"invalid '{name}' timestamp format, expected RFC3339")
    if parsed.tzinfo is None:
        raise InvalidQueryError(f"invalid '{name}' timestamp format, expected RFC3339")
    return parsed


def parse_metrics_query(
    from_str: Optional[str] = None,
    to_str: Optional[str] = None,
    model: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MetricsQuery:
    """Parse raw query parameters into a MetricsQuery.

    Missing bounds default to the last 24 hours ending at ``now``.

    Args:
        from_str: RFC3339 start of the window
        to_str: RFC3339 end of the window
        model: Exact model name filter
        now: Reference time for defaults (current UTC time if omitted)

    Returns:
        Validated MetricsQuery

    Raises:
        InvalidQueryError: If a timestamp is malformed or 'to' precedes 'from'
    """
    if now is None:
        now = utc_now()

    from_time = _parse_bound(from_str, "from") if from_str else now - DEFAULT_WINDOW
    to_time = _parse_bound(to_str, "to") if to_str else now

    return MetricsQuery(from_time=from_time, to_time=to_time, model=model or "")


def get_metrics(store: Optional[JSONStore], query: MetricsQuery) -> MetricsResponse:
    """Load stored events and aggregate them for a query.

    Args:
        store: Usage store, or None when statistics are not configured
        query: Validated query

    Returns:
        Aggregated metrics; empty when no store is configured

    Raises:
        LoadError: If the usage log cannot be read
    """
    if store is None:
        return MetricsResponse()

    events = store.load()
    return aggregate_metrics(events, query.from_time, query.to_time, query.model)


def health() -> Dict[str, bool]:
    """Health payload for the metrics endpoints."""
    return {"ok": True}
