"""
Usage aggregation over stored events.

Turns a sequence of usage events into totals, a per-model breakdown and an
hourly time series for a time window and optional model filter.

Aggregation is pure:
1. No I/O and no shared state
2. Deterministic results for the same inputs
3. Safe to call concurrently from many query handlers

All times are compared and bucketed in UTC. Naive timestamps are treated
as UTC.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from token_meter.storage.models import UsageEvent, format_timestamp


@dataclass
class MetricsTotals:
    """Overall token and request counts."""
    tokens: int = 0
    requests: int = 0


@dataclass
class ModelMetrics:
    """Token and request counts for a single model."""
    model: str
    tokens: int = 0
    requests: int = 0


@dataclass
class TimeseriesBucket:
    """Token and request counts for one hour, starting at ``bucket_start``."""
    bucket_start: datetime
    tokens: int = 0
    requests: int = 0


@dataclass
class MetricsResponse:
    """Aggregated metrics for a query window."""
    totals: MetricsTotals = field(default_factory=MetricsTotals)
    by_model: List[ModelMetrics] = field(default_factory=list)
    timeseries: List[TimeseriesBucket] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON response shape served to the dashboard."""
        return {
            "totals": {
                "tokens": self.totals.tokens,
                "requests": self.totals.requests,
            },
            "by_model": [
                {"model": m.model, "tokens": m.tokens, "requests": m.requests}
                for m in self.by_model
            ],
            "timeseries": [
                {
                    "bucket_start": format_timestamp(b.bucket_start),
                    "tokens": b.tokens,
                    "requests": b.requests,
                }
                for b in self.timeseries
            ],
        }


def to_utc(value: datetime) -> datetime:
    """Normalize a timestamp to an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hour_bucket(value: datetime) -> datetime:
    """Floor a timestamp to the start of its UTC hour."""
    return to_utc(value).replace(minute=0, second=0, microsecond=0)


def aggregate_metrics(
    events: Iterable[UsageEvent],
    from_time: datetime,
    to_time: datetime,
    model_filter: str = "",
) -> MetricsResponse:
    """Aggregate usage events inside a time window.

    An event is counted when ``from_time <= timestamp <= to_time`` and,
    if ``model_filter`` is set, its model matches exactly (case-sensitive).
    The window is assumed to be well formed; inverted windows must be
    rejected by the caller.

    Args:
        events: Usage events in any order
        from_time: Start of the window (inclusive)
        to_time: End of the window (inclusive)
        model_filter: Exact model name to keep, or empty for all models

    Returns:
        MetricsResponse with totals, per-model metrics sorted by tokens
        descending (ties keep discovery order) and hourly buckets sorted
        ascending
    """
    start = to_utc(from_time)
    end = to_utc(to_time)

    totals = MetricsTotals()
    by_model: Dict[str, ModelMetrics] = {}
    by_hour: Dict[datetime, TimeseriesBucket] = {}

    for event in events:
        timestamp = to_utc(event.timestamp)
        if timestamp < start or timestamp > end:
            continue
        if model_filter and event.model != model_filter:
            continue

        totals.tokens += event.total_tokens
        totals.requests += 1

        model_stats = by_model.get(event.model)
        if model_stats is None:
            model_stats = by_model[event.model] = ModelMetrics(model=event.model)
        model_stats.tokens += event.total_tokens
        model_stats.requests += 1

        bucket_start = hour_bucket(timestamp)
        bucket = by_hour.get(bucket_start)
        if bucket is None:
            bucket = by_hour[bucket_start] = TimeseriesBucket(bucket_start=bucket_start)
        bucket.tokens += event.total_tokens
        bucket.requests += 1

    # sorted() is stable, so equal token counts keep discovery order
    models = sorted(by_model.values(), key=lambda m: m.tokens, reverse=True)
    timeseries = sorted(by_hour.values(), key=lambda b: b.bucket_start)

    return MetricsResponse(totals=totals, by_model=models, timeseries=timeseries)
