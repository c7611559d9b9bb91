"""
Tests for the metrics query boundary.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from token_meter.core.query import (
    InvalidQueryError,
    MetricsQuery,
    get_metrics,
    health,
    parse_metrics_query,
)
from token_meter.storage.json_store import JSONStore, LoadError
from token_meter.storage.models import UsageEvent


UTC = timezone.utc
NOW = datetime(2025, 11, 26, 12, 0, tzinfo=UTC)


class TestParseMetricsQuery:
    """Test validation of raw query parameters."""

    def test_defaults_to_last_24_hours(self):
        query = parse_metrics_query(now=NOW)

        assert query.from_time == NOW - timedelta(hours=24)
        assert query.to_time == NOW
        assert query.model == ""

    def test_explicit_window_and_model(self):
        query = parse_metrics_query(
            "2025-11-25T00:00:00Z", "2025-11-26T00:00:00+00:00", "gpt-4", now=NOW
        )

        assert query.from_time == datetime(2025, 11, 25, tzinfo=UTC)
        assert query.to_time == datetime(2025, 11, 26, tzinfo=UTC)
        assert query.model == "gpt-4"

    def test_only_from_given(self):
        query = parse_metrics_query(from_str="2025-11-20T00:00:00Z", now=NOW)

        assert query.to_time == NOW

    def test_only_to_given(self):
        query = parse_metrics_query(to_str="2025-11-26T06:00:00Z", now=NOW)

        assert query.from_time == NOW - timedelta(hours=24)

    @pytest.mark.parametrize("field", ["from", "to"])
    @pytest.mark.parametrize("value", [
        "yesterday", "2025-11-25", "2025-11-25T00:00:00",
        "2025-11-25T00:00+00:00", "20251125T000000Z", "2025-11-25 00:00:00Z",
    ])
    def test_rejects_non_rfc3339(self, field, value):
        """Test malformed and offset-less timestamps."""
        kwargs = {"from_str" if field == "from" else "to_str": value, "now": NOW}

        with pytest.raises(InvalidQueryError, match=f"invalid '{field}' timestamp format, expected RFC3339"):
            parse_metrics_query(**kwargs)

    def test_rejects_inverted_window(self):
        with pytest.raises(InvalidQueryError, match="'to' must be after 'from'"):
            parse_metrics_query("2025-11-26T00:00:00Z", "2025-11-25T00:00:00Z", now=NOW)

    def test_inverted_window_across_offsets(self):
        """Test that the comparison is by instant, not by wall clock."""
        with pytest.raises(InvalidQueryError):
            parse_metrics_query("2025-11-25T10:00:00Z", "2025-11-25T11:00:00+02:00", now=NOW)

    def test_equal_bounds_allowed(self):
        query = parse_metrics_query("2025-11-25T10:00:00Z", "2025-11-25T10:00:00Z", now=NOW)

        assert query.from_time == query.to_time

    def test_invalid_query_error_is_value_error(self):
        assert issubclass(InvalidQueryError, ValueError)

    def test_query_object_validates_window(self):
        with pytest.raises(InvalidQueryError):
            MetricsQuery(from_time=NOW, to_time=NOW - timedelta(seconds=1))


class TestGetMetrics:
    """Test the load-then-aggregate query path."""

    def test_no_store_returns_empty_metrics(self):
        query = parse_metrics_query(now=NOW)

        response = get_metrics(None, query)

        assert response.to_dict() == {
            "totals": {"tokens": 0, "requests": 0},
            "by_model": [],
            "timeseries": [],
        }

    def test_aggregates_loaded_events(self):
        events = [
            UsageEvent(NOW - timedelta(hours=1), "A", 0, 0, 100, 200),
            UsageEvent(NOW - timedelta(hours=2), "B", 0, 0, 50, 200),
            UsageEvent(NOW - timedelta(days=3), "A", 0, 0, 999, 200),
        ]
        store = MagicMock(spec=JSONStore)
        store.load.return_value = events

        response = get_metrics(store, parse_metrics_query(model="A", now=NOW))

        store.load.assert_called_once_with()
        assert response.totals.tokens == 100
        assert response.totals.requests == 1

    def test_load_error_propagates(self):
        store = MagicMock(spec=JSONStore)
        store.load.side_effect = LoadError("failed to read file")

        with pytest.raises(LoadError):
            get_metrics(store, parse_metrics_query(now=NOW))

    def test_with_real_store(self, tmp_path):
        with JSONStore(tmp_path / "usage.jsonl") as store:
            store.write(UsageEvent(NOW - timedelta(minutes=5), "gpt-4", 10, 20, 30, 200))
            store.flush()

            response = get_metrics(store, parse_metrics_query(now=NOW))

        assert response.totals.tokens == 30
        assert response.timeseries[0].bucket_start == datetime(2025, 11, 26, 11, 0, tzinfo=UTC)


def test_health():
    assert health() == {"ok": True}
