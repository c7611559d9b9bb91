"""
Unit tests for the usage recorder and API key hashing.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from token_meter.core.hashing import hash_api_key
from token_meter.sdk.recorder import RequestRecord, UsageRecorder
from token_meter.storage.json_store import FlushError, JSONStore


class TestHashApiKey:
    """Test credential hashing."""

    def test_hash_is_hex_sha256(self):
        digest = hash_api_key("sk-1234567890abcdef")

        assert len(digest) == 64
        assert digest != "sk-1234567890abcdef"
        assert all(c in "0123456789abcdef" for c in digest)

    def test_hash_is_deterministic(self):
        assert hash_api_key("key") == hash_api_key("key")
        assert hash_api_key("key-1") != hash_api_key("key-2")

    def test_known_digest(self):
        assert hash_api_key("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_empty_key_maps_to_empty(self):
        assert hash_api_key("") == ""


class TestBuildEvent:
    """Test conversion from request records to usage events."""

    def setup_method(self):
        self.recorder = UsageRecorder(store=None)

    def teardown_method(self):
        self.recorder.close()

    def test_raw_key_is_never_stored(self):
        record = RequestRecord(model="gpt-4", input_tokens=100, output_tokens=200, api_key="sk-openai-key")

        event = self.recorder.build_event(record)

        assert event.api_key_hash == hash_api_key("sk-openai-key")
        assert "sk-openai-key" not in event.to_json()

    def test_total_defaults_to_input_plus_output(self):
        event = self.recorder.build_event(RequestRecord(model="m", input_tokens=150, output_tokens=300))

        assert event.prompt_tokens == 150
        assert event.completion_tokens == 300
        assert event.total_tokens == 450

    def test_reported_total_is_kept(self):
        event = self.recorder.build_event(
            RequestRecord(model="m", input_tokens=10, output_tokens=10, total_tokens=25)
        )

        assert event.total_tokens == 25

    def test_status_from_failed_flag(self):
        ok = self.recorder.build_event(RequestRecord(model="m"))
        failed = self.recorder.build_event(RequestRecord(model="m", failed=True))
        explicit = self.recorder.build_event(RequestRecord(model="m", failed=True, status=429))

        assert ok.status == 200
        assert failed.status == 500
        assert explicit.status == 429

    def test_timestamp_defaults_to_now_utc(self):
        event = self.recorder.build_event(RequestRecord(model="m"))

        assert event.timestamp.tzinfo is not None
        assert abs((datetime.now(timezone.utc) - event.timestamp).total_seconds()) < 60

    def test_requested_at_is_kept(self):
        at = datetime(2025, 11, 25, 8, 0, tzinfo=timezone.utc)

        event = self.recorder.build_event(RequestRecord(model="m", requested_at=at, request_id="r-1"))

        assert event.timestamp == at
        assert event.request_id == "r-1"

    def test_custom_hasher_is_used(self):
        recorder = UsageRecorder(store=None, hasher=lambda key: f"h({key})")
        try:
            event = recorder.build_event(RequestRecord(model="m", api_key="secret"))
        finally:
            recorder.close()

        assert event.api_key_hash == "h(secret)"


class TestRecord:
    """Test background recording."""

    def test_records_reach_the_store(self, tmp_path):
        store = JSONStore(tmp_path / "usage.jsonl")
        recorder = UsageRecorder(store)

        records = [
            RequestRecord(model="gpt-4", input_tokens=100, output_tokens=200, api_key="sk-openai-key"),
            RequestRecord(model="claude-3-sonnet", input_tokens=150, output_tokens=300, api_key="sk-ant-key"),
            RequestRecord(model="gemini-pro", input_tokens=80, output_tokens=160, api_key="google-api-key"),
        ]
        futures = [recorder.record(r) for r in records]
        for future in futures:
            future.result(timeout=5)

        recorder.close()
        store.close()

        events = store.load()
        assert sorted(e.total_tokens for e in events) == [240, 300, 450]
        for event in events:
            assert len(event.api_key_hash) == 64

    def test_disabled_recorder_skips(self):
        store = MagicMock()
        recorder = UsageRecorder(store, enabled=False)

        assert recorder.record(RequestRecord(model="m")) is None

        recorder.close()
        store.write.assert_not_called()

    def test_missing_store_skips(self):
        recorder = UsageRecorder(None)

        assert recorder.record(RequestRecord(model="m")) is None
        recorder.close()

    def test_store_failure_is_logged_not_raised(self, caplog):
        store = MagicMock()
        store.write.side_effect = FlushError("failed to open file")
        recorder = UsageRecorder(store)

        with caplog.at_level("WARNING", logger="token_meter.sdk.recorder"):
            future = recorder.record(RequestRecord(model="m", input_tokens=1))
            future.result(timeout=5)
            recorder.close()

        assert future.exception() is None
        assert "Failed to persist usage event" in caplog.text

    def test_unexpected_store_error_is_logged(self, caplog):
        store = MagicMock()
        store.write.side_effect = OSError("bad file descriptor")
        recorder = UsageRecorder(store)

        with caplog.at_level("WARNING", logger="token_meter.sdk.recorder"):
            future = recorder.record(RequestRecord(model="gpt-4", input_tokens=1))
            future.result(timeout=5)
            recorder.close()

        assert future.exception() is None
        assert "Unexpected error persisting usage event for model 'gpt-4'" in caplog.text

    def test_invalid_record_is_dropped(self, caplog):
        store = MagicMock()
        recorder = UsageRecorder(store)

        with caplog.at_level("WARNING", logger="token_meter.sdk.recorder"):
            result = recorder.record(RequestRecord(model="m", input_tokens=-1))
        recorder.close()

        assert result is None
        store.write.assert_not_called()
        assert "Dropping usage record" in caplog.text

    def test_close_waits_for_pending_writes(self):
        store = MagicMock()
        recorder = UsageRecorder(store, max_workers=1)
        for _ in range(20):
            recorder.record(RequestRecord(model="m"))

        recorder.close()

        assert store.write.call_count == 20

    def test_record_after_close_is_dropped(self, caplog):
        store = MagicMock()
        recorder = UsageRecorder(store)
        recorder.close()

        with caplog.at_level("WARNING", logger="token_meter.sdk.recorder"):
            assert recorder.record(RequestRecord(model="m")) is None

        store.write.assert_not_called()
        assert "Recorder is closed" in caplog.text
