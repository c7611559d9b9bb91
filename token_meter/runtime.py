"""
Composition root for usage tracking.

Owns the lifecycle of the store and the recorder, which are passed
explicitly to the ingest pipeline and the query handlers.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from token_meter.config.loader import UsageConfig
from token_meter.core.hashing import hash_api_key
from token_meter.sdk.recorder import UsageRecorder
from token_meter.storage.json_store import JSONStore


@dataclass
class UsageRuntime:
    """Store and recorder wired together from configuration."""
    store: Optional[JSONStore]
    recorder: UsageRecorder

    @classmethod
    def from_config(
        cls,
        config: UsageConfig,
        hasher: Callable[[str], str] = hash_api_key,
    ) -> "UsageRuntime":
        """Build the runtime. No store is opened when statistics are disabled."""
        store = None
        if config.statistics.enabled:
            store = JSONStore(
                config.store.path,
                flush_interval=config.store.flush_interval_seconds,
                buffer_capacity=config.store.buffer_capacity,
            )
        recorder = UsageRecorder(store, hasher=hasher, enabled=config.statistics.enabled)
        return cls(store=store, recorder=recorder)

    def close(self) -> None:
        """Drain pending recordings, then flush and close the store."""
        self.recorder.close()
        if self.store is not None:
            self.store.close()

    def __enter__(self) -> "UsageRuntime":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
