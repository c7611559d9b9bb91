"""
Usage recorder for the request pipeline.

Builds usage events from completed requests and hands them to the store
without blocking the request that produced them.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from token_meter.core.hashing import hash_api_key
from token_meter.storage.json_store import JSONStore, StoreError
from token_meter.storage.models import UsageEvent, utc_now

logger = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_FAILED = 500


@dataclass(frozen=True)
class RequestRecord:
    """Usage facts reported by the proxy for one completed request.

    ``api_key`` is the raw credential; it is hashed before it is stored.
    """
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    requested_at: Optional[datetime] = None
    api_key: str = ""
    request_id: str = ""
    failed: bool = False
    status: Optional[int] = None


class UsageRecorder:
    """Records request usage into a JSON store.

    Writes are submitted to a small thread pool so a capacity-triggered
    flush never delays the request path. Recording is best-effort: store
    failures are logged and never reach the caller.
    """

    def __init__(
        self,
        store: Optional[JSONStore],
        hasher: Callable[[str], str] = hash_api_key,
        enabled: bool = True,
        max_workers: int = 4,
    ):
        """Initialize the recorder.

        Args:
            store: Destination store, or None to disable persistence
            hasher: Pure function turning a raw API key into a digest
            enabled: Whether statistics are collected at all
            max_workers: Threads used for background writes
        """
        self.store = store
        self.hasher = hasher
        self.enabled = enabled
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="usage-record"
        )

    def build_event(self, request: RequestRecord) -> UsageEvent:
        """Convert a request record into a storable usage event."""
        total = request.total_tokens
        if total == 0:
            total = request.input_tokens + request.output_tokens

        status = request.status
        if status is None:
            status = STATUS_FAILED if request.failed else STATUS_OK

        return UsageEvent(
            timestamp=request.requested_at or utc_now(),
            model=request.model,
            prompt_tokens=request.input_tokens,
            completion_tokens=request.output_tokens,
            total_tokens=total,
            status=status,
            request_id=request.request_id,
            api_key_hash=self.hasher(request.api_key),
        )

    def record(self, request: RequestRecord) -> Optional[Future]:
        """Record a completed request in the background.

        Returns:
            Future for the background write, or None if nothing was recorded
        """
        if not self.enabled or self.store is None:
            return None

        try:
            event = self.build_event(request)
        except ValueError as e:
            logger.warning("Dropping usage record for model %r: %s", request.model, e)
            return None

        try:
            return self._executor.submit(self._write, event)
        except RuntimeError:
            logger.warning("Recorder is closed; dropping usage event for model %r", event.model)
            return None

    def _write(self, event: UsageEvent) -> None:
        try:
            self.store.write(event)
        except StoreError as e:
            logger.warning("Failed to persist usage event: %s", e)
        except Exception:
            logger.exception("Unexpected error persisting usage event for model %r", event.model)

    def close(self) -> None:
        """Wait for pending writes to reach the store."""
        self._executor.shutdown(wait=True)
