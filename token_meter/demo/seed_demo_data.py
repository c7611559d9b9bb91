# token_meter/demo/seed_demo_data.py

from datetime import datetime, timedelta
from typing import List, Optional

from token_meter.core.hashing import hash_api_key
from token_meter.storage.json_store import JSONStore
from token_meter.storage.models import UsageEvent, utc_now

DEMO_MODELS = [
    ("gpt-4", 1200, 300),
    ("claude-3-sonnet", 800, 450),
    ("gemini-pro", 400, 200),
]


def build_demo_events(count: int = 24, now: Optional[datetime] = None) -> List[UsageEvent]:
    """Build ``count`` demo events spread over the hours before ``now``."""
    if now is None:
        now = utc_now()

    events = []
    for i in range(count):
        model, prompt, completion = DEMO_MODELS[i % len(DEMO_MODELS)]
        events.append(UsageEvent(
            timestamp=now - timedelta(hours=i, minutes=7),
            model=model,
            prompt_tokens=prompt + i * 10,
            completion_tokens=completion,
            total_tokens=prompt + i * 10 + completion,
            status=500 if i % 11 == 10 else 200,
            request_id=f"demo-{i:04d}",
            api_key_hash=hash_api_key(f"demo-key-{i % 2}"),
        ))
    return events


def seed_demo_data(store: JSONStore, count: int = 24, now: Optional[datetime] = None) -> int:
    """Write demo events through the store and flush them.

    Returns:
        Number of events written
    """
    events = build_demo_events(count, now)
    for event in events:
        store.write(event)
    store.flush()
    return len(events)
