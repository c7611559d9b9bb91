"""
SDK for Token Meter.

Provides the ingest side: recording request usage into the store.
"""

from .openai_client import GuardedOpenAI
from .recorder import RequestRecord, UsageRecorder

__all__ = ["GuardedOpenAI", "RequestRecord", "UsageRecorder"]
