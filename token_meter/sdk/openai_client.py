"""
Metered OpenAI client wrapper.

Records usage events for every chat completion without modifying behavior.
"""

from typing import Any, Dict, List, Optional

from openai import APIStatusError, OpenAI

from .recorder import RequestRecord, UsageRecorder
from token_meter.storage.models import utc_now


class GuardedOpenAI:
    """OpenAI client wrapper that records usage events.

    Wraps OpenAI chat completions so every call, successful or not, leaves
    a usage record. Recording never changes the response or the exception
    the caller sees.
    """

    def __init__(
        self,
        model: str,
        recorder: UsageRecorder,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        """Initialize metered OpenAI client.

        Args:
            model: OpenAI model name (required)
            recorder: Recorder that receives usage records (required)
            api_key: API key used for the client; only its hash is recorded
            client: Preconfigured OpenAI client (built from api_key if omitted)

        Raises:
            ValueError: If model is missing/empty or recorder is missing
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if recorder is None:
            raise ValueError("recorder is required")

        self.model = model
        self.recorder = recorder
        self.api_key = api_key or ""
        self.client = client or OpenAI(api_key=api_key)

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Any:
        """Create chat completion with usage recording.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response, unchanged

        Raises:
            ValueError: If messages is empty
            OpenAI API errors: Propagated without modification after the
                failed request has been recorded
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        requested_at = utc_now()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except APIStatusError as e:
            self._record_failure(requested_at, e.status_code, e.request_id)
            raise
        except Exception:
            self._record_failure(requested_at, None, None)
            raise

        usage = response.usage
        self.recorder.record(RequestRecord(
            model=self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            requested_at=requested_at,
            api_key=self.api_key,
            request_id=response.id or "",
        ))

        return response

    def _record_failure(
        self,
        requested_at,
        status: Optional[int],
        request_id: Optional[str],
    ) -> None:
        self.recorder.record(RequestRecord(
            model=self.model,
            requested_at=requested_at,
            api_key=self.api_key,
            request_id=request_id or "",
            failed=True,
            status=status,
        ))
