"""Mock LLM provider for testing."""
from __future__ import annotations

import json
import time
from typing import Any

from .base_provider import BaseLLMProvider
from .schemas import LLMReply, LLMRequest, TokenUsage


class MockProvider(BaseLLMProvider):
    """Mock LLM provider for testing purposes.

    Scripted responses are consumed in order. Each entry may be a string, a
    dict (serialized to JSON), an ``LLMReply``, or an exception instance which
    is raised for that attempt.
    """

    def __init__(self, config: dict[str, Any], model_name: str = "mock", **kwargs):
        self._mock_instance = kwargs.pop("mock_instance", None)
        self.delay_seconds = float(kwargs.pop("delay_seconds", 0) or 0)
        kwargs.setdefault("backoff_base", 0)
        super().__init__(config, model_name, **kwargs)
        self.call_count = 0
        self.requests: list[LLMRequest] = []
        self.responses: list[Any] = []
        self.response_index = 0

    def set_responses(self, responses):
        """Set predefined responses for testing."""
        self.responses = list(responses)
        self.response_index = 0

    def _complete(self, request: LLMRequest) -> LLMReply:
        self.call_count += 1
        self.requests.append(request)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

        if self._mock_instance is not None and hasattr(self._mock_instance, "complete"):
            return self._mock_instance.complete(request)

        usage = TokenUsage(input_tokens=100, output_tokens=50)
        if self.responses and self.response_index < len(self.responses):
            response = self.responses[self.response_index]
            self.response_index += 1
            if isinstance(response, BaseException):
                raise response
            if isinstance(response, LLMReply):
                return response
            if isinstance(response, dict):
                return LLMReply(content=json.dumps(response), usage=usage)
            return LLMReply(content=str(response), usage=usage)

        return LLMReply(
            content=json.dumps({"action": "answer", "response": "Mock response for testing"}),
            usage=usage,
        )

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "mock"
