"""Provider that relays requests through an HTTP backend holding the API key."""
from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from ..errors import SketchMindError, TransportError, transport_error_for_status
from .base_provider import BaseLLMProvider
from .schemas import LLMReply, LLMRequest, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001/api/anthropic"


def _count(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) and value > 0 else 0


class BackendProvider(BaseLLMProvider):
    """POSTs ``{system, messages, max_tokens, temperature}`` to ``{base_url}/messages``.

    The backend answers ``{"content": str, "usage": {"inputTokens", "outputTokens"}}``.
    """

    def __init__(self, config: dict[str, Any], model_name: str, base_url: str | None = None,
                 transport: httpx.BaseTransport | None = None, **kwargs):
        super().__init__(config, model_name, **kwargs)
        backend_cfg = config.get("backend", {}) if isinstance(config, dict) else {}
        raw = base_url or os.environ.get("SKETCHMIND_BACKEND_URL") or backend_cfg.get("base_url") or DEFAULT_BASE_URL
        self.base_url = raw.rstrip("/")
        self.client = httpx.Client(
            timeout=self.timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def _complete(self, request: LLMRequest) -> LLMReply:
        body: dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
        }
        if request.system_prompt:
            body["system"] = request.system_prompt

        try:
            response = self.client.post(f"{self.base_url}/messages", json=body)
        except httpx.TimeoutException as e:
            raise TransportError(str(e) or "Request timed out", kind="timeout") from e
        except httpx.HTTPError as e:
            raise TransportError(str(e) or "Network error", kind="network") from e

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            detail = (payload.get("error") if isinstance(payload, dict) else None) or response.text
            raise transport_error_for_status(response.status_code, f"API error ({response.status_code}): {detail}")

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Backend returned a non-JSON body", kind="server", retryable=False) from e
        if not isinstance(data, dict):
            raise TransportError("Backend returned an unexpected body", kind="server", retryable=False)
        content = data.get("content")
        if content is not None and not isinstance(content, str):
            raise TransportError("Backend returned an unexpected body", kind="server", retryable=False)
        error = data.get("error")

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            usage = TokenUsage(
                input_tokens=_count(raw_usage.get("inputTokens")),
                output_tokens=_count(raw_usage.get("outputTokens")),
            )
        return LLMReply(content=content or "", usage=usage, error=str(error) if error else None)

    def validate_connection(self) -> bool:
        """Send a minimal request; True when the backend answers without error."""
        ping = LLMRequest(system_prompt="", messages=[{"role": "user", "content": "test"}], max_tokens=10)
        try:
            return self._complete(ping).error is None
        except SketchMindError as e:
            logger.info("Backend connection check failed: %s", e)
            return False

    def close(self) -> None:
        self.client.close()

    @property
    def provider_name(self) -> str:
        return "Backend"
