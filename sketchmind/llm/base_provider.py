"""Base provider interface for LLM clients."""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from types import ModuleType
from typing import Any

from ..errors import (
    AuthenticationError,
    RequestRejectedError,
    SketchMindError,
    TransportError,
    is_retryable,
    transport_error_for_status,
)
from .schemas import LLMReply, LLMRequest

logger = logging.getLogger(__name__)


def translate_sdk_error(exc: Exception, sdk: ModuleType) -> SketchMindError:
    """Map an anthropic/openai SDK exception onto the error taxonomy.

    Both SDKs expose the same exception names. APITimeoutError subclasses
    APIConnectionError, so it is checked first.
    """
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, sdk.APITimeoutError):
        return TransportError(message, kind="timeout")
    if isinstance(exc, sdk.APIConnectionError):
        return TransportError(message, kind="network")
    if isinstance(exc, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        return AuthenticationError(message, status_code=getattr(exc, "status_code", 401))
    if isinstance(exc, sdk.RateLimitError):
        return TransportError(message, kind="rate_limit", status_code=429)
    if isinstance(exc, sdk.BadRequestError):
        return RequestRejectedError(message, status_code=getattr(exc, "status_code", 400))
    if isinstance(exc, sdk.APIStatusError):
        return transport_error_for_status(exc.status_code, message)
    return TransportError(message, kind="network", retryable=False)


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers.

    Subclasses implement a single attempt in ``_complete``; ``complete`` adds
    the retry loop shared by every provider.
    """

    def __init__(self, config: dict[str, Any], model_name: str, *,
                 timeout: float = 60, retries: int = 3, backoff_base: float = 1.0,
                 verbose: bool = False, **kwargs):
        self.config = config
        self.model_name = model_name
        self.timeout = timeout
        self.retries = retries
        self.backoff_base = backoff_base
        self.verbose = verbose
        self._last_token_usage: dict[str, int] | None = None

    @abstractmethod
    def _complete(self, request: LLMRequest) -> LLMReply:
        """
        Make one call to the service.

        Args:
            request: Fully built request

        Returns:
            Reply with content and usage

        Raises:
            SketchMindError: mapped transport, auth or rejection failure
        """

    def complete(self, request: LLMRequest, cancel: threading.Event | None = None) -> LLMReply:
        """Call the service, retrying retryable transport failures with exponential backoff.

        Once ``cancel`` is set no further attempt is made; the last failure is
        raised instead of waiting out the backoff.
        """
        attempts = self.retries + 1
        for attempt in range(attempts):
            try:
                reply = self._complete(request)
                if reply.usage is not None:
                    self._last_token_usage = {
                        "input_tokens": reply.usage.input_tokens,
                        "output_tokens": reply.usage.output_tokens,
                        "total_tokens": reply.usage.total_tokens,
                    }
                return reply
            except SketchMindError as e:
                if not is_retryable(e) or attempt == attempts - 1:
                    raise
                if cancel is not None and cancel.is_set():
                    logger.info("%s call cancelled after attempt %d/%d", self.provider_name, attempt + 1, attempts)
                    raise
                wait_time = self.backoff_base * 2 ** attempt
                logger.warning(
                    "%s attempt %d/%d failed (%s); retrying in %.1fs",
                    self.provider_name, attempt + 1, attempts, e, wait_time,
                )
                if cancel is None:
                    time.sleep(wait_time)
                elif cancel.wait(wait_time):
                    logger.info("%s call cancelled during backoff", self.provider_name)
                    raise
        raise AssertionError("unreachable")

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name for logging."""

    def get_last_token_usage(self) -> dict[str, int] | None:
        """Return token usage from the last call if available.

        Returns:
            Dict with 'input_tokens', 'output_tokens', 'total_tokens' or None
        """
        return self._last_token_usage
