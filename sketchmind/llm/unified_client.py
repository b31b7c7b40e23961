"""Unified LLM client that supports multiple providers."""
from __future__ import annotations

import logging
import os as _os
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, TypeVar

from rich.console import Console

from ..errors import DeadlineExceededError, SketchMindError, user_message
from .anthropic_provider import AnthropicProvider
from .backend_provider import BackendProvider
from .base_provider import BaseLLMProvider
from .mock_provider import MockProvider
from .openai_provider import OpenAIProvider
from .schemas import LLMReply, LLMRequest
from .token_tracker import get_usage_tracker

logger = logging.getLogger(__name__)
console = Console()

R = TypeVar("R")

DEFAULT_DEADLINE_SECONDS = 30
DEFAULT_REQUEST_SECONDS = 60


def call_with_deadline(fn: Callable[[], R], seconds: float, cancel: threading.Event | None = None) -> R:
    """Run ``fn`` in a worker thread and return its result, or raise once ``seconds`` pass.

    On expiry ``cancel`` is set and the worker is abandoned. The worker stops
    at its next retry point; the transport timeout bounds the call in flight.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sketchmind-llm")
    future = executor.submit(fn)
    try:
        return future.result(timeout=seconds)
    except FutureTimeout:
        future.cancel()
        if cancel is not None:
            cancel.set()
        raise DeadlineExceededError(seconds) from None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


class UnifiedLLMClient:
    """
    Unified LLM client that can work with multiple providers.

    The provider is chosen by ``models.<profile>.provider`` in the config:
    anthropic, openai, backend or mock.
    """

    def __init__(self, cfg: dict[str, Any], profile: str = "assistant", debug_logger=None,
                 provider: BaseLLMProvider | None = None, conversation_id: str | None = None):
        """
        Initialize unified LLM client with config and profile.

        Args:
            cfg: Configuration dictionary
            profile: Model profile to use
            debug_logger: Optional DebugLogger instance for logging interactions
            provider: Pre-built provider, bypassing config selection
            conversation_id: Key for per-conversation usage tracking
        """
        self.cfg = cfg if isinstance(cfg, dict) else {}
        self.profile = profile
        self.debug_logger = debug_logger
        self.conversation_id = conversation_id

        models_cfg = self.cfg.get("models", {})
        model_config = models_cfg.get(profile)
        if model_config is None and provider is None:
            raise ValueError(f"Model profile '{profile}' not found in config")
        model_config = model_config or {}
        self.model = model_config.get("model", getattr(provider, "model_name", "unknown"))
        self.max_tokens = int(model_config.get("max_tokens", 4096))
        self.temperature = float(model_config.get("temperature", 0.7))

        timeout_cfg = self.cfg.get("timeouts", {})
        retry_cfg = self.cfg.get("retries", {})
        self.deadline_seconds = float(timeout_cfg.get("deadline_seconds", DEFAULT_DEADLINE_SECONDS))

        logging_cfg = self.cfg.get("logging", {})
        env_verbose = _os.environ.get("SKETCHMIND_LLM_VERBOSE", "").lower() in {"1", "true", "yes", "on"}
        self.verbose = bool(logging_cfg.get("llm_verbose", False) or env_verbose)

        if provider is not None:
            self.provider = provider
        else:
            common_kwargs = {
                "config": self.cfg,
                "model_name": self.model,
                "timeout": timeout_cfg.get("request_seconds", DEFAULT_REQUEST_SECONDS),
                "retries": retry_cfg.get("max_retries", 3),
                "backoff_base": retry_cfg.get("backoff_base_seconds", 1),
                "verbose": self.verbose,
            }
            provider_name = model_config.get("provider", "anthropic").lower()
            if provider_name == "anthropic":
                self.provider = AnthropicProvider(
                    **common_kwargs,
                    api_key_env=self.cfg.get("anthropic", {}).get("api_key_env", "ANTHROPIC_API_KEY"),
                )
            elif provider_name == "openai":
                self.provider = OpenAIProvider(**common_kwargs)
            elif provider_name == "backend":
                self.provider = BackendProvider(**common_kwargs)
            elif provider_name == "mock":
                self.provider = MockProvider(
                    **common_kwargs,
                    mock_instance=model_config.get("mock_instance"),
                    delay_seconds=model_config.get("delay_seconds", 0),
                )
            else:
                raise ValueError(f"Unknown provider: {provider_name}")

        if self.verbose:
            console.print(f"[*] Initialized {self.provider.provider_name} provider with model: {self.model}")

    def complete(self, request: LLMRequest) -> LLMReply:
        """
        Send the request under the business deadline.

        Raises:
            DeadlineExceededError: no reply within ``deadline_seconds``
            SketchMindError: transport, authentication or rejection failure
        """
        start_time = time.time()
        error = None
        reply = None
        try:
            cancel = threading.Event()
            reply = call_with_deadline(
                lambda: self.provider.complete(request, cancel=cancel), self.deadline_seconds, cancel,
            )
            if reply.usage is not None:
                get_usage_tracker().track_usage(
                    provider=self.provider.provider_name,
                    model=self.model,
                    input_tokens=reply.usage.input_tokens,
                    output_tokens=reply.usage.output_tokens,
                    conversation_id=self.conversation_id,
                )
            return reply
        except SketchMindError as e:
            error = str(e)
            logger.warning("LLM call failed (%s): %s", type(e).__name__, e)
            raise
        finally:
            if self.debug_logger:
                self.debug_logger.log_interaction(
                    system_prompt=request.system_prompt,
                    user_prompt="\n\n".join(f"[{m.role}] {m.content}" for m in request.messages),
                    response=reply.content if reply else None,
                    duration=time.time() - start_time,
                    error=error,
                    profile=self.profile,
                )

    def send(self, request: LLMRequest) -> LLMReply:
        """Like ``complete`` but failures come back as ``LLMReply.error`` instead of raising."""
        try:
            return self.complete(request)
        except SketchMindError as e:
            return LLMReply(error=user_message(e))

    @property
    def provider_name(self) -> str:
        """Get the name of the current provider."""
        return self.provider.provider_name
