"""
Anthropic Claude provider implementation.
"""

from __future__ import annotations

import os
import time
from typing import Any

import anthropic
from anthropic import Anthropic
from rich.console import Console

from .base_provider import BaseLLMProvider, translate_sdk_error
from .schemas import LLMReply, LLMRequest, TokenUsage

console = Console()


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        config: dict[str, Any],
        model_name: str = "claude-3-5-sonnet-20241022",
        api_key: str | None = None,
        api_key_env: str | None = None,
        **kwargs
    ):
        """
        Initialize Anthropic provider.

        Args:
            config: Full configuration dictionary
            model_name: Model identifier (e.g., claude-3-5-sonnet-20241022)
            api_key: API key (optional if using env var)
            api_key_env: Environment variable name for API key
        """
        super().__init__(config, model_name, **kwargs)

        if api_key:
            self.api_key = api_key
        elif api_key_env:
            self.api_key = os.getenv(api_key_env)
            if not self.api_key:
                raise ValueError(f"API key not found in environment variable {api_key_env}")
        else:
            raise ValueError("Either api_key or api_key_env must be provided")

        # Retries are handled by BaseLLMProvider.complete
        self.client = Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)

    def _complete(self, request: LLMRequest) -> LLMReply:
        request_chars = len(request.system_prompt) + sum(len(m.content) for m in request.messages)
        if self.verbose:
            console.print("\n[bold][Anthropic Request][/bold]")
            console.print(f"  Model: {self.model_name}")
            console.print(f"  Total prompt: {request_chars:,} chars (~{request_chars // 4:,} tokens)")

        start_time = time.time()
        try:
            response = self.client.messages.create(
                model=self.model_name,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                system=request.system_prompt,
                messages=[{"role": m.role, "content": m.content} for m in request.messages],
            )
        except anthropic.AnthropicError as e:
            raise translate_sdk_error(e, anthropic) from e

        response_text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
            if getattr(block, "type", "text") == "text"
        )

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens or 0,
                output_tokens=response.usage.output_tokens or 0,
            )

        if self.verbose:
            console.print("[bold][Anthropic Response][/bold]")
            console.print(f"  Time: {time.time() - start_time:.2f}s")
            console.print(f"  Output: {len(response_text):,} chars")
            if usage:
                console.print(f"  Input tokens: {usage.input_tokens:,}")
                console.print(f"  Output tokens: {usage.output_tokens:,}")

        return LLMReply(content=response_text, usage=usage)

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "Anthropic"
