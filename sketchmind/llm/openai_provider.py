"""OpenAI provider implementation."""
from __future__ import annotations

import os
from typing import Any

import openai
from openai import OpenAI
from rich.console import Console

from .base_provider import BaseLLMProvider, translate_sdk_error
from .schemas import LLMReply, LLMRequest, TokenUsage

console = Console()


class OpenAIProvider(BaseLLMProvider):
    """OpenAI API provider implementation (Chat Completions)."""

    def __init__(self, config: dict[str, Any], model_name: str, **kwargs):
        """Initialize OpenAI provider."""
        super().__init__(config, model_name, **kwargs)

        # Get API key from environment
        api_key_env = config.get("openai", {}).get("api_key_env", "OPENAI_API_KEY")
        api_key = os.environ.get(api_key_env)
        if not api_key:
            raise ValueError(f"API key not found in environment variable: {api_key_env}")

        # The SDK expects base_url to include the "/v1" path
        raw_base_url = os.environ.get("OPENAI_BASE_URL") or config.get("openai", {}).get("base_url")
        base_url = (raw_base_url or "https://api.openai.com/v1").rstrip("/")
        if not base_url.endswith("/v1"):
            base_url = base_url + "/v1"

        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=self.timeout, max_retries=0)
        if self.verbose:
            console.print(f"[OpenAI Provider] Using base_url: {base_url}")

    def _complete(self, request: LLMRequest) -> LLMReply:
        messages = [{"role": "system", "content": request.system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in request.messages)

        if self.verbose:
            request_chars = sum(len(m["content"]) for m in messages)
            console.print("\n[bold][OpenAI Request][/bold]")
            console.print(f"  Model: {self.model_name}")
            console.print(f"  Total prompt: {request_chars:,} chars (~{request_chars // 4:,} tokens)")

        try:
            completion = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        except openai.OpenAIError as e:
            raise translate_sdk_error(e, openai) from e

        usage = None
        if getattr(completion, "usage", None):
            usage = TokenUsage(
                input_tokens=completion.usage.prompt_tokens or 0,
                output_tokens=completion.usage.completion_tokens or 0,
            )
        content = completion.choices[0].message.content if completion.choices else ""
        return LLMReply(content=content or "", usage=usage)

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "OpenAI"
