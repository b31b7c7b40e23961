"""LLM providers and the unified client."""
