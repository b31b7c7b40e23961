"""
Approximate token counting for context budgeting.

One token is estimated per four characters. Estimates are memoized per
distinct string in a bounded cache with oldest-first eviction; the cache is
owned by the estimator instance and guarded by a lock so a single estimator
can be shared between conversations.
"""

from __future__ import annotations

import math
import os as _os
from collections import OrderedDict
from collections.abc import Iterable
from threading import Lock

from rich.console import Console

console = Console()
_VERBOSE = _os.environ.get("SKETCHMIND_LLM_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

CHARS_PER_TOKEN = 4
DEFAULT_CACHE_SIZE = 100
MESSAGE_OVERHEAD_TOKENS = 10


class TokenCache:
    """Fixed-capacity map with FIFO eviction."""

    def __init__(self, capacity: int = DEFAULT_CACHE_SIZE):
        if capacity < 1:
            raise ValueError("cache capacity must be positive")
        self.capacity = capacity
        self._data: OrderedDict[str, int] = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> int | None:
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self.misses += 1
            else:
                self.hits += 1
            return value

    def put(self, key: str, value: int) -> None:
        with self._lock:
            if key in self._data:
                return
            while len(self._data) >= self.capacity:
                self._data.popitem(last=False)
            self._data[key] = value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data


class TokenEstimator:
    """Character-count token estimator with an injected cache."""

    def __init__(self, cache: TokenCache | None = None,
                 message_overhead: int = MESSAGE_OVERHEAD_TOKENS):
        self.cache = cache if cache is not None else TokenCache()
        self.message_overhead = message_overhead

    def count(self, text: str) -> int:
        if not text:
            return 0
        cached = self.cache.get(text)
        if cached is not None:
            return cached
        tokens = math.ceil(len(text) / CHARS_PER_TOKEN)
        self.cache.put(text, tokens)
        return tokens

    def count_message(self, role: str, content: str) -> int:
        return self.count(role) + self.count(content) + self.message_overhead

    def count_messages(self, messages: Iterable) -> int:
        """Sum of message costs; accepts objects with role/content or plain dicts."""
        total = 0
        for msg in messages:
            if isinstance(msg, dict):
                total += self.count_message(msg.get("role", ""), msg.get("content", ""))
            else:
                total += self.count_message(msg.role, msg.content)
        return total

    def get_diagnostics(self) -> dict[str, int]:
        diag = {
            "cache_size": len(self.cache),
            "cache_capacity": self.cache.capacity,
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
        }
        if _VERBOSE:
            console.print(f"TokenEstimator: {diag}")
        return diag
