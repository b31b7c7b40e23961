"""Token usage tracking for LLM providers."""
import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from threading import Lock


@dataclass
class UsageRecord:
    """Token usage for a single LLM call."""
    timestamp: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    conversation_id: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _empty_bucket() -> dict[str, int]:
    return {'input_tokens': 0, 'output_tokens': 0, 'total_tokens': 0, 'call_count': 0}


class UsageTracker:
    """Tracks token usage across all LLM calls, per model and per conversation."""

    def __init__(self):
        self.usage_history: list[UsageRecord] = []
        self.usage_by_model: dict[str, dict[str, int]] = {}
        self.usage_by_conversation: dict[str, dict[str, int]] = {}
        self._lock = Lock()
        self._output_file: Path | None = None

    def set_output_file(self, file_path: Path):
        """Set the output file for real-time updates."""
        with self._lock:
            self._output_file = file_path
            self._save_to_file()

    def track_usage(self,
                    provider: str,
                    model: str,
                    input_tokens: int,
                    output_tokens: int,
                    conversation_id: str | None = None):
        """Track token usage for a single LLM call."""
        with self._lock:
            usage = UsageRecord(
                timestamp=datetime.now().isoformat(),
                provider=provider,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                conversation_id=conversation_id,
            )
            self.usage_history.append(usage)

            buckets = [self.usage_by_model.setdefault(f"{provider}:{model}", _empty_bucket())]
            if conversation_id:
                buckets.append(self.usage_by_conversation.setdefault(conversation_id, _empty_bucket()))
            for bucket in buckets:
                bucket['input_tokens'] += input_tokens
                bucket['output_tokens'] += output_tokens
                bucket['total_tokens'] += input_tokens + output_tokens
                bucket['call_count'] += 1

            if self._output_file:
                self._save_to_file()

    def _summary_unlocked(self) -> dict:
        return {
            'total_usage': {
                'input_tokens': sum(u.input_tokens for u in self.usage_history),
                'output_tokens': sum(u.output_tokens for u in self.usage_history),
                'total_tokens': sum(u.total_tokens for u in self.usage_history),
                'call_count': len(self.usage_history)
            },
            'by_model': {k: dict(v) for k, v in self.usage_by_model.items()},
            'by_conversation': {k: dict(v) for k, v in self.usage_by_conversation.items()},
            'history': [u.to_dict() for u in self.usage_history]
        }

    def _save_to_file(self):
        """Save current state to file (called within lock)."""
        if not self._output_file:
            return
        with open(self._output_file, 'w') as f:
            json.dump(self._summary_unlocked(), f, indent=2)

    def get_summary(self) -> dict:
        """Get summary of token usage."""
        with self._lock:
            return self._summary_unlocked()

    def get_conversation_usage(self, conversation_id: str) -> dict[str, int]:
        with self._lock:
            return dict(self.usage_by_conversation.get(conversation_id, _empty_bucket()))

    def get_last_usage(self) -> dict | None:
        """Return the most recent usage entry as a dict, or None if empty."""
        with self._lock:
            if not self.usage_history:
                return None
            return self.usage_history[-1].to_dict()

    def reset(self):
        """Reset all tracking data."""
        with self._lock:
            self.usage_history.clear()
            self.usage_by_model.clear()
            self.usage_by_conversation.clear()
            if self._output_file:
                self._save_to_file()


# Global usage tracker instance
_usage_tracker = UsageTracker()


def get_usage_tracker() -> UsageTracker:
    """Get the global usage tracker instance."""
    return _usage_tracker
