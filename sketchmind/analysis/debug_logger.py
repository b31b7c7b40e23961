"""
Debug logger for conversation LLM interactions.
Captures every prompt and reply in a session log, plus one JSON file per
interaction for easy inspection.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_RULE = "-" * 80
_BANNER = "=" * 80


class DebugLogger:
    """Logs all LLM interactions of one session to disk."""

    def __init__(self, session_id: str, output_dir: Path | None = None):
        """
        Initialize debug logger.

        Args:
            session_id: Unique identifier for this session
            output_dir: Directory for debug logs (defaults to $SKETCHMIND_DEBUG_DIR
                or ./.sketchmind_debug)
        """
        self.session_id = session_id
        if output_dir is None:
            env_dir = os.environ.get("SKETCHMIND_DEBUG_DIR")
            output_dir = Path(env_dir) if env_dir else Path.cwd() / ".sketchmind_debug"
        self.output_dir = Path(output_dir)
        self.interactions_dir = self.output_dir / "interactions"
        self.interaction_count = 0

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file: Path | None = self.output_dir / f"debug_{session_id}_{timestamp}.log"
        try:
            self.interactions_dir.mkdir(parents=True, exist_ok=True)
            self._init_log()
        except OSError as e:
            logger.warning("Debug logging disabled, cannot write to %s: %s", self.output_dir, e)
            self.log_file = None

    def _init_log(self):
        header = (
            f"\n{_BANNER}\nSKETCHMIND DEBUG LOG\n"
            f"Session ID: {self.session_id}\n"
            f"Started: {datetime.now():%Y-%m-%d %H:%M:%S}\n{_BANNER}\n\n"
        )
        with open(self.log_file, 'w') as f:
            f.write(header)

    def _append(self, text: str) -> None:
        with open(self.log_file, 'a') as f:
            f.write(text)

    def log_interaction(
        self,
        system_prompt: str,
        user_prompt: str,
        response: Any,
        duration: float | None = None,
        error: str | None = None,
        profile: str | None = None,
    ):
        """
        Log a single LLM interaction.

        Args:
            system_prompt: System prompt sent to the model
            user_prompt: Rendered conversation messages
            response: Reply text (or any JSON-serializable value)
            duration: Time taken for the interaction
            error: Error message if the interaction failed
            profile: Model profile used
        """
        if not self.log_file:
            return
        self.interaction_count += 1

        if isinstance(response, str):
            response_str = response
        else:
            response_str = json.dumps(response, indent=2, default=str)

        entry = (
            f"\n{_RULE}\nINTERACTION #{self.interaction_count}\n"
            f"Time: {datetime.now():%Y-%m-%d %H:%M:%S}\n"
            f"{f'Duration: {duration:.2f}s' if duration else ''}\n\n"
            f"SYSTEM PROMPT:\n{system_prompt}\n\n"
            f"MESSAGES:\n{user_prompt}\n\n"
            f"RESPONSE:\n{f'ERROR: {error}' if error else response_str}\n\n"
        )
        self._append(entry)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        record = {
            'time': datetime.now().isoformat(),
            'session_id': self.session_id,
            'profile': profile,
            'system': system_prompt,
            'messages': user_prompt,
            'response': response,
            'duration_seconds': duration,
            'error': error,
        }
        with open(self.interactions_dir / f"{self.interaction_count:04d}_{ts}.json", 'w') as jf:
            json.dump(record, jf, indent=2, default=str)

    def log_event(self, event_type: str, message: str, details: dict | None = None):
        """Log a pipeline event such as a truncation or a clarification round."""
        if not self.log_file:
            return
        details_str = f"\nDetails: {json.dumps(details, indent=2, default=str)}" if details else ""
        self._append(
            f"\n{_RULE}\nEVENT: {event_type}\n"
            f"Time: {datetime.now():%Y-%m-%d %H:%M:%S}\n"
            f"Message: {message}{details_str}\n\n"
        )

    def finalize(self, summary: dict | None = None) -> Path | None:
        """Write the footer with summary statistics and return the log path."""
        if not self.log_file:
            return None
        summary_str = ""
        if summary:
            summary_str = "\nSESSION SUMMARY:\n" + "".join(
                f"  {key.replace('_', ' ').title()}: {value}\n" for key, value in summary.items()
            )
        self._append(
            f"\n{_BANNER}\n{summary_str}\n"
            f"Completed: {datetime.now():%Y-%m-%d %H:%M:%S}\n"
            f"Total Interactions: {self.interaction_count}\n{_BANNER}\n"
        )
        return self.log_file
