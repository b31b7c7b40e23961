"""Error taxonomy for the conversation-to-diagram pipeline."""
from __future__ import annotations

from typing import Literal

TransportKind = Literal["network", "timeout", "rate_limit", "server"]


class SketchMindError(RuntimeError):
    """Base class for all pipeline errors."""

    user_message = "An unexpected error occurred. Please try again."
    retryable = False


class TransportError(SketchMindError):
    """Network, timeout, rate-limit or server failure talking to the model service."""

    _USER_MESSAGES = {
        "network": "Network connection issue. Please check your connection and try again.",
        "timeout": "Request took too long. Please try again.",
        "rate_limit": "Too many requests. Please wait a moment and try again.",
        "server": "The AI service is temporarily unavailable. Please try again in a moment.",
    }

    def __init__(self, message: str, *, kind: TransportKind = "network",
                 status_code: int | None = None, retryable: bool = True):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.retryable = retryable
        self.user_message = self._USER_MESSAGES.get(kind, SketchMindError.user_message)


class AuthenticationError(SketchMindError):
    """Credentials were rejected. Never retried."""

    user_message = "Authentication with the AI service failed. Please check the API key configuration."

    def __init__(self, message: str, status_code: int | None = 401):
        super().__init__(message)
        self.status_code = status_code


class RequestRejectedError(SketchMindError):
    """The service refused the request as malformed. Never retried."""

    user_message = "The AI service rejected the request. Please try rephrasing it."

    def __init__(self, message: str, status_code: int | None = 400):
        super().__init__(message)
        self.status_code = status_code


class DeadlineExceededError(SketchMindError):
    """The business-level deadline fired before the model replied."""

    user_message = (
        "This request is too complex to finish in time. "
        "Try breaking it down into smaller steps."
    )

    def __init__(self, seconds: float):
        super().__init__(f"No reply within {seconds:g}s")
        self.seconds = seconds


class ResponseFormatError(SketchMindError):
    """The reply could not be turned into any valid action."""

    user_message = "The AI response was not in the expected format. Please try rephrasing your request."


class ComplexityLimitError(SketchMindError):
    """A proposal exceeds the per-request node or step ceiling."""

    def __init__(self, requested: int, ceiling: int, what: str = "nodes"):
        super().__init__(f"Request needs {requested} {what}, ceiling is {ceiling}")
        self.requested = requested
        self.ceiling = ceiling
        self.user_message = (
            f"This would add {requested} {what}, which is more than the {ceiling} I add at once. "
            f"Consider breaking it into smaller steps, or say explicitly that you want all {requested}."
        )


class ConcurrentSendError(SketchMindError):
    """A second send was attempted while one is in flight for the same conversation."""

    user_message = "Please wait for the current reply before sending another message."


class NodeNotFoundError(SketchMindError, KeyError):
    """A referenced node id does not exist in the graph."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id
        self.user_message = f'Could not find node "{node_id}". Please check the node name and try again.'

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


def transport_error_for_status(status_code: int, message: str = "") -> SketchMindError:
    """Map an HTTP status code onto the taxonomy."""
    text = message or f"API error ({status_code})"
    if status_code in (401, 403):
        return AuthenticationError(text, status_code=status_code)
    if status_code == 429:
        return TransportError(text, kind="rate_limit", status_code=status_code)
    if status_code == 408:
        return TransportError(text, kind="timeout", status_code=status_code)
    if status_code >= 500:
        return TransportError(text, kind="server", status_code=status_code)
    return RequestRejectedError(text, status_code=status_code)


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


def user_message(exc: BaseException) -> str:
    """User-facing text for any exception reaching the conversation layer."""
    if isinstance(exc, SketchMindError):
        return exc.user_message
    return SketchMindError.user_message
