"""
Error taxonomy for the interview session client.

Background loops (autosave, voice reconnect) log these and keep going;
explicit user actions (load, submit, give up) raise them to the caller.
"""

from typing import Optional


__all__ = [
    "InterviewClientError",
    "RpcError",
    "LoadError",
    "PersistenceError",
    "VoiceChannelError",
    "ExecutionError",
    "EvaluationError",
    "SessionStateError",
]


class InterviewClientError(Exception):
    """Base class for session client errors."""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.session_id = session_id
        self.cause = cause
        super().__init__(message)


class RpcError(InterviewClientError):
    """
    Raised by backend adapters when a call fails.

    ``status_code`` is None for transport failures (timeouts, refused
    connections) where no HTTP response was received.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, cause=cause)


class LoadError(InterviewClientError):
    """Session fetch failed. Fatal to the session view; the user must retry."""


class PersistenceError(InterviewClientError):
    """A write to durable storage (autosave, final flush, end) failed."""


class VoiceChannelError(InterviewClientError):
    """The realtime voice connection is unavailable or a request on it failed."""


class ExecutionError(InterviewClientError):
    """The code execution sandbox call failed."""


class EvaluationError(InterviewClientError):
    """Requesting the evaluation failed. The session stays terminal."""


class SessionStateError(InterviewClientError):
    """Operation is not valid in the session's current lifecycle state."""
