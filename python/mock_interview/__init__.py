"""
Mock Interview Session Client.

Orchestrates one AI-conducted mock interview: the wall clock, periodic
autosave, a one-time spoken introduction, the realtime voice conversation
and the submit / give up / timeout lifecycle.

Components:
    - SessionController: Owns the session and its lifecycle transitions
    - TimerService: One-second tick accumulator with a one-shot timeout
    - AutosavePump: Dirty-checked, single-flight periodic persistence
    - IntroductionCache: At-most-once introduction with a durable flag
    - TranscriptLog: Append-only record of finalized utterances
    - TranscriptSync: Ordered, retried persistence of finalized utterances
    - VoiceChannel: State machine around the realtime voice connection
    - SessionEventPublisher: Pub/sub stream of session events for the UI
    - Models: Pydantic models for sessions, artifacts and test results

Example:
    >>> from mock_interview import SessionController
    >>>
    >>> async with SessionController(...) as controller:
    ...     await controller.load("iv_123")
    ...     await controller.start()
    ...     controller.update_artifact({"code": "def solution(nums): ..."})
    ...     report = await controller.run()
    ...     outcome = await controller.submit()

Last Grunted: 10/17/2026
"""

from .models import (
    Artifact,
    ArtifactPatch,
    CodeTestCase,
    CodeTestResult,
    EndReason,
    ExecutionReport,
    ExecutionSummary,
    ExecutionType,
    InterviewSession,
    IntroPayload,
    QuestionPayload,
    SessionKind,
    SessionOutcome,
    SessionStatus,
    Speaker,
    TranscriptEntry,
    is_ephemeral_session_id,
)

from .errors import (
    InterviewClientError,
    RpcError,
    LoadError,
    PersistenceError,
    VoiceChannelError,
    ExecutionError,
    EvaluationError,
    SessionStateError,
)

from .timer import TimerService, format_clock

from .autosave import AutosavePump

from .transcript import TranscriptLog
from .transcript_sync import TranscriptSync

from .intro import IntroductionCache, IntroFlagStore

from .voice import ListeningMode, VoiceChannel, VoiceObserver, VoiceState

from .pubsub import SessionEvent, SessionEventPublisher, SessionEventType

from .controller import SessionController, SessionTimings


__all__ = [
    # Models
    "Artifact",
    "ArtifactPatch",
    "CodeTestCase",
    "CodeTestResult",
    "EndReason",
    "ExecutionReport",
    "ExecutionSummary",
    "ExecutionType",
    "InterviewSession",
    "IntroPayload",
    "QuestionPayload",
    "SessionKind",
    "SessionOutcome",
    "SessionStatus",
    "Speaker",
    "TranscriptEntry",
    "is_ephemeral_session_id",
    # Errors
    "InterviewClientError",
    "RpcError",
    "LoadError",
    "PersistenceError",
    "VoiceChannelError",
    "ExecutionError",
    "EvaluationError",
    "SessionStateError",
    # Services
    "TimerService",
    "format_clock",
    "AutosavePump",
    "TranscriptLog",
    "TranscriptSync",
    "IntroductionCache",
    "IntroFlagStore",
    "ListeningMode",
    "VoiceChannel",
    "VoiceObserver",
    "VoiceState",
    # Pub/Sub
    "SessionEvent",
    "SessionEventPublisher",
    "SessionEventType",
    # Controller
    "SessionController",
    "SessionTimings",
]

__version__ = "0.1.0"
