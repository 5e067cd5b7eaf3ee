"""Interfaces of the external collaborators the session client talks to."""

from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Protocol

from .models import CodeTestCase, ExecutionReport, ExecutionType, IntroPayload


class InterviewsApi(Protocol):
    """Durable storage for interview sessions."""

    async def get(self, session_id: str) -> dict[str, Any]:
        """Return the raw interview record, question included."""

    async def update(self, session_id: str, partial: dict[str, Any]) -> dict[str, Any]:
        """Apply any subset of code/drawing_data/notes/time_spent_seconds/... ."""

    async def end(
        self,
        session_id: str,
        reason: str,
        time_spent_seconds: int,
        final_code: Optional[str] = None,
    ) -> dict[str, Any]:
        """Finalize the session status (submit -> completed, otherwise abandoned)."""


class ExecutionClient(Protocol):
    """Code execution sandbox."""

    async def execute(
        self,
        *,
        code: str,
        language: str,
        test_cases: list[CodeTestCase],
        execution_type: ExecutionType,
        interview_id: Optional[str] = None,
    ) -> ExecutionReport:
        """Run code against test cases."""


class EvaluationRequester(Protocol):
    """Grading engine entry point. Grading itself happens asynchronously."""

    async def create(self, interview_id: str) -> str:
        """Request an evaluation and return its id."""


class IntroductionSource(Protocol):
    """Produces the interviewer's opening introduction."""

    async def introduce(self, question_context: str, include_audio: bool = True) -> IntroPayload:
        """Generate the introduction for a question."""


class VoiceTransport(Protocol):
    """One persistent bidirectional connection to the realtime voice service."""

    async def open(self) -> None:
        """Establish the connection."""

    async def send(self, message: dict[str, Any]) -> None:
        """Send one JSON control/audio message."""

    def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded server messages until the connection closes."""

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""


class AudioSink(Protocol):
    """Plays interviewer audio. Returns once playback has completed."""

    async def play(self, audio: str) -> None:
        """Play base64-encoded audio."""
