"""
Track policy contract.

A track decides everything that differs between coding and system design
sessions: what the artifact autosaves as, whether code can be executed,
what ends a session on submit, and what context the voice interviewer sees.
"""

from __future__ import annotations

from typing import Any, Protocol

from mock_interview.models import Artifact, InterviewSession, QuestionPayload, SessionKind
from tracks.shared_content import LANGUAGE_TEMPLATES


class TrackPolicy(Protocol):
    session_kind: SessionKind
    display_name: str
    supports_execution: bool
    submit_requires_passing_tests: bool
    evaluate_on_give_up: bool

    def question_context(self, question: QuestionPayload) -> str:
        ...

    def voice_context(self, session: InterviewSession) -> dict[str, Any]:
        ...

    def autosave_payload(self, artifact: Artifact, elapsed_seconds: int) -> dict[str, Any]:
        ...

    def starter_code(self, question: QuestionPayload, language: str) -> str:
        ...


class BaseTrackPolicy:
    """Shared defaults; subclasses set the class attributes and payload shape."""

    session_kind: SessionKind
    display_name: str = ""
    supports_execution: bool = False
    submit_requires_passing_tests: bool = False
    evaluate_on_give_up: bool = False

    def question_context(self, question: QuestionPayload) -> str:
        """Title and description, as read to the interviewer."""
        if not question.title:
            return question.description
        return f"{question.title}\n\n{question.description}".strip()

    def voice_context(self, session: InterviewSession) -> dict[str, Any]:
        return {
            "question": self.question_context(session.question),
            "code": session.artifact.code,
            "language": session.artifact.language,
        }

    def autosave_payload(self, artifact: Artifact, elapsed_seconds: int) -> dict[str, Any]:
        raise NotImplementedError

    def starter_code(self, question: QuestionPayload, language: str) -> str:
        """Question-provided starter code, else the built-in template."""
        code = question.starter_code.get(language)
        if code:
            return code
        return LANGUAGE_TEMPLATES.get(language, "")
