"""
System design track policy.
"""

from __future__ import annotations

from typing import Any

from mock_interview.models import Artifact, InterviewSession, SessionKind
from tracks.base import BaseTrackPolicy


class SystemDesignTrackPolicy(BaseTrackPolicy):
    """
    Diagram + notes, reviewed verbally.

    Submit always ends the session, and giving up still requests an
    evaluation so partial work gets feedback.
    """

    session_kind = SessionKind.SYSTEM_DESIGN
    display_name = "System Design"
    supports_execution = False
    submit_requires_passing_tests = False
    evaluate_on_give_up = True

    def voice_context(self, session: InterviewSession) -> dict[str, Any]:
        # Notes stand in for code as the interviewer's view of the work.
        return {
            "question": self.question_context(session.question),
            "code": session.artifact.notes,
            "language": "text",
        }

    def autosave_payload(self, artifact: Artifact, elapsed_seconds: int) -> dict[str, Any]:
        return {
            "drawing_data": {"elements": artifact.drawing_elements},
            "notes": artifact.notes,
            "time_spent_seconds": elapsed_seconds,
        }
