"""
Coding track policy.
"""

from __future__ import annotations

from typing import Any

from mock_interview.models import Artifact, SessionKind
from tracks.base import BaseTrackPolicy


class CodingTrackPolicy(BaseTrackPolicy):
    """Editor + test execution. Submit ends the session only when every test passes."""

    session_kind = SessionKind.CODING
    display_name = "Coding"
    supports_execution = True
    submit_requires_passing_tests = True
    evaluate_on_give_up = False

    def autosave_payload(self, artifact: Artifact, elapsed_seconds: int) -> dict[str, Any]:
        return {
            "code": artifact.code,
            "language": artifact.language,
            "time_spent_seconds": elapsed_seconds,
        }
