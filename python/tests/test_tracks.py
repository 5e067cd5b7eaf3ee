"""
Tests for session-kind track policies.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import pytest

from mock_interview.models import Artifact, InterviewSession, QuestionPayload, SessionKind
from tracks import available_tracks, load_track
from tracks.shared_content import LANGUAGE_TEMPLATES, SUPPORTED_LANGUAGES
from tests.mock_data import generate_interview_record


def test_available_tracks():
    assert available_tracks() == ("coding", "system_design")


@pytest.mark.parametrize("kind", [SessionKind.CODING, "coding", " Coding "])
def test_load_track_accepts_enum_and_strings(kind):
    assert load_track(kind).session_kind == SessionKind.CODING


def test_load_track_rejects_unknown():
    with pytest.raises(ValueError, match="Unknown track"):
        load_track("behavioral")
    with pytest.raises(ValueError):
        load_track("")


def test_every_supported_language_has_a_template():
    assert set(SUPPORTED_LANGUAGES) == set(LANGUAGE_TEMPLATES)


class TestCodingTrack:
    def test_policy_flags(self):
        track = load_track("coding")
        assert track.supports_execution
        assert track.submit_requires_passing_tests
        assert not track.evaluate_on_give_up

    def test_autosave_payload(self):
        track = load_track("coding")
        payload = track.autosave_payload(Artifact(code="x = 1", language="go"), 42)
        assert payload == {"code": "x = 1", "language": "go", "time_spent_seconds": 42}

    def test_starter_code_prefers_question(self):
        track = load_track("coding")
        question = QuestionPayload(starter_code={"python": "def f():\n    pass\n"})

        assert track.starter_code(question, "python") == "def f():\n    pass\n"
        assert track.starter_code(question, "java") == LANGUAGE_TEMPLATES["java"]
        assert track.starter_code(question, "cobol") == ""

    def test_voice_context(self):
        session = InterviewSession.from_api(generate_interview_record(final_code="print(1)"))
        context = load_track("coding").voice_context(session)

        assert context["question"].startswith("Two Sum\n\n")
        assert context["code"] == "print(1)"
        assert context["language"] == "python"


class TestSystemDesignTrack:
    def test_policy_flags(self):
        track = load_track(SessionKind.SYSTEM_DESIGN)
        assert not track.supports_execution
        assert not track.submit_requires_passing_tests
        assert track.evaluate_on_give_up

    def test_autosave_payload(self):
        track = load_track("system_design")
        artifact = Artifact(drawing_elements=[{"id": "db"}], notes="Use a KV store")

        assert track.autosave_payload(artifact, 7) == {
            "drawing_data": {"elements": [{"id": "db"}]},
            "notes": "Use a KV store",
            "time_spent_seconds": 7,
        }

    def test_notes_stand_in_for_code(self):
        session = InterviewSession.from_api(
            generate_interview_record(session_type="system_design", notes="Cache hot keys")
        )
        context = load_track("system_design").voice_context(session)
        assert context == {
            "question": "Design a URL Shortener\n\nDesign a service that shortens URLs at high read volume.",
            "code": "Cache hot keys",
            "language": "text",
        }

    def test_question_without_title(self):
        track = load_track("system_design")
        assert track.question_context(QuestionPayload(description="Design a chat app")) == "Design a chat app"
