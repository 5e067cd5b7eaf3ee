"""
Tests for the SessionController lifecycle.

Covers loading and the resume decision, the one-time introduction, autosave
through the controller, run/submit/give up/timeout, terminal exclusivity,
persistence and evaluation failures, and teardown.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from pydantic import ValidationError

from mock_interview.controller import SessionController
from mock_interview.errors import EvaluationError, LoadError, PersistenceError, SessionStateError
from mock_interview.models import (
    EndReason,
    ExecutionType,
    InterviewSession,
    QuestionPayload,
    SessionKind,
    SessionStatus,
    Speaker,
)
from mock_interview.pubsub import SessionEventType
from mock_interview.voice import VoiceState
from tracks.shared_content import LANGUAGE_TEMPLATES
from tests.mock_data import (
    INTRO_TEXT,
    TWO_SUM_CODE,
    ControllerHarness,
    FakeTransportFactory,
    build_harness,
    fast_timings,
    generate_interview_record,
    generate_question,
    wait_for,
)


@pytest_asyncio.fixture
async def harness(tmp_path: Path) -> AsyncIterator[ControllerHarness]:
    h = build_harness(tmp_path)
    yield h
    await h.controller.teardown()


async def event_types(controller: SessionController) -> list[SessionEventType]:
    return [e.event_type for e in await controller.publisher.get_history()]


# =============================================================================
# Loading
# =============================================================================


class TestLoad:
    @pytest.mark.asyncio
    async def test_fresh_coding_session(self, harness: ControllerHarness):
        session = await harness.controller.load("iv_test")

        assert session.session_kind == SessionKind.CODING
        assert session.status == SessionStatus.IN_PROGRESS
        assert not harness.controller.resumed
        # Starter code fills the editor without counting as progress.
        assert session.artifact.code == "def two_sum(nums, target):\n    pass\n"
        assert not harness.controller.pump.is_dirty()
        assert harness.controller.timer.remaining_seconds == 3600

    @pytest.mark.asyncio
    async def test_empty_id_is_rejected(self, harness: ControllerHarness):
        with pytest.raises(LoadError):
            await harness.controller.load("  ")
        assert harness.interviews.get_calls == []

    @pytest.mark.asyncio
    async def test_missing_interview(self, harness: ControllerHarness):
        with pytest.raises(LoadError) as exc_info:
            await harness.controller.load("iv_missing")
        assert exc_info.value.session_id == "iv_missing"
        assert not harness.controller.is_loaded

    @pytest.mark.asyncio
    async def test_network_failure(self, harness: ControllerHarness):
        harness.interviews.fail_get = True
        with pytest.raises(LoadError):
            await harness.controller.load("iv_test")

    @pytest.mark.asyncio
    async def test_malformed_record(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(time_limit_seconds=-5))
        with pytest.raises(LoadError):
            await h.controller.load("iv_test")

    @pytest.mark.asyncio
    async def test_unknown_session_type(self, tmp_path: Path):
        record = generate_interview_record()
        record["session_type"] = "behavioral"
        h = build_harness(tmp_path, record)
        with pytest.raises(LoadError):
            await h.controller.load("iv_test")

    @pytest.mark.asyncio
    async def test_second_load_is_rejected(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        with pytest.raises(SessionStateError):
            await harness.controller.load("iv_test")

    @pytest.mark.asyncio
    async def test_accessors_require_a_session(self, harness: ControllerHarness):
        with pytest.raises(SessionStateError):
            harness.controller.session

    @pytest.mark.asyncio
    async def test_resumed_by_existing_code(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(final_code=TWO_SUM_CODE))
        async with h.controller:
            await h.controller.load("iv_test")
            assert h.controller.resumed
            assert h.controller.session.artifact.code == TWO_SUM_CODE

    @pytest.mark.asyncio
    async def test_elapsed_at_threshold_is_not_resumed(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(time_spent_seconds=5))
        await h.controller.load("iv_test")
        assert not h.controller.resumed

    @pytest.mark.asyncio
    async def test_persisted_transcript_seeds_log(self, tmp_path: Path):
        record = generate_interview_record(
            time_spent_seconds=300,
            transcript=[{"timestamp": 1, "speaker": "interviewer", "text": "Welcome back."}],
        )
        h = build_harness(tmp_path, record)
        await h.controller.load("iv_test")
        assert [e.text for e in h.controller.transcript.entries()] == ["Welcome back."]


# =============================================================================
# Introduction (Scenarios A and B)
# =============================================================================


class TestIntroduction:
    @pytest.mark.asyncio
    async def test_fresh_session_plays_intro_once(self, harness: ControllerHarness):
        """Scenario A: fetch attempted, flag set, interviewer entry recorded."""
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()
        assert controller.intro_task is not None
        await controller.intro_task

        assert harness.intro_source is not None
        assert harness.intro_source.calls == [
            "Two Sum\n\nReturn the indices of the two numbers that add up to target."
        ]
        assert harness.flags.is_set("iv_test")
        entries = controller.transcript.entries()
        assert entries[0].speaker == Speaker.INTERVIEWER
        assert entries[0].text == INTRO_TEXT
        assert SessionEventType.INTRO in await event_types(controller)

    @pytest.mark.asyncio
    async def test_reload_does_not_replay_intro(self, tmp_path: Path):
        first = build_harness(tmp_path)
        async with first.controller:
            await first.controller.load("iv_test")
            await first.controller.start()
            await first.controller.intro_task

        second = build_harness(tmp_path)
        async with second.controller:
            await second.controller.load("iv_test")
            await second.controller.start()
            assert second.controller.intro_task is None
        assert second.intro_source is not None and second.intro_source.calls == []

    @pytest.mark.asyncio
    async def test_resumed_session_skips_intro(self, tmp_path: Path):
        """Scenario B: elapsed 120s means resumed and no fetch at all."""
        h = build_harness(tmp_path, generate_interview_record(time_spent_seconds=120))
        async with h.controller:
            await h.controller.load("iv_test")
            assert h.controller.resumed
            await h.controller.start()

            assert h.controller.intro_task is None
            assert h.flags.is_set("iv_test")
        assert h.intro_source is not None and h.intro_source.calls == []
        assert h.controller.transcript.entries() == []

    @pytest.mark.asyncio
    async def test_intro_failure_leaves_session_running(self, harness: ControllerHarness):
        assert harness.intro_source is not None
        harness.intro_source.fail = True
        await harness.controller.load("iv_test")
        await harness.controller.start()
        await harness.controller.intro_task

        assert not harness.flags.is_set("iv_test")
        assert harness.controller.session.status == SessionStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_voice_generated_intro_without_http_source(self, tmp_path: Path):
        transports = FakeTransportFactory(
            intro_reply={"type": "introduction_ready", "text": "Hello from the voice service.", "audio": None}
        )
        h = build_harness(tmp_path, use_intro_source=False, transports=transports)
        async with h.controller:
            await h.controller.load("iv_test")
            await h.controller.start()
            await h.controller.intro_task

            assert "request_introduction" in transports.current.sent_types()
            assert h.controller.transcript.entries()[0].text == "Hello from the voice service."
            assert h.flags.is_set("iv_test")


# =============================================================================
# Editing and autosave (Scenario C)
# =============================================================================


class TestEditing:
    @pytest.mark.asyncio
    async def test_edit_then_tick_writes_once(self, harness: ControllerHarness):
        """Scenario C."""
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        controller.update_artifact({"code": TWO_SUM_CODE})
        assert await controller.pump.tick() is True
        assert await controller.pump.tick() is False

        writes = harness.interviews.updates_with("code")
        assert writes == [{"code": TWO_SUM_CODE, "language": "python", "time_spent_seconds": 0}]

    @pytest.mark.asyncio
    async def test_autosave_loop_runs_in_background(self, tmp_path: Path):
        h = build_harness(tmp_path, timings=fast_timings(autosave_interval_seconds=0.01))
        async with h.controller:
            await h.controller.load("iv_test")
            await h.controller.start()
            h.controller.update_artifact({"code": "print('hi')"})

            await wait_for(lambda: bool(h.interviews.updates_with("code")))
            assert h.interviews.updates_with("code")[0]["code"] == "print('hi')"

    @pytest.mark.asyncio
    async def test_language_switch_resets_to_template(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        harness.controller.update_artifact({"code": TWO_SUM_CODE})

        artifact = harness.controller.update_artifact({"language": "javascript"})

        assert artifact.language == "javascript"
        assert artifact.code == LANGUAGE_TEMPLATES["javascript"]

    @pytest.mark.asyncio
    async def test_language_switch_with_code_keeps_code(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        artifact = harness.controller.update_artifact({"language": "go", "code": "package main"})
        assert artifact.code == "package main"

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        with pytest.raises(ValidationError):
            harness.controller.update_artifact({"colour": "blue"})

    @pytest.mark.asyncio
    async def test_edits_reach_the_voice_channel(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        await harness.controller.start()
        await harness.controller.voice.wait_connected(timeout=1.0)

        harness.controller.update_artifact({"code": TWO_SUM_CODE})

        transport = harness.transports.current
        await wait_for(
            lambda: any(m.get("code") == TWO_SUM_CODE for m in transport.sent if m["type"] == "code_update")
        )

    @pytest.mark.asyncio
    async def test_system_design_artifact(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(session_type="system_design"))
        async with h.controller:
            await h.controller.load("iv_test")
            await h.controller.start()
            h.controller.update_artifact(
                {"drawing_elements": [{"type": "rect", "id": "lb"}], "notes": "Load balancer in front"}
            )
            await h.controller.pump.tick()

            assert h.controller.session.artifact.code == ""
            assert h.interviews.updates_with("drawing_data") == [
                {
                    "drawing_data": {"elements": [{"type": "rect", "id": "lb"}]},
                    "notes": "Load balancer in front",
                    "time_spent_seconds": 0,
                }
            ]

    @pytest.mark.asyncio
    async def test_finalized_utterances_are_synced(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        await harness.controller.start()
        await harness.controller.voice.wait_connected(timeout=1.0)

        await harness.controller.voice.send_text_input("Can I sort the array first?")

        await wait_for(
            lambda: any(
                p["transcript_entry"]["text"] == "Can I sort the array first?"
                for p in harness.interviews.updates_with("transcript_entry")
            )
        )
        assert SessionEventType.TRANSCRIPT_ENTRY in await event_types(harness.controller)

    @pytest.mark.asyncio
    async def test_slow_sync_keeps_stored_transcript_in_order(self, harness: ControllerHarness):
        harness.flags.set("iv_test")
        harness.interviews.update_delay = lambda partial: (
            0.05 if partial.get("transcript_entry", {}).get("text") == "first" else 0.0
        )
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()
        await controller.voice.wait_connected(timeout=1.0)

        await controller.voice.send_text_input("first")
        await controller.voice.send_text_input("second")

        stored = harness.interviews.records["iv_test"]["transcript"]
        await wait_for(lambda: len(stored) == 2)
        assert [e["text"] for e in stored] == ["first", "second"]
        assert [e.text for e in controller.transcript.entries()] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failed_sync_is_retried(self, harness: ControllerHarness):
        harness.flags.set("iv_test")
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()
        await controller.voice.wait_connected(timeout=1.0)

        harness.interviews.fail_updates = 1
        await controller.voice.send_text_input("retry me")

        stored = harness.interviews.records["iv_test"]["transcript"]
        await wait_for(lambda: len(stored) == 1)
        assert stored[0]["text"] == "retry me"
        assert len(harness.interviews.updates_with("transcript_entry")) == 2

    @pytest.mark.asyncio
    async def test_unsynced_entries_land_before_the_end_call(self, tmp_path: Path):
        h = build_harness(tmp_path, timings=fast_timings(transcript_retry_delay_seconds=60.0))
        h.flags.set("iv_test")
        controller = h.controller
        await controller.load("iv_test")
        await controller.start()
        await controller.voice.wait_connected(timeout=1.0)

        h.interviews.fail_updates = 1
        await controller.voice.send_text_input("lost utterance")
        await wait_for(lambda: bool(h.interviews.updates_with("transcript_entry")))

        await controller.give_up()
        await controller.teardown()

        assert [e["text"] for e in h.interviews.records["iv_test"]["transcript"]] == ["lost utterance"]
        assert len(h.interviews.ends) == 1


# =============================================================================
# Run and submit
# =============================================================================


class TestRunAndSubmit:
    @pytest.mark.asyncio
    async def test_run_uses_visible_tests(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        report = await harness.controller.run()

        call = harness.execution.calls[0]
        assert call["execution_type"] == ExecutionType.RUN
        assert len(call["test_cases"]) == 2
        assert call["interview_id"] == "iv_test"
        assert report.all_passed
        assert harness.controller.session.run_count == 1
        await wait_for(lambda: bool(harness.interviews.updates_with("increment_run_count")))
        assert SessionEventType.TEST_RESULTS in await event_types(harness.controller)

    @pytest.mark.asyncio
    async def test_run_failure_reports_every_test_failed(self, harness: ControllerHarness):
        harness.execution.fail = True
        await harness.controller.load("iv_test")

        report = await harness.controller.run()

        assert not report.all_passed
        assert report.error is not None and "Code execution failed" in report.error
        assert [r.status for r in report.results] == ["Error", "Error"]
        assert report.summary.passed == 0

    @pytest.mark.asyncio
    async def test_run_without_execution_support(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(session_type="system_design"))
        await h.controller.load("iv_test")
        with pytest.raises(SessionStateError):
            await h.controller.run()

    @pytest.mark.asyncio
    async def test_submit_with_passing_tests_completes(self, harness: ControllerHarness):
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()
        controller.update_artifact({"code": TWO_SUM_CODE})

        outcome = await controller.submit()

        assert outcome.ended
        assert outcome.reason == EndReason.SUBMIT
        assert outcome.status == SessionStatus.COMPLETED
        assert outcome.evaluation_id == "ev_iv_test"
        assert outcome.report is not None and outcome.report.summary.total == 3
        assert harness.execution.calls[0]["execution_type"] == ExecutionType.SUBMIT
        assert harness.interviews.ends == [
            {
                "session_id": "iv_test",
                "reason": "submit",
                "time_spent_seconds": 0,
                "final_code": TWO_SUM_CODE,
            }
        ]
        # The final flush lands before the end call.
        assert harness.interviews.updates_with("code")[-1]["code"] == TWO_SUM_CODE
        assert controller.session.submit_count == 1
        assert controller.voice.state == VoiceState.IDLE
        assert SessionEventType.SESSION_ENDED in await event_types(controller)

    @pytest.mark.asyncio
    async def test_submit_with_failing_tests_stays_open(self, harness: ControllerHarness):
        harness.execution.verdict = "Wrong Answer"
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        outcome = await controller.submit()

        assert not outcome.ended
        assert outcome.status == SessionStatus.IN_PROGRESS
        assert outcome.report is not None and outcome.report.summary.passed == 0
        assert harness.interviews.ends == []
        assert harness.evaluations.calls == []
        assert controller.timer.is_running
        controller.update_artifact({"code": "still editing"})

    @pytest.mark.asyncio
    async def test_submit_when_sandbox_is_down_stays_open(self, harness: ControllerHarness):
        harness.execution.fail = True
        await harness.controller.load("iv_test")

        outcome = await harness.controller.submit()

        assert not outcome.ended
        assert harness.interviews.ends == []

    @pytest.mark.asyncio
    async def test_system_design_submit_always_ends(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(session_type="system_design"))
        async with h.controller:
            await h.controller.load("iv_test")
            await h.controller.start()
            outcome = await h.controller.submit()

        assert outcome.status == SessionStatus.COMPLETED
        assert h.execution.calls == []
        assert h.interviews.ends[0]["final_code"] is None
        assert h.evaluations.calls == ["iv_test"]


# =============================================================================
# Give up, timeout and terminal exclusivity (Scenarios D and E)
# =============================================================================


class TestTermination:
    @pytest.mark.asyncio
    async def test_timeout_ends_session_and_requests_evaluation(self, tmp_path: Path):
        """Scenario D."""
        h = build_harness(
            tmp_path,
            generate_interview_record(time_limit_seconds=3),
            timings=fast_timings(tick_interval_seconds=0.01),
        )
        async with h.controller:
            await h.controller.load("iv_test")
            await h.controller.start()
            await wait_for(lambda: h.controller.outcome is not None and h.controller.outcome.evaluation_id is not None)

            outcome = h.controller.outcome
            assert outcome is not None
            assert outcome.reason == EndReason.TIMEOUT
            assert outcome.status == SessionStatus.ABANDONED
            assert h.interviews.ends == [
                {
                    "session_id": "iv_test",
                    "reason": "timeout",
                    "time_spent_seconds": 3,
                    "final_code": h.controller.session.artifact.code,
                }
            ]
            assert h.evaluations.calls == ["iv_test"]
            assert h.controller.timer.elapsed_seconds == 3

    @pytest.mark.asyncio
    async def test_double_give_up_ends_once(self, harness: ControllerHarness):
        """Scenario E."""
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        first, second = await asyncio.gather(controller.give_up(), controller.give_up())

        assert len(harness.interviews.ends) == 1
        assert first == second
        assert first.status == SessionStatus.ABANDONED
        # Coding sessions are not graded on give up by default.
        assert harness.evaluations.calls == []

    @pytest.mark.asyncio
    async def test_only_first_terminal_call_wins(self, harness: ControllerHarness):
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        ended = await controller.give_up()
        after_submit = await controller.submit()
        after_timeout = await controller.on_timeout()

        assert after_submit.reason == EndReason.GIVE_UP
        assert after_timeout is not None and after_timeout.reason == EndReason.GIVE_UP
        assert ended == after_submit
        assert len(harness.interviews.ends) == 1
        assert harness.execution.calls == []
        with pytest.raises(SessionStateError):
            controller.update_artifact({"code": "late edit"})
        with pytest.raises(SessionStateError):
            await controller.run()

    @pytest.mark.asyncio
    async def test_submit_racing_give_up_ends_once(self, harness: ControllerHarness):
        harness.execution.gate = asyncio.Event()
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        submit = asyncio.create_task(controller.submit())
        await wait_for(lambda: bool(harness.execution.calls))
        gave_up = await controller.give_up()
        harness.execution.gate.set()
        submitted = await submit

        assert gave_up.reason == EndReason.GIVE_UP
        assert submitted.reason == EndReason.GIVE_UP
        assert len(harness.interviews.ends) == 1

    @pytest.mark.asyncio
    async def test_failing_submit_after_give_up_reports_the_ended_session(self, harness: ControllerHarness):
        harness.execution.verdict = "Wrong Answer"
        harness.execution.gate = asyncio.Event()
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        submit = asyncio.create_task(controller.submit())
        await wait_for(lambda: bool(harness.execution.calls))
        await controller.give_up()
        harness.execution.gate.set()
        submitted = await submit

        assert submitted.ended
        assert submitted.reason == EndReason.GIVE_UP
        assert submitted.status == SessionStatus.ABANDONED
        assert len(harness.interviews.ends) == 1

    @pytest.mark.asyncio
    async def test_system_design_give_up_is_evaluated(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(session_type="system_design"))
        async with h.controller:
            await h.controller.load("iv_test")
            outcome = await h.controller.give_up()
        assert outcome.evaluation_id == "ev_iv_test"

    @pytest.mark.asyncio
    async def test_give_up_evaluation_override(self, tmp_path: Path):
        h = build_harness(tmp_path, give_up_evaluation=True)
        async with h.controller:
            await h.controller.load("iv_test")
            await h.controller.give_up()
        assert h.evaluations.calls == ["iv_test"]

    @pytest.mark.asyncio
    async def test_failed_end_keeps_session_active(self, harness: ControllerHarness):
        harness.interviews.fail_ends = 1
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()

        with pytest.raises(PersistenceError):
            await controller.give_up()

        assert controller.session.status == SessionStatus.IN_PROGRESS
        assert controller.timer.is_running
        assert controller.pump.is_running
        assert controller.voice.is_connected

        outcome = await controller.give_up()
        assert outcome.status == SessionStatus.ABANDONED
        assert len(harness.interviews.ends) == 2

    @pytest.mark.asyncio
    async def test_failed_final_flush_skips_end_call(self, harness: ControllerHarness):
        harness.interviews.fail_updates = 1
        await harness.controller.load("iv_test")

        with pytest.raises(PersistenceError):
            await harness.controller.give_up()
        assert harness.interviews.ends == []

    @pytest.mark.asyncio
    async def test_failed_timeout_end_is_published(self, harness: ControllerHarness):
        harness.interviews.fail_ends = 1
        controller = harness.controller
        await controller.load("iv_test")

        assert await controller.on_timeout() is None

        assert controller.session.status == SessionStatus.IN_PROGRESS
        assert SessionEventType.ERROR in await event_types(controller)

    @pytest.mark.asyncio
    async def test_evaluation_failure_keeps_session_terminal(self, harness: ControllerHarness):
        harness.evaluations.fail = 2
        controller = harness.controller
        await controller.load("iv_test")

        outcome = await controller.submit()

        assert outcome.status == SessionStatus.COMPLETED
        assert outcome.evaluation_id is None
        assert outcome.evaluation_error is not None
        with pytest.raises(EvaluationError):
            await controller.retry_evaluation()

        retried = await controller.retry_evaluation()
        assert retried.evaluation_id == "ev_iv_test"
        assert controller.outcome == retried

    @pytest.mark.asyncio
    async def test_retry_evaluation_requires_ended_session(self, harness: ControllerHarness):
        await harness.controller.load("iv_test")
        with pytest.raises(SessionStateError):
            await harness.controller.retry_evaluation()


# =============================================================================
# Ephemeral sessions and teardown
# =============================================================================


class TestEphemeralAndTeardown:
    @pytest.mark.asyncio
    async def test_ephemeral_session_never_persists(self, harness: ControllerHarness):
        session = InterviewSession(
            session_id="temp-42",
            question=QuestionPayload.model_validate(generate_question()),
        )
        controller = harness.controller
        controller.attach(session)
        await controller.start()
        controller.update_artifact({"code": TWO_SUM_CODE})

        await controller.run()
        outcome = await controller.submit()

        assert outcome.status == SessionStatus.COMPLETED
        assert harness.execution.calls[0]["interview_id"] is None
        assert harness.interviews.updates == []
        assert harness.interviews.ends == []
        assert harness.evaluations.calls == []
        assert not controller.pump.is_running

    @pytest.mark.asyncio
    async def test_teardown_flushes_dirty_active_session(self, harness: ControllerHarness):
        controller = harness.controller
        await controller.load("iv_test")
        await controller.start()
        controller.update_artifact({"code": "unsaved work"})

        await controller.teardown()
        await controller.teardown()

        assert harness.interviews.updates_with("code")[-1]["code"] == "unsaved work"
        assert harness.interviews.ends == []
        assert controller.session.status == SessionStatus.IN_PROGRESS
        assert controller.voice.is_closed
        assert not controller.timer.is_running

    @pytest.mark.asyncio
    async def test_teardown_of_clean_session_writes_nothing(self, tmp_path: Path):
        h = build_harness(tmp_path, generate_interview_record(time_spent_seconds=600))
        await h.controller.load("iv_test")
        await h.controller.start()
        await h.controller.teardown()

        assert h.interviews.updates == []

    @pytest.mark.asyncio
    async def test_teardown_without_session(self, harness: ControllerHarness):
        await harness.controller.teardown()
        assert not harness.controller.is_loaded
