"""
Interview Session Controller.

Composes the timer, autosave pump, introduction cache, transcript log and
voice channel around one InterviewSession, and is the only component that
mutates it. Exposes the lifecycle operations used by the presentation
layer: load, start, update_artifact, run, submit, give_up, on_timeout and
teardown.

Termination protocol (every reason):
    1. stop the timer and the background writers
    2. queued transcript entries, then one final awaited flush of the
       artifact and elapsed time
    3. the session-end RPC
    4. only then: terminal status, voice teardown, evaluation, UI event

Thread Safety:
    Single event loop only. Concurrent lifecycle calls share one
    termination task, so at most one end RPC is issued per session.

Last Grunted: 10/17/2026
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Optional, Union

from pydantic import ValidationError

from .autosave import AutosavePump
from .collaborators import (
    AudioSink,
    EvaluationRequester,
    ExecutionClient,
    InterviewsApi,
    IntroductionSource,
    VoiceTransport,
)
from .errors import (
    EvaluationError,
    ExecutionError,
    LoadError,
    PersistenceError,
    RpcError,
    SessionStateError,
)
from .intro import IntroductionCache, IntroFlagStore
from .models import (
    ArtifactPatch,
    Artifact,
    CodeTestCase,
    EndReason,
    ExecutionReport,
    ExecutionType,
    InterviewSession,
    SessionOutcome,
    SessionStatus,
    TranscriptEntry,
    is_ephemeral_session_id,
)
from .pubsub import SessionEventPublisher
from .timer import TimerService
from .transcript import TranscriptLog
from .transcript_sync import TranscriptSync
from .voice import VoiceChannel, VoiceObserver, VoiceState

if TYPE_CHECKING:
    from tracks import TrackPolicy


__all__ = ["SessionController", "SessionTimings"]


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionTimings:
    """Tunable intervals and thresholds, all in seconds."""

    tick_interval_seconds: float = 1.0
    autosave_interval_seconds: float = 10.0
    resume_threshold_seconds: int = 5
    reconnect_delay_seconds: float = 1.0
    intro_play_delay_seconds: float = 0.5
    intro_timeout_seconds: float = 30.0
    transcript_retry_delay_seconds: float = 1.0


class _ControllerVoiceObserver(VoiceObserver):
    """Forwards channel notifications to the event stream and transcript sync."""

    def __init__(self, controller: "SessionController") -> None:
        self._controller = controller

    async def on_state_change(self, old: VoiceState, new: VoiceState) -> None:
        await self._controller.publisher.publish_voice_state(old.value, new.value)

    async def on_partial(self, text: Optional[str]) -> None:
        await self._controller.publisher.publish_partial(text)

    async def on_entry(self, entry: TranscriptEntry) -> None:
        self._controller._sync_transcript_entry(entry)
        await self._controller.publisher.publish_entry(entry.to_api())

    async def on_error(self, message: str) -> None:
        await self._controller.publisher.publish_error(message)

    async def on_reconnecting(self, attempt: int, reason: str) -> None:
        await self._controller.publisher.publish_reconnecting(attempt, reason)


class SessionController:
    """
    Owner of one interview session's lifecycle.

    Args:
        interviews: Durable session storage.
        execution: Code execution sandbox.
        evaluations: Grading entry point.
        intro_source: HTTP introduction source; None asks the voice channel
            to generate the introduction instead.
        flags: Durable intro-played flag store.
        transport_factory: Builds a fresh realtime voice transport per
            connection attempt.
        audio_sink: Plays interviewer audio, if any.
        publisher: UI event stream. A private one is created when omitted.
        timings: Intervals and thresholds.
        give_up_evaluation: Override the track's give-up evaluation policy.
        track_loader: Resolves a session kind to its track policy. Defaults
            to the ``tracks`` registry.

    Example:
        >>> controller = SessionController(
        ...     interviews=clients.interviews,
        ...     execution=clients.execution,
        ...     evaluations=clients.evaluations,
        ...     intro_source=clients.voice,
        ...     flags=IntroFlagStore(config.state_dir),
        ...     transport_factory=clients.voice_transport,
        ... )
        >>> async with controller:
        ...     await controller.load("iv_123")
        ...     await controller.start()
        ...     controller.update_artifact({"code": "print(42)"})
        ...     outcome = await controller.submit()
    """

    def __init__(
        self,
        *,
        interviews: InterviewsApi,
        execution: ExecutionClient,
        evaluations: EvaluationRequester,
        intro_source: Optional[IntroductionSource],
        flags: IntroFlagStore,
        transport_factory: Callable[[], VoiceTransport],
        audio_sink: Optional[AudioSink] = None,
        publisher: Optional[SessionEventPublisher] = None,
        timings: SessionTimings = SessionTimings(),
        give_up_evaluation: Optional[bool] = None,
        track_loader: Optional[Callable[[Any], "TrackPolicy"]] = None,
    ) -> None:
        self._interviews = interviews
        self._execution = execution
        self._evaluations = evaluations
        self._intro_source = intro_source
        self._flags = flags
        self._transport_factory = transport_factory
        self._audio_sink = audio_sink
        self.publisher = publisher or SessionEventPublisher()
        self._timings = timings
        self._give_up_evaluation = give_up_evaluation
        self._track_loader = track_loader

        self._session: Optional[InterviewSession] = None
        self._track: Optional["TrackPolicy"] = None
        self._resumed = False
        self._started = False
        self._torn_down = False

        self._transcript: Optional[TranscriptLog] = None
        self._timer: Optional[TimerService] = None
        self._pump: Optional[AutosavePump] = None
        self._intro: Optional[IntroductionCache] = None
        self._voice: Optional[VoiceChannel] = None
        self._transcript_sync: Optional[TranscriptSync] = None
        self._intro_task: Optional[asyncio.Task[None]] = None

        self._submit_lock = asyncio.Lock()
        self._terminate_task: Optional[asyncio.Task[SessionOutcome]] = None
        self._outcome: Optional[SessionOutcome] = None
        self._background: set[asyncio.Task[Any]] = set()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def session(self) -> InterviewSession:
        return self._require_session()

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    @property
    def resumed(self) -> bool:
        """True when the session was loaded with prior progress."""
        return self._resumed

    @property
    def track(self) -> "TrackPolicy":
        self._require_session()
        assert self._track is not None
        return self._track

    @property
    def transcript(self) -> TranscriptLog:
        self._require_session()
        assert self._transcript is not None
        return self._transcript

    @property
    def timer(self) -> TimerService:
        self._require_session()
        assert self._timer is not None
        return self._timer

    @property
    def pump(self) -> AutosavePump:
        self._require_session()
        assert self._pump is not None
        return self._pump

    @property
    def intro(self) -> IntroductionCache:
        self._require_session()
        assert self._intro is not None
        return self._intro

    @property
    def voice(self) -> VoiceChannel:
        self._require_session()
        assert self._voice is not None
        return self._voice

    @property
    def outcome(self) -> Optional[SessionOutcome]:
        return self._outcome

    @property
    def intro_task(self) -> Optional[asyncio.Task[None]]:
        return self._intro_task

    def _require_session(self) -> InterviewSession:
        if self._session is None:
            raise SessionStateError("No session loaded")
        return self._session

    def _require_active(self) -> InterviewSession:
        session = self._require_session()
        if session.is_terminal or self._terminate_task is not None:
            raise SessionStateError(
                f"Session is {session.status.value}", session_id=session.session_id
            )
        return session

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self, session_id: str) -> InterviewSession:
        """
        Fetch a session and its question, and decide whether it is resumed.

        Raises:
            LoadError: If the id is invalid, the fetch fails, or the record
                cannot be parsed.
            SessionStateError: If this controller already holds a session.
        """
        session_id = (session_id or "").strip()
        if not session_id:
            raise LoadError("Session id is empty")
        if self._session is not None:
            raise SessionStateError("A session is already loaded", session_id=session_id)

        try:
            data = await self._interviews.get(session_id)
        except RpcError as e:
            logger.error("Failed to load interview %s: %s", session_id, e)
            raise LoadError(
                f"Failed to load interview {session_id}: {e.message}",
                session_id=session_id,
                cause=e,
            ) from e

        try:
            session = InterviewSession.from_api(data)
        except (ValidationError, ValueError, KeyError) as e:
            raise LoadError(
                f"Interview {session_id} is malformed: {e}",
                session_id=session_id,
                cause=e,
            ) from e

        return self.attach(session)

    def attach(self, session: InterviewSession) -> InterviewSession:
        """
        Adopt an already-built session (e.g. a local placeholder) and wire
        the background services around it.
        """
        if self._session is not None:
            raise SessionStateError("A session is already loaded", session_id=session.session_id)

        if self._track_loader is None:
            # tracks imports this package's models, so resolve it lazily.
            from tracks import load_track

            self._track_loader = load_track
        track = self._track_loader(session.session_kind)
        resumed = (
            session.elapsed_seconds > self._timings.resume_threshold_seconds
            or not session.artifact.is_empty()
        )
        # Starter code is filled after the resume decision; it is not user work.
        if track.supports_execution and not session.artifact.code:
            session.artifact = session.artifact.model_copy(
                update={"code": track.starter_code(session.question, session.artifact.language)}
            )

        self._session = session
        self._track = track
        self._resumed = resumed
        self._transcript = TranscriptLog(session.transcript)
        self._intro = IntroductionCache(
            session.session_id,
            source=self._intro_source,
            flags=self._flags,
            play_delay_seconds=self._timings.intro_play_delay_seconds,
            request_timeout_seconds=self._timings.intro_timeout_seconds,
        )
        if resumed:
            self._intro.mark_played()

        self._timer = TimerService(
            elapsed_seconds=session.elapsed_seconds,
            time_limit_seconds=session.time_limit_seconds,
            on_tick=self._on_tick,
            on_timeout=self.on_timeout,
            interval_seconds=self._timings.tick_interval_seconds,
        )
        self._pump = AutosavePump(
            session.session_id,
            snapshot_source=self.autosave_payload,
            persist=self._persist_update,
            interval_seconds=self._timings.autosave_interval_seconds,
            initial_snapshot=self.autosave_payload(),
        )
        self._voice = VoiceChannel(
            session.session_id,
            transport_factory=self._transport_factory,
            transcript=self._transcript,
            audio_sink=self._audio_sink,
            observer=_ControllerVoiceObserver(self),
            context_source=self._voice_context,
            reconnect_delay_seconds=self._timings.reconnect_delay_seconds,
        )
        self._transcript_sync = TranscriptSync(
            session.session_id,
            persist=self._persist_update,
            retry_delay_seconds=self._timings.transcript_retry_delay_seconds,
        )

        logger.info(
            "Loaded %s session %s (elapsed %ds of %ds, resumed=%s)",
            session.session_kind.value,
            session.session_id,
            session.elapsed_seconds,
            session.time_limit_seconds,
            resumed,
        )
        return session

    # =========================================================================
    # Running
    # =========================================================================

    async def start(self) -> None:
        """
        Start the clock, autosave, voice connection and (fresh sessions
        only) the introduction.

        Raises:
            SessionStateError: If no session is loaded or it is terminal.
        """
        session = self._require_active()
        if self._started:
            return
        self._started = True
        assert self._timer and self._pump and self._voice and self._intro and self._transcript_sync

        await self.publisher.publish_system(
            f"Session {session.session_id} {'resumed' if self._resumed else 'started'}"
        )
        self._pump.start()
        self._transcript_sync.start()
        await self._voice.start()
        if not self._resumed and not self._intro.has_played():
            self._intro_task = asyncio.create_task(self._run_intro())
        self._timer.start()

    async def _run_intro(self) -> None:
        assert self._intro and self._voice and self._track and self._session
        context = self._track.question_context(self._session.question)
        try:
            played = await self._intro.play_when_ready(self._voice, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Introduction failed for %s: %s", self._session.session_id, e)
            return
        if played:
            payload = self._intro.cached(context)
            await self.publisher.publish_intro(payload.text if payload else "")

    def _on_tick(self, elapsed_seconds: int) -> None:
        assert self._session is not None
        self._session.elapsed_seconds = elapsed_seconds

    def _voice_context(self) -> dict[str, Any]:
        assert self._track and self._session
        return self._track.voice_context(self._session)

    def autosave_payload(self) -> dict[str, Any]:
        """What the active track persists: artifact fields plus elapsed time."""
        session = self._require_session()
        assert self._track is not None
        return self._track.autosave_payload(session.artifact, session.elapsed_seconds)

    async def _persist_update(self, payload: dict[str, Any]) -> None:
        assert self._session is not None
        await self._interviews.update(self._session.session_id, payload)

    # =========================================================================
    # Editing
    # =========================================================================

    def update_artifact(self, patch: Union[ArtifactPatch, dict[str, Any]]) -> Artifact:
        """
        Merge a partial artifact update into the session. Never touches the
        network; autosave and the voice context pick the change up.

        Switching ``language`` without supplying ``code`` resets the code to
        the starter code for the new language.

        Raises:
            SessionStateError: If the session is not active.
            pydantic.ValidationError: If the patch has unknown fields.
        """
        session = self._require_active()
        assert self._track and self._pump and self._voice
        if isinstance(patch, dict):
            patch = ArtifactPatch.model_validate(patch)

        changes = patch.model_dump(exclude_none=True)
        if not changes:
            return session.artifact

        new_language = changes.get("language")
        if new_language is not None and new_language != session.artifact.language and "code" not in changes:
            changes["code"] = self._track.starter_code(session.question, new_language)

        session.artifact = session.artifact.model_copy(update=changes)
        self._pump.mark_dirty()
        self._voice.note_context()
        return session.artifact

    # =========================================================================
    # Execution
    # =========================================================================

    async def _execute(self, test_cases: list[CodeTestCase], execution_type: ExecutionType) -> ExecutionReport:
        session = self._require_session()
        try:
            return await self._execution.execute(
                code=session.artifact.code,
                language=session.artifact.language,
                test_cases=test_cases,
                execution_type=execution_type,
                interview_id=None if is_ephemeral_session_id(session.session_id) else session.session_id,
            )
        except RpcError as e:
            error = ExecutionError(
                f"Code execution failed: {e.message}", session_id=session.session_id, cause=e
            )
            logger.warning("%s", error)
            return ExecutionReport.failed(test_cases, error.message)

    async def run(self) -> ExecutionReport:
        """
        Execute the current code against the visible test cases.

        Sandbox failures come back as a report with every test failed.

        Raises:
            SessionStateError: If the session is not active or the track has
                no code execution.
        """
        session = self._require_active()
        assert self._track is not None
        if not self._track.supports_execution:
            raise SessionStateError(
                f"{self._track.display_name} sessions have no code execution",
                session_id=session.session_id,
            )

        session.run_count += 1
        if not is_ephemeral_session_id(session.session_id):
            self._spawn(self._sync_update({"increment_run_count": True}))

        report = await self._execute(session.question.visible_test_cases, ExecutionType.RUN)
        await self.publisher.publish_test_results(
            ExecutionType.RUN.value, report.model_dump(mode="json")
        )
        return report

    # =========================================================================
    # Lifecycle transitions
    # =========================================================================

    async def submit(self) -> SessionOutcome:
        """
        Submit the session.

        Coding sessions run visible + hidden tests and end only when all
        pass; otherwise the results come back with ``ended=False``. System
        design sessions always end. A submit that ends the session requests
        an evaluation.

        Raises:
            SessionStateError: If no session is loaded.
            PersistenceError: If the final flush or end call fails; the
                session stays active so the user can retry.
        """
        session = self._require_session()
        if self._terminate_task is not None or session.is_terminal:
            return await self._existing_outcome()

        async with self._submit_lock:
            if self._terminate_task is not None or session.is_terminal:
                return await self._existing_outcome()
            assert self._track is not None

            session.submit_count += 1
            report: Optional[ExecutionReport] = None
            if self._track.submit_requires_passing_tests:
                test_cases = session.question.visible_test_cases + session.question.hidden_test_cases
                report = await self._execute(test_cases, ExecutionType.SUBMIT)
                await self.publisher.publish_test_results(
                    ExecutionType.SUBMIT.value, report.model_dump(mode="json")
                )
                # A give up or the clock may have ended the session while tests ran.
                if self._terminate_task is not None or session.is_terminal:
                    return await self._existing_outcome()
                if not report.all_passed:
                    logger.info(
                        "Submit for %s kept session open: %d/%d passed",
                        session.session_id,
                        report.summary.passed,
                        report.summary.total,
                    )
                    return SessionOutcome(
                        session_id=session.session_id,
                        ended=False,
                        status=session.status,
                        report=report,
                    )
            return await self._terminate(EndReason.SUBMIT, request_evaluation=True, report=report)

    async def give_up(self) -> SessionOutcome:
        """
        End the session at the user's request. Confirmation happens upstream.

        Evaluation follows the track policy unless ``give_up_evaluation``
        was set on the controller.

        Raises:
            SessionStateError: If no session is loaded.
            PersistenceError: If the final flush or end call fails.
        """
        session = self._require_session()
        if self._terminate_task is None and session.is_terminal:
            return await self._existing_outcome()
        assert self._track is not None
        evaluate = (
            self._give_up_evaluation
            if self._give_up_evaluation is not None
            else self._track.evaluate_on_give_up
        )
        return await self._terminate(EndReason.GIVE_UP, request_evaluation=evaluate)

    async def on_timeout(self) -> Optional[SessionOutcome]:
        """
        Time limit reached: end the session and request evaluation,
        regardless of code correctness.

        Persistence failures are logged and published rather than raised,
        since nobody awaits the timer's callback.
        """
        session = self._require_session()
        if self._terminate_task is None and session.is_terminal:
            return await self._existing_outcome()
        logger.info("Session %s timed out", session.session_id)
        try:
            return await self._terminate(EndReason.TIMEOUT, request_evaluation=True)
        except PersistenceError as e:
            logger.error("Failed to end timed-out session %s: %s", session.session_id, e)
            await self.publisher.publish_error(str(e))
            return None

    async def _existing_outcome(self) -> SessionOutcome:
        if self._terminate_task is not None:
            return await asyncio.shield(self._terminate_task)
        session = self._require_session()
        if self._outcome is not None:
            return self._outcome
        return SessionOutcome(session_id=session.session_id, ended=True, status=session.status)

    async def _terminate(
        self,
        reason: EndReason,
        *,
        request_evaluation: bool,
        report: Optional[ExecutionReport] = None,
    ) -> SessionOutcome:
        if self._terminate_task is None:
            self._terminate_task = asyncio.create_task(
                self._run_termination(reason, request_evaluation, report)
            )
        return await asyncio.shield(self._terminate_task)

    async def _run_termination(
        self,
        reason: EndReason,
        request_evaluation: bool,
        report: Optional[ExecutionReport],
    ) -> SessionOutcome:
        session = self._require_session()
        assert self._timer and self._pump and self._voice and self._transcript_sync
        session_id = session.session_id
        logger.info("Ending session %s (%s)", session_id, reason.value)

        # 1. No more ticks or periodic writes.
        self._timer.stop()
        await self._pump.stop()
        await self._transcript_sync.stop()
        if self._intro_task is not None and not self._intro_task.done():
            self._intro_task.cancel()

        # 2 + 3. Queued transcript entries and the final flush, then the end call.
        if not is_ephemeral_session_id(session_id):
            payload = self.autosave_payload()
            try:
                await self._transcript_sync.flush()
                await self._interviews.update(session_id, payload)
                self._pump.record_persisted(payload)
                await self._interviews.end(
                    session_id,
                    reason.value,
                    session.elapsed_seconds,
                    final_code=session.artifact.code if self.track.supports_execution else None,
                )
            except RpcError as e:
                logger.error("Failed to end session %s: %s", session_id, e)
                self._terminate_task = None
                self._pump.start()
                self._transcript_sync.start()
                if not self._timer.timed_out:
                    self._timer.resume()
                raise PersistenceError(
                    f"Failed to end session: {e.message}", session_id=session_id, cause=e
                ) from e

        # 4. Terminal from here on.
        session.status = SessionStatus.COMPLETED if reason == EndReason.SUBMIT else SessionStatus.ABANDONED
        await self._voice.close()

        outcome = SessionOutcome(
            session_id=session_id,
            ended=True,
            reason=reason,
            status=session.status,
            report=report,
        )
        self._outcome = outcome
        if request_evaluation and not is_ephemeral_session_id(session_id):
            await self._request_evaluation()

        await self.publisher.publish_session_ended(self._outcome.model_dump(mode="json"))
        logger.info("Session %s ended: %s", session_id, session.status.value)
        return self._outcome

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def _request_evaluation(self) -> None:
        assert self._outcome is not None
        session_id = self._outcome.session_id
        try:
            evaluation_id = await self._evaluations.create(session_id)
        except RpcError as e:
            error = EvaluationError(
                f"Evaluation request failed: {e.message}", session_id=session_id, cause=e
            )
            logger.error("%s", error)
            self._outcome = self._outcome.model_copy(update={"evaluation_error": error.message})
            await self.publisher.publish_error(error.message)
            return
        logger.info("Evaluation %s requested for %s", evaluation_id, session_id)
        self._outcome = self._outcome.model_copy(
            update={"evaluation_id": evaluation_id, "evaluation_error": None}
        )

    async def retry_evaluation(self) -> SessionOutcome:
        """
        Request the evaluation again after a failure.

        Raises:
            SessionStateError: If the session has not ended.
            EvaluationError: If the request fails again. The session stays
                terminal either way.
        """
        session = self._require_session()
        if self._outcome is None or not session.is_terminal:
            raise SessionStateError("Session has not ended", session_id=session.session_id)
        if self._outcome.evaluation_id is not None:
            return self._outcome
        await self._request_evaluation()
        if self._outcome.evaluation_id is None:
            raise EvaluationError(
                self._outcome.evaluation_error or "Evaluation request failed",
                session_id=session.session_id,
            )
        return self._outcome

    # =========================================================================
    # Background sync
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _sync_update(self, partial: dict[str, Any]) -> None:
        assert self._session is not None
        try:
            await self._interviews.update(self._session.session_id, partial)
        except Exception as e:
            logger.warning(
                "Background sync of %s failed for %s: %s",
                ", ".join(sorted(partial)),
                self._session.session_id,
                e,
            )

    def _sync_transcript_entry(self, entry: TranscriptEntry) -> None:
        assert self._transcript_sync is not None
        self._transcript_sync.enqueue(entry)

    # =========================================================================
    # Teardown
    # =========================================================================

    async def teardown(self) -> None:
        """
        Stop every background loop. Idempotent.

        An active session gets a best-effort flush before the voice
        connection closes; it is not ended.
        """
        if self._torn_down:
            return
        self._torn_down = True
        if self._session is None:
            return
        assert self._timer and self._pump and self._voice and self._transcript_sync
        session = self._session

        if self._terminate_task is not None and not self._terminate_task.done():
            await asyncio.wait([self._terminate_task])

        self._timer.stop()
        await self._pump.stop()
        await self._transcript_sync.stop()
        if self._intro_task is not None and not self._intro_task.done():
            self._intro_task.cancel()
            await asyncio.gather(self._intro_task, return_exceptions=True)

        if (
            not session.is_terminal
            and not is_ephemeral_session_id(session.session_id)
            and self._pump.is_dirty()
        ):
            payload = self.autosave_payload()
            try:
                await self._interviews.update(session.session_id, payload)
                self._pump.record_persisted(payload)
            except RpcError as e:
                logger.warning("Final flush on teardown failed for %s: %s", session.session_id, e)

        await self._voice.close()
        if self._transcript_sync.pending:
            try:
                await self._transcript_sync.flush()
            except RpcError as e:
                logger.warning(
                    "Dropping %d unsynced transcript entries for %s: %s",
                    len(self._transcript_sync.pending),
                    session.session_id,
                    e,
                )
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        logger.info("Session controller for %s torn down", session.session_id)

    async def __aenter__(self) -> "SessionController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.teardown()
