"""
Realtime Voice Channel.

Maintains one persistent connection to the realtime voice service and
exposes it as an explicit state machine:

    idle -> connecting -> listening <-> speech_detected -> processing
         -> speaking -> listening

Any connected state drops to ``error`` when the connection is lost; after
``reconnect_delay_seconds`` a fresh transport is opened and the channel
returns to ``connecting``. ``idle`` only exists before ``start()`` and after
``close()``.

Every state change goes through ``dispatch()``, which applies one event at
a time under a lock. Server messages, user actions, playback completion and
connection loss are all expressed as events, so invalid transitions (e.g.
``speaking`` while ``idle``) are rejected in one place.

Wire protocol (JSON objects with a ``type`` field):
    client -> server: join_interview, audio_chunk, code_update,
        question_update, voice_start, voice_stop, text_input,
        request_introduction
    server -> client: joined, voice_ready, transcript, speech_started,
        speech_stopped, interviewer_response, introduction_ready,
        continue_listening, error

Thread Safety:
    Single event loop only. Observer callbacks run while the dispatch lock
    is held and must not call ``dispatch()`` themselves.

Last Grunted: 10/16/2026
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from .collaborators import AudioSink, VoiceTransport
from .errors import VoiceChannelError
from .models import IntroPayload, Speaker, TranscriptEntry
from .transcript import TranscriptLog


__all__ = [
    "VoiceState",
    "ListeningMode",
    "VoiceObserver",
    "VoiceChannel",
    "ALLOWED_TRANSITIONS",
    "CONNECTED_STATES",
]


logger = logging.getLogger(__name__)


class VoiceState(str, Enum):
    """Voice channel states. Not persisted; a reconnect restarts at CONNECTING."""

    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    SPEECH_DETECTED = "speech_detected"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    ERROR = "error"


class ListeningMode(str, Enum):
    """
    How user audio is captured.

    Attributes:
        OFF: Not capturing.
        PUSH_TO_TALK: Capturing between start_listening and stop_listening.
        ALWAYS: Continuous capture with server-side voice activity detection.
    """

    OFF = "off"
    PUSH_TO_TALK = "push_to_talk"
    ALWAYS = "always"


ALLOWED_TRANSITIONS: dict[VoiceState, frozenset[VoiceState]] = {
    VoiceState.IDLE: frozenset({VoiceState.CONNECTING}),
    VoiceState.CONNECTING: frozenset({VoiceState.LISTENING, VoiceState.ERROR, VoiceState.IDLE}),
    VoiceState.LISTENING: frozenset(
        {
            VoiceState.SPEECH_DETECTED,
            VoiceState.PROCESSING,
            VoiceState.SPEAKING,
            VoiceState.ERROR,
            VoiceState.IDLE,
        }
    ),
    VoiceState.SPEECH_DETECTED: frozenset(
        {VoiceState.LISTENING, VoiceState.PROCESSING, VoiceState.ERROR, VoiceState.IDLE}
    ),
    VoiceState.PROCESSING: frozenset(
        {VoiceState.SPEAKING, VoiceState.LISTENING, VoiceState.ERROR, VoiceState.IDLE}
    ),
    VoiceState.SPEAKING: frozenset({VoiceState.LISTENING, VoiceState.ERROR, VoiceState.IDLE}),
    VoiceState.ERROR: frozenset({VoiceState.CONNECTING, VoiceState.IDLE}),
}

CONNECTED_STATES = frozenset(
    {
        VoiceState.LISTENING,
        VoiceState.SPEECH_DETECTED,
        VoiceState.PROCESSING,
        VoiceState.SPEAKING,
    }
)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Connect:
    pass


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class ConnectionLost:
    reason: str


@dataclass(frozen=True)
class Reconnect:
    pass


@dataclass(frozen=True)
class SpeechStarted:
    pass


@dataclass(frozen=True)
class SpeechStopped:
    pass


@dataclass(frozen=True)
class PartialTranscript:
    text: str


@dataclass(frozen=True)
class FinalTranscript:
    text: str


@dataclass(frozen=True)
class InterviewerResponse:
    text: str
    audio: Optional[str] = None


@dataclass(frozen=True)
class PlaybackFinished:
    turn: int


@dataclass(frozen=True)
class ContinueListening:
    pass


@dataclass(frozen=True)
class ServerError:
    message: str


@dataclass(frozen=True)
class StartListening:
    pass


@dataclass(frozen=True)
class StopListening:
    pass


@dataclass(frozen=True)
class EnableAlwaysListening:
    pass


@dataclass(frozen=True)
class DisableAlwaysListening:
    pass


@dataclass(frozen=True)
class TextInput:
    text: str


@dataclass(frozen=True)
class PlayIntroduction:
    payload: IntroPayload


@dataclass(frozen=True)
class Teardown:
    pass


VoiceEvent = Union[
    Connect,
    Connected,
    ConnectionLost,
    Reconnect,
    SpeechStarted,
    SpeechStopped,
    PartialTranscript,
    FinalTranscript,
    InterviewerResponse,
    PlaybackFinished,
    ContinueListening,
    ServerError,
    StartListening,
    StopListening,
    EnableAlwaysListening,
    DisableAlwaysListening,
    TextInput,
    PlayIntroduction,
    Teardown,
]


class VoiceObserver:
    """
    Receives channel notifications. All methods are optional no-ops.

    Subclass and override the ones you need.
    """

    async def on_state_change(self, old: VoiceState, new: VoiceState) -> None:
        pass

    async def on_partial(self, text: Optional[str]) -> None:
        pass

    async def on_entry(self, entry: TranscriptEntry) -> None:
        pass

    async def on_error(self, message: str) -> None:
        pass

    async def on_reconnecting(self, attempt: int, reason: str) -> None:
        pass


# =============================================================================
# Channel
# =============================================================================


class VoiceChannel:
    """
    State machine around one realtime voice connection.

    Args:
        session_id: Interview id sent in ``join_interview``.
        transport_factory: Returns a fresh, unopened transport. Called once
            per connection attempt.
        transcript: Log that receives every finalized utterance.
        audio_sink: Plays interviewer audio. Without one, responses are
            text only and the channel never enters SPEAKING.
        observer: Notification target (UI stream, transcript sync).
        context_source: Returns the current ``question`` and ``code``
            context (plus ``language``) for ``question_update`` and
            ``code_update`` messages.
        reconnect_delay_seconds: Pause before reopening a dropped connection.

    Example:
        >>> channel = VoiceChannel(
        ...     "iv_123",
        ...     transport_factory=lambda: WebSocketVoiceTransport(url),
        ...     transcript=TranscriptLog(),
        ... )
        >>> await channel.start()
        >>> await channel.wait_connected()
        >>> await channel.enable_always_listening()
        >>> ...
        >>> await channel.close()
    """

    def __init__(
        self,
        session_id: str,
        *,
        transport_factory: Callable[[], VoiceTransport],
        transcript: TranscriptLog,
        audio_sink: Optional[AudioSink] = None,
        observer: Optional[VoiceObserver] = None,
        context_source: Optional[Callable[[], dict[str, Any]]] = None,
        reconnect_delay_seconds: float = 1.0,
    ) -> None:
        self._session_id = session_id
        self._transport_factory = transport_factory
        self._transcript = transcript
        self._audio_sink = audio_sink
        self._observer = observer or VoiceObserver()
        self._context_source = context_source
        self._reconnect_delay = reconnect_delay_seconds

        self._state = VoiceState.IDLE
        self._mode = ListeningMode.OFF
        self._discard_turn = False
        self._closed = False
        self._reconnect_attempts = 0
        self._turn = 0

        self._lock = asyncio.Lock()
        self._connected = asyncio.Event()
        self._context_dirty = asyncio.Event()
        self._transport: Optional[VoiceTransport] = None
        self._connection_task: Optional[asyncio.Task[None]] = None
        self._context_task: Optional[asyncio.Task[None]] = None
        self._playback_task: Optional[asyncio.Task[None]] = None
        self._intro_waiters: list[asyncio.Future[IntroPayload]] = []
        self._sent_context: dict[str, Any] = {}
        self.history: list[VoiceState] = [VoiceState.IDLE]

        self._handlers: dict[type, Callable[[Any], Any]] = {
            Connect: self._on_connect,
            Connected: self._on_connected,
            ConnectionLost: self._on_connection_lost,
            Reconnect: self._on_reconnect,
            SpeechStarted: self._on_speech_started,
            SpeechStopped: self._on_speech_stopped,
            PartialTranscript: self._on_partial,
            FinalTranscript: self._on_final,
            InterviewerResponse: self._on_interviewer_response,
            PlaybackFinished: self._on_playback_finished,
            ContinueListening: self._on_continue_listening,
            ServerError: self._on_server_error,
            StartListening: self._on_start_listening,
            StopListening: self._on_stop_listening,
            EnableAlwaysListening: self._on_enable_always,
            DisableAlwaysListening: self._on_disable_always,
            TextInput: self._on_text_input,
            PlayIntroduction: self._on_play_introduction,
            Teardown: self._on_teardown,
        }

    # -------------------------------------------------------------------------
    # Read-only view
    # -------------------------------------------------------------------------

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def mode(self) -> ListeningMode:
        return self._mode

    @property
    def is_connected(self) -> bool:
        return self._state in CONNECTED_STATES

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    async def wait_connected(self, timeout: Optional[float] = None) -> None:
        """Block until the channel is connected."""
        if timeout is None:
            await self._connected.wait()
        else:
            await asyncio.wait_for(self._connected.wait(), timeout)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def dispatch(self, event: VoiceEvent) -> None:
        """Apply one event. The only place channel state changes."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported voice event: {event!r}")
        async with self._lock:
            await handler(event)

    async def _transition(self, new: VoiceState) -> bool:
        old = self._state
        if new == old:
            return True
        if new not in ALLOWED_TRANSITIONS[old]:
            logger.debug("Ignoring voice transition %s -> %s", old.value, new.value)
            return False
        self._state = new
        self.history.append(new)
        if new in CONNECTED_STATES:
            self._connected.set()
        else:
            self._connected.clear()
        logger.debug("Voice %s: %s -> %s", self._session_id, old.value, new.value)
        await self._observer.on_state_change(old, new)
        return True

    # -------------------------------------------------------------------------
    # Event handlers (called with the lock held)
    # -------------------------------------------------------------------------

    async def _on_connect(self, event: Connect) -> None:
        if self._closed:
            return
        if await self._transition(VoiceState.CONNECTING):
            self._connection_task = asyncio.create_task(self._run_connection())
            self._context_task = asyncio.create_task(self._run_context_sender())

    async def _on_connected(self, event: Connected) -> None:
        if not await self._transition(VoiceState.LISTENING):
            return
        logger.info("Voice channel connected for %s", self._session_id)
        self._reconnect_attempts = 0
        self._discard_turn = False
        await self._send({"type": "join_interview", "interview_id": self._session_id})
        self._sent_context = {}
        await self._send_context()
        if self._mode != ListeningMode.OFF:
            await self._send({"type": "voice_start", "mode": self._mode.value})

    async def _on_connection_lost(self, event: ConnectionLost) -> None:
        if self._closed:
            return
        self._cancel_playback()
        self._transcript.clear_partial()
        self._fail_intro_waiters(VoiceChannelError(f"Voice connection lost: {event.reason}"))
        if not await self._transition(VoiceState.ERROR):
            return
        self._reconnect_attempts += 1
        logger.warning(
            "Voice connection lost for %s (%s); reconnect attempt %d",
            self._session_id,
            event.reason,
            self._reconnect_attempts,
        )
        await self._observer.on_error(f"Voice connection lost: {event.reason}")
        await self._observer.on_reconnecting(self._reconnect_attempts, event.reason)

    async def _on_reconnect(self, event: Reconnect) -> None:
        if not self._closed:
            await self._transition(VoiceState.CONNECTING)

    async def _on_speech_started(self, event: SpeechStarted) -> None:
        if self._mode == ListeningMode.OFF:
            return
        self._discard_turn = False
        await self._transition(VoiceState.SPEECH_DETECTED)

    async def _on_speech_stopped(self, event: SpeechStopped) -> None:
        if self._state == VoiceState.SPEECH_DETECTED and not self._discard_turn:
            await self._transition(VoiceState.PROCESSING)

    async def _on_partial(self, event: PartialTranscript) -> None:
        if self._mode == ListeningMode.OFF or self._discard_turn:
            return
        self._transcript.set_partial(event.text)
        await self._observer.on_partial(self._transcript.partial)

    async def _on_final(self, event: FinalTranscript) -> None:
        if self._discard_turn:
            logger.debug("Discarding final transcript of a cancelled turn")
            self._transcript.clear_partial()
            return
        entry = self._transcript.append(Speaker.USER, event.text)
        await self._observer.on_partial(None)
        if entry is None:
            return
        await self._observer.on_entry(entry)
        if self._state in (VoiceState.LISTENING, VoiceState.SPEECH_DETECTED):
            await self._transition(VoiceState.PROCESSING)

    async def _on_interviewer_response(self, event: InterviewerResponse) -> None:
        entry = self._transcript.append(Speaker.INTERVIEWER, event.text)
        if entry is not None:
            await self._observer.on_entry(entry)
        await self._speak_or_listen(event.audio)

    async def _on_playback_finished(self, event: PlaybackFinished) -> None:
        if event.turn == self._turn and self._state == VoiceState.SPEAKING:
            await self._transition(VoiceState.LISTENING)

    async def _on_continue_listening(self, event: ContinueListening) -> None:
        self._transcript.clear_partial()
        if self._state in (VoiceState.PROCESSING, VoiceState.SPEECH_DETECTED):
            await self._transition(VoiceState.LISTENING)

    async def _on_server_error(self, event: ServerError) -> None:
        logger.warning("Voice service error for %s: %s", self._session_id, event.message)
        await self._observer.on_error(event.message)
        if self._state == VoiceState.PROCESSING:
            await self._transition(VoiceState.LISTENING)

    async def _on_start_listening(self, event: StartListening) -> None:
        self._mode = ListeningMode.PUSH_TO_TALK
        self._discard_turn = False
        await self._send({"type": "voice_start", "mode": self._mode.value})

    async def _on_stop_listening(self, event: StopListening) -> None:
        if self._mode != ListeningMode.PUSH_TO_TALK:
            return
        await self._stop_capture()

    async def _on_enable_always(self, event: EnableAlwaysListening) -> None:
        self._mode = ListeningMode.ALWAYS
        self._discard_turn = False
        await self._send({"type": "voice_start", "mode": self._mode.value})

    async def _on_disable_always(self, event: DisableAlwaysListening) -> None:
        if self._mode != ListeningMode.ALWAYS:
            return
        await self._stop_capture()

    async def _on_text_input(self, event: TextInput) -> None:
        if not self.is_connected:
            raise VoiceChannelError("Voice channel is not connected", session_id=self._session_id)
        entry = self._transcript.append(Speaker.USER, event.text)
        if entry is None:
            return
        await self._observer.on_entry(entry)
        if self._state == VoiceState.SPEAKING:
            self._cancel_playback()
            await self._transition(VoiceState.LISTENING)
        await self._transition(VoiceState.PROCESSING)
        await self._send({"type": "text_input", "text": entry.text})

    async def _on_play_introduction(self, event: PlayIntroduction) -> None:
        entry = self._transcript.append(Speaker.INTERVIEWER, event.payload.text)
        if entry is not None:
            await self._observer.on_entry(entry)
        if event.payload.audio and self._state != VoiceState.SPEAKING:
            await self._speak_or_listen(event.payload.audio)

    async def _on_teardown(self, event: Teardown) -> None:
        self._closed = True
        self._mode = ListeningMode.OFF
        self._cancel_playback()
        self._transcript.clear_partial()
        await self._transition(VoiceState.IDLE)

    # -------------------------------------------------------------------------
    # Handler helpers
    # -------------------------------------------------------------------------

    async def _stop_capture(self) -> None:
        self._mode = ListeningMode.OFF
        mid_utterance = self._state == VoiceState.SPEECH_DETECTED or (
            self._state == VoiceState.LISTENING and self._transcript.partial is not None
        )
        if mid_utterance:
            # The partial for this turn is never committed.
            self._discard_turn = True
            self._transcript.clear_partial()
            await self._observer.on_partial(None)
            if self._state == VoiceState.SPEECH_DETECTED:
                await self._transition(VoiceState.LISTENING)
        await self._send({"type": "voice_stop"})

    async def _speak_or_listen(self, audio: Optional[str]) -> None:
        if audio and self._audio_sink is not None:
            if self._state == VoiceState.SPEECH_DETECTED:
                await self._transition(VoiceState.PROCESSING)
            if self._state == VoiceState.SPEAKING or await self._transition(VoiceState.SPEAKING):
                self._cancel_playback()
                self._turn += 1
                self._playback_task = asyncio.create_task(self._play(audio, self._turn))
            return
        if self._state in (VoiceState.PROCESSING, VoiceState.SPEECH_DETECTED):
            await self._transition(VoiceState.LISTENING)

    async def _play(self, audio: str, turn: int) -> None:
        assert self._audio_sink is not None
        try:
            await self._audio_sink.play(audio)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Audio playback failed for %s: %s", self._session_id, e)
        await self.dispatch(PlaybackFinished(turn))

    def _cancel_playback(self) -> None:
        if self._playback_task is not None and not self._playback_task.done():
            self._playback_task.cancel()
        self._playback_task = None

    def _fail_intro_waiters(self, error: Exception) -> None:
        for waiter in self._intro_waiters:
            if not waiter.done():
                waiter.set_exception(error)
        self._intro_waiters.clear()

    async def _send(self, message: dict[str, Any]) -> bool:
        transport = self._transport
        if transport is None or not self._connected.is_set():
            return False
        try:
            await transport.send(message)
        except Exception as e:
            # The connection loop notices the drop and reconnects.
            logger.warning("Voice send of %s failed: %s", message.get("type"), e)
            return False
        return True

    async def _send_context(self) -> None:
        if self._context_source is None:
            return
        context = self._context_source()
        question = context.get("question")
        if question is not None and question != self._sent_context.get("question"):
            if await self._send({"type": "question_update", "question": question}):
                self._sent_context["question"] = question
        code = (context.get("code"), context.get("language"))
        if code[0] is not None and code != self._sent_context.get("code"):
            if await self._send({"type": "code_update", "code": code[0], "language": code[1]}):
                self._sent_context["code"] = code

    # -------------------------------------------------------------------------
    # Background tasks
    # -------------------------------------------------------------------------

    async def _run_connection(self) -> None:
        while not self._closed:
            transport = self._transport_factory()
            self._transport = transport
            try:
                await transport.open()
                await self.dispatch(Connected())
                async for message in transport.messages():
                    await self._handle_message(message)
                reason = "connection closed"
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = str(e) or type(e).__name__

            if self._closed:
                break
            await self.dispatch(ConnectionLost(reason))
            await self._close_transport(transport)
            await asyncio.sleep(self._reconnect_delay)
            await self.dispatch(Reconnect())

    async def _run_context_sender(self) -> None:
        while not self._closed:
            await self._context_dirty.wait()
            self._context_dirty.clear()
            async with self._lock:
                await self._send_context()

    async def _handle_message(self, message: dict[str, Any]) -> None:
        msg_type = message.get("type")
        if msg_type in ("joined", "voice_ready"):
            logger.debug("Voice service: %s", msg_type)
        elif msg_type == "speech_started":
            await self.dispatch(SpeechStarted())
        elif msg_type == "speech_stopped":
            await self.dispatch(SpeechStopped())
        elif msg_type == "transcript":
            text = str(message.get("text") or "")
            if message.get("is_final"):
                await self.dispatch(FinalTranscript(text))
            else:
                await self.dispatch(PartialTranscript(text))
        elif msg_type == "interviewer_response":
            await self.dispatch(
                InterviewerResponse(str(message.get("text") or ""), message.get("audio"))
            )
        elif msg_type == "introduction_ready":
            payload = IntroPayload(text=str(message.get("text") or ""), audio=message.get("audio"))
            for waiter in self._intro_waiters:
                if not waiter.done():
                    waiter.set_result(payload)
            self._intro_waiters.clear()
        elif msg_type == "continue_listening":
            await self.dispatch(ContinueListening())
        elif msg_type == "error":
            await self.dispatch(ServerError(str(message.get("message") or "unknown error")))
        else:
            logger.debug("Ignoring voice message type %r", msg_type)

    async def _close_transport(self, transport: VoiceTransport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug("Error closing voice transport: %s", e)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Open the connection in the background. No-op after ``close()``."""
        await self.dispatch(Connect())

    async def start_listening(self) -> None:
        """Push-to-talk press. Disables always-listening."""
        await self.dispatch(StartListening())

    async def stop_listening(self) -> None:
        """Push-to-talk release. Mid-utterance, the turn is discarded."""
        await self.dispatch(StopListening())

    async def enable_always_listening(self) -> None:
        """Continuous capture with voice activity detection. Disables push-to-talk."""
        await self.dispatch(EnableAlwaysListening())

    async def disable_always_listening(self) -> None:
        await self.dispatch(DisableAlwaysListening())

    async def send_text_input(self, text: str) -> None:
        """
        Send a typed message instead of speech.

        Raises:
            VoiceChannelError: If the channel is not connected.
        """
        await self.dispatch(TextInput(text))

    async def send_audio(self, chunk: bytes) -> None:
        """Forward one captured audio frame while a listening mode is active."""
        if self._mode == ListeningMode.OFF or not self.is_connected:
            return
        await self._send(
            {"type": "audio_chunk", "audio": base64.b64encode(chunk).decode("ascii")}
        )

    async def play_introduction(self, payload: IntroPayload) -> None:
        """Speak the introduction as an interviewer turn."""
        await self.dispatch(PlayIntroduction(payload))

    async def request_introduction(self, question_context: str, timeout: float = 30.0) -> IntroPayload:
        """
        Ask the voice service for an introduction in the interviewer's own voice.

        Raises:
            VoiceChannelError: If not connected, the connection drops, or no
                ``introduction_ready`` arrives within ``timeout``.
        """
        if not self.is_connected:
            raise VoiceChannelError("Voice channel is not connected", session_id=self._session_id)
        waiter: asyncio.Future[IntroPayload] = asyncio.get_running_loop().create_future()
        self._intro_waiters.append(waiter)
        sent = await self._send({"type": "request_introduction", "question": question_context})
        if not sent:
            self._intro_waiters.remove(waiter)
            raise VoiceChannelError("Failed to request introduction", session_id=self._session_id)
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError as e:
            raise VoiceChannelError(
                f"Introduction not ready after {timeout:.0f}s",
                session_id=self._session_id,
                cause=e,
            ) from e
        finally:
            if waiter in self._intro_waiters:
                self._intro_waiters.remove(waiter)

    def note_context(self) -> None:
        """Schedule a context resend. Coalesces bursts of edits into one send."""
        if not self._closed:
            self._context_dirty.set()

    async def close(self) -> None:
        """
        Tear down the connection regardless of state.

        In-flight processing or playback is discarded, not awaited.
        Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        tasks = [
            t for t in (self._connection_task, self._context_task, self._playback_task)
            if t is not None and not t.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._fail_intro_waiters(
            VoiceChannelError("Voice channel closed", session_id=self._session_id)
        )
        if self._transport is not None:
            await self._close_transport(self._transport)
            self._transport = None
        await self.dispatch(Teardown())
        logger.info("Voice channel closed for %s", self._session_id)
