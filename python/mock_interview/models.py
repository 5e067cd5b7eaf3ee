"""
Pydantic models for the mock interview session client.

Defines the interview session entity, its editable artifact, transcript
entries, code execution results and the payloads exchanged with the
interview backend.

Last Grunted: 10/14/2026
"""

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


EPHEMERAL_ID_PREFIXES: tuple[str, ...] = ("temp-", "local-")
ACCEPTED_STATUS = "Accepted"


def is_ephemeral_session_id(session_id: str) -> bool:
    """Return True for placeholder ids that have no server-side record."""
    return (session_id or "").startswith(EPHEMERAL_ID_PREFIXES)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SessionStatus(str, Enum):
    """Lifecycle status of an interview session."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionKind(str, Enum):
    """Interview track."""

    CODING = "coding"
    SYSTEM_DESIGN = "system_design"


class EndReason(str, Enum):
    """Why a session was ended."""

    SUBMIT = "submit"
    TIMEOUT = "timeout"
    GIVE_UP = "give_up"


class Speaker(str, Enum):
    """Who produced a transcript utterance."""

    USER = "user"
    INTERVIEWER = "interviewer"


class ExecutionType(str, Enum):
    """Sandbox execution mode: visible tests only, or visible + hidden."""

    RUN = "run"
    SUBMIT = "submit"


class CodeTestCase(BaseModel):
    """A single stdin/expected-stdout test case for a coding question."""

    input: str = Field(..., description="Program input")
    expected_output: str = Field(..., description="Expected program output")


class QuestionPayload(BaseModel):
    """
    The problem attached to a session.

    Only the fields the session client needs are modelled; anything else the
    backend sends is ignored.
    """

    id: Optional[str] = None
    title: str = ""
    description: str = ""
    visible_test_cases: list[CodeTestCase] = Field(default_factory=list)
    hidden_test_cases: list[CodeTestCase] = Field(default_factory=list)
    starter_code: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}


class Artifact(BaseModel):
    """
    User-produced content being edited during a session.

    Coding sessions use ``code`` and ``language``; system design sessions
    use ``drawing_elements`` and ``notes``.
    """

    code: str = ""
    language: str = "python"
    drawing_elements: list[dict[str, Any]] = Field(default_factory=list)
    notes: str = ""

    def is_empty(self) -> bool:
        """True when the user has not produced anything yet."""
        return not self.code.strip() and not self.drawing_elements and not self.notes.strip()


class ArtifactPatch(BaseModel):
    """Partial artifact update. Unset fields are left untouched."""

    code: Optional[str] = None
    language: Optional[str] = None
    drawing_elements: Optional[list[dict[str, Any]]] = None
    notes: Optional[str] = None

    model_config = {"extra": "forbid"}


class TranscriptEntry(BaseModel):
    """
    One finalized utterance.

    Entries are immutable once created. ``timestamp_ms`` is the arrival time
    in epoch milliseconds; transcript order is append order, which may differ
    from timestamp order.

    Example:
        >>> entry = TranscriptEntry(speaker=Speaker.USER, text="Can I assume sorted input?")
        >>> entry.to_api()["speaker"]
        'user'
    """

    timestamp_ms: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    speaker: Speaker = Field(..., description="'user' or 'interviewer'")
    text: str = Field(..., description="Utterance text")

    model_config = {"frozen": True}

    def to_api(self) -> dict[str, Any]:
        """Wire shape used by the interviews API (``timestamp`` in ms)."""
        return {
            "timestamp": self.timestamp_ms,
            "speaker": self.speaker.value,
            "text": self.text,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TranscriptEntry":
        return cls(
            timestamp_ms=int(data.get("timestamp") or now_ms()),
            speaker=Speaker(data["speaker"]),
            text=str(data.get("text") or ""),
        )


class InterviewSession(BaseModel):
    """
    One attempt at one interview question.

    Owned by the SessionController for the lifetime of the session. Created
    server-side and loaded once at session start via ``from_api``.
    """

    session_id: str = Field(..., min_length=1, description="Server-side interview id")
    status: SessionStatus = SessionStatus.IN_PROGRESS
    session_kind: SessionKind = SessionKind.CODING
    elapsed_seconds: int = Field(default=0, ge=0)
    time_limit_seconds: int = Field(default=3600, gt=0)
    artifact: Artifact = Field(default_factory=Artifact)
    run_count: int = Field(default=0, ge=0)
    submit_count: int = Field(default=0, ge=0)
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    question: QuestionPayload = Field(default_factory=QuestionPayload)
    transcript: list[TranscriptEntry] = Field(
        default_factory=list,
        description="Transcript persisted before this load (seed for the TranscriptLog)",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.IN_PROGRESS

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "InterviewSession":
        """
        Build a session from the ``interview`` object returned by the backend.

        Args:
            data: Raw interview record (``id``, ``status``, ``session_type``,
                ``time_spent_seconds``, ``final_code``, ``drawing_data`` ...).

        Returns:
            The parsed session.

        Raises:
            pydantic.ValidationError: If required fields are missing or invalid.
        """
        question = data.get("question") or data.get("question_data") or {}
        drawing = data.get("drawing_data") or {}
        return cls(
            session_id=str(data.get("id") or ""),
            status=data.get("status") or SessionStatus.IN_PROGRESS,
            session_kind=data.get("session_type") or SessionKind.CODING,
            elapsed_seconds=int(data.get("time_spent_seconds") or 0),
            time_limit_seconds=int(data.get("time_limit_seconds") or 3600),
            artifact=Artifact(
                code=data.get("final_code") or "",
                language=data.get("language") or "python",
                drawing_elements=list(drawing.get("elements") or []),
                notes=data.get("notes") or "",
            ),
            run_count=int(data.get("run_count") or 0),
            submit_count=int(data.get("submit_count") or 0),
            created_at=data.get("created_at"),
            started_at=data.get("started_at"),
            question=QuestionPayload.model_validate(question),
            transcript=[TranscriptEntry.from_api(e) for e in data.get("transcript") or []],
        )


class CodeTestResult(BaseModel):
    """Outcome of running the user's code against one test case."""

    test_case_index: int = Field(..., ge=0)
    status: str = Field(..., description="Sandbox verdict, 'Accepted' when passed")
    actual_output: Optional[str] = None
    expected_output: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: Optional[float] = None

    @property
    def passed(self) -> bool:
        return self.status == ACCEPTED_STATUS


class ExecutionSummary(BaseModel):
    passed: int = 0
    total: int = 0
    all_passed: bool = False


class ExecutionReport(BaseModel):
    """Per-test results plus the pass summary for one run/submit."""

    results: list[CodeTestResult] = Field(default_factory=list)
    summary: ExecutionSummary = Field(default_factory=ExecutionSummary)
    error: Optional[str] = Field(default=None, description="Set when the sandbox call itself failed")

    @property
    def all_passed(self) -> bool:
        """Every test passed and the sandbox call itself succeeded."""
        return self.error is None and self.summary.all_passed

    @classmethod
    def from_results(cls, results: list[CodeTestResult]) -> "ExecutionReport":
        passed = sum(1 for r in results if r.passed)
        total = len(results)
        return cls(
            results=results,
            summary=ExecutionSummary(
                passed=passed,
                total=total,
                all_passed=passed == total,
            ),
        )

    @classmethod
    def failed(cls, test_cases: list[CodeTestCase], message: str) -> "ExecutionReport":
        """Report every test case as failed with the same error message."""
        report = cls.from_results(
            [
                CodeTestResult(
                    test_case_index=index,
                    status="Error",
                    expected_output=case.expected_output,
                    error=message,
                )
                for index, case in enumerate(test_cases)
            ]
        )
        report.error = message
        return report


class IntroPayload(BaseModel):
    """Spoken introduction: text plus optional base64 audio."""

    text: str
    audio: Optional[str] = None


class SessionOutcome(BaseModel):
    """
    Result of a lifecycle action (submit, give up, timeout).

    ``ended`` is False when a submit did not consume the lifecycle transition
    (coding submit with failing tests).
    """

    session_id: str
    ended: bool
    reason: Optional[EndReason] = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    report: Optional[ExecutionReport] = None
    evaluation_id: Optional[str] = None
    evaluation_error: Optional[str] = None
