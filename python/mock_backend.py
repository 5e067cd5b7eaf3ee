"""
Mock Interview Backend

In-memory stand-in for the interview backend. Serves the same routes and
response shapes the session client talks to, so the HTTP adapters and the
controller can be exercised end to end without external services.

Endpoints:
    POST  /api/interviews           - Create an interview for a question
    GET   /api/interviews/{id}      - Interview with its question
    PATCH /api/interviews/{id}      - Partial update (code, notes, transcript_entry...)
    POST  /api/interviews/{id}/end  - End with reason submit|give_up|timeout
    POST  /api/execute              - Fake sandbox with a configurable verdict
    POST  /api/evaluations          - Request (or reuse) an evaluation
    POST  /api/voice/introduce      - Canned interviewer introduction
    GET   /health                   - Health check
    WS    /ws/interview             - Scripted realtime interviewer

Run locally:
    python mock_backend.py --port 3001
"""

from __future__ import annotations

import argparse
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Literal, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from interview_platform import PLATFORM_NAME

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Seed Content
# =============================================================================

TWO_SUM_QUESTION: dict[str, Any] = {
    "id": "q_two_sum",
    "title": "Two Sum",
    "description": (
        "Given an array of integers nums and an integer target, return the "
        "indices of the two numbers that add up to target."
    ),
    "session_type": "coding",
    "visible_test_cases": [
        {"input": "[2,7,11,15]\n9", "expected_output": "[0, 1]"},
        {"input": "[3,2,4]\n6", "expected_output": "[1, 2]"},
    ],
    "hidden_test_cases": [
        {"input": "[3,3]\n6", "expected_output": "[0, 1]"},
    ],
    "starter_code": {
        "python": "def two_sum(nums: list[int], target: int) -> list[int]:\n    pass\n",
    },
    "metadata": {"difficulty": "easy"},
}

URL_SHORTENER_QUESTION: dict[str, Any] = {
    "id": "q_url_shortener",
    "title": "Design a URL Shortener",
    "description": "Design a service that shortens URLs and redirects at high read volume.",
    "session_type": "system_design",
    "visible_test_cases": [],
    "hidden_test_cases": [],
    "starter_code": {},
    "metadata": {"difficulty": "medium"},
}

INTRO_TEXT = (
    "Hi, I'll be your interviewer today. Take a moment to read the problem, "
    "and talk me through your approach before you start coding."
)


# =============================================================================
# State
# =============================================================================


@dataclass
class BackendState:
    """
    Everything the mock backend stores, plus knobs tests turn.

    Attributes:
        interviews: Interview records by id.
        questions: Question payloads by id.
        evaluations: Evaluation records by interview id.
        calls: Log of (method, path, body) for every API call.
        fail_updates: Number of upcoming PATCH calls that return HTTP 500.
        fail_ends: Number of upcoming end calls that return HTTP 500.
        fail_evaluations: Number of upcoming evaluation calls that return HTTP 500.
        execution_verdict: Status reported for every executed test case.
        execution_available: When False, /api/execute returns HTTP 503.
        intro_audio: Base64 audio returned with the introduction.
        voice_available: When False, the interviewer socket closes with 1011
            right after accepting.
        voice_auth: Authorization header of every interviewer socket.
    """

    interviews: dict[str, dict[str, Any]] = field(default_factory=dict)
    questions: dict[str, dict[str, Any]] = field(
        default_factory=lambda: {
            TWO_SUM_QUESTION["id"]: dict(TWO_SUM_QUESTION),
            URL_SHORTENER_QUESTION["id"]: dict(URL_SHORTENER_QUESTION),
        }
    )
    evaluations: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[tuple[str, str, Optional[dict[str, Any]]]] = field(default_factory=list)
    fail_updates: int = 0
    fail_ends: int = 0
    fail_evaluations: int = 0
    execution_verdict: str = "Accepted"
    execution_available: bool = True
    intro_audio: Optional[str] = "UklGRg=="
    voice_available: bool = True
    voice_auth: list[Optional[str]] = field(default_factory=list)

    def record(self, method: str, path: str, body: Optional[dict[str, Any]] = None) -> None:
        self.calls.append((method, path, body))

    def calls_to(self, method: str, path: str) -> list[Optional[dict[str, Any]]]:
        return [body for m, p, body in self.calls if m == method and p == path]

    def add_interview(
        self,
        question_id: str,
        *,
        interview_id: Optional[str] = None,
        language: str = "python",
        time_limit_seconds: int = 3600,
        **overrides: Any,
    ) -> dict[str, Any]:
        """Create an interview record directly (used by tests and the create route)."""
        question = self.questions[question_id]
        now = _utc_now()
        interview: dict[str, Any] = {
            "id": interview_id or f"iv_{uuid.uuid4().hex[:12]}",
            "question_id": question_id,
            "question": question,
            "session_type": question.get("session_type", "coding"),
            "status": "in_progress",
            "language": language,
            "final_code": None,
            "time_spent_seconds": 0,
            "time_limit_seconds": time_limit_seconds,
            "run_count": 0,
            "submit_count": 0,
            "transcript": [],
            "drawing_data": None,
            "notes": None,
            "created_at": now,
            "started_at": now,
            "ended_at": None,
        }
        interview.update(overrides)
        self.interviews[interview["id"]] = interview
        return interview


# =============================================================================
# Request Schemas
# =============================================================================


class CreateInterviewRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    language: str = "python"
    time_limit_seconds: int = Field(default=3600, gt=0)


class TranscriptEntryPayload(BaseModel):
    timestamp: int
    speaker: Literal["user", "interviewer"]
    text: str


class DrawingDataPayload(BaseModel):
    elements: list[Any] = Field(default_factory=list)


class UpdateInterviewRequest(BaseModel):
    code: Optional[str] = None
    language: Optional[str] = None
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)
    increment_run_count: Optional[bool] = None
    transcript_entry: Optional[TranscriptEntryPayload] = None
    drawing_data: Optional[DrawingDataPayload] = None
    notes: Optional[str] = None


class EndInterviewRequest(BaseModel):
    final_code: Optional[str] = None
    reason: Literal["submit", "give_up", "timeout"]
    time_spent_seconds: int = Field(..., ge=0)


class CasePayload(BaseModel):
    input: str
    expected_output: str


class ExecuteRequest(BaseModel):
    code: str = Field(..., min_length=1)
    language: Literal["python", "javascript", "typescript", "java", "cpp", "go"]
    test_cases: list[CasePayload] = Field(..., min_length=1)
    interview_id: Optional[str] = None
    execution_type: Literal["run", "submit"] = "run"


class EvaluationRequest(BaseModel):
    interview_id: str = Field(..., min_length=1)


class IntroduceRequest(BaseModel):
    current_question: str = ""
    include_audio: bool = False


# =============================================================================
# Errors
# =============================================================================


class BackendError(Exception):
    """Raised by route handlers; rendered as ``{"error": message}``."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _get_interview(backend: BackendState, interview_id: str) -> dict[str, Any]:
    interview = backend.interviews.get(interview_id)
    if interview is None:
        raise BackendError("Interview not found", status.HTTP_404_NOT_FOUND)
    return interview


# =============================================================================
# Dependencies
# =============================================================================


def get_backend(request: Request) -> BackendState:
    backend = getattr(request.state, "backend", None)
    if backend is None:
        raise RuntimeError("Application state not initialized")
    return backend


BackendDep = Annotated[BackendState, Depends(get_backend)]


# =============================================================================
# Scripted Realtime Interviewer
# =============================================================================


async def run_interviewer_socket(websocket: WebSocket, backend: BackendState) -> None:
    """
    Scripted realtime interviewer.

    Audio chunks received between ``voice_start`` and ``voice_stop`` count
    as one utterance; on ``voice_stop`` the server reports speech
    boundaries, a final transcript and a reply. Typed input is answered
    directly. ``leave_interview`` closes the socket normally.
    """
    await websocket.accept()
    backend.voice_auth.append(websocket.headers.get("authorization"))
    if not backend.voice_available:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Voice service unavailable")
        return
    chunks = 0
    try:
        while True:
            message = await websocket.receive_json()
            msg_type = message.get("type")
            if msg_type == "join_interview":
                await websocket.send_json({"type": "joined", "interview_id": message.get("interview_id")})
            elif msg_type == "voice_start":
                chunks = 0
                await websocket.send_json({"type": "voice_ready"})
            elif msg_type == "audio_chunk":
                chunks += 1
                if chunks == 1:
                    await websocket.send_json({"type": "speech_started"})
                    await websocket.send_json({"type": "transcript", "text": "I think", "is_final": False})
            elif msg_type == "voice_stop":
                if chunks:
                    await websocket.send_json({"type": "speech_stopped"})
                    await websocket.send_json(
                        {"type": "transcript", "text": "I think a hash map works here.", "is_final": True}
                    )
                    await websocket.send_json(
                        {"type": "interviewer_response", "text": "Good. What is the time complexity?"}
                    )
                chunks = 0
            elif msg_type == "text_input":
                text = str(message.get("text") or "")
                await websocket.send_json(
                    {"type": "interviewer_response", "text": f"You said: {text}. Tell me more."}
                )
            elif msg_type == "request_introduction":
                await websocket.send_json(
                    {"type": "introduction_ready", "text": INTRO_TEXT, "audio": backend.intro_audio}
                )
            elif msg_type == "leave_interview":
                await websocket.close()
                return
            elif msg_type in ("code_update", "question_update"):
                logger.debug("Context update: %s", msg_type)
            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})
    except WebSocketDisconnect:
        logger.debug("Interviewer socket disconnected")


# =============================================================================
# Application
# =============================================================================


def create_app(backend: Optional[BackendState] = None) -> FastAPI:
    """
    Build the mock backend around a (possibly shared) BackendState.

    Args:
        backend: State to serve. Tests pass their own to inspect calls and
            turn failure knobs; a fresh one is created otherwise.
    """
    state = backend or BackendState()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
        logger.info("Starting mock interview backend (%d questions)", len(state.questions))
        yield {"backend": state}
        logger.info("Shutting down mock interview backend")

    app = FastAPI(
        title="Mock Interview Backend",
        version="0.1.0",
        description="In-memory interview backend for the session client",
        lifespan=lifespan,
    )
    app.add_exception_handler(BackendError, backend_error_handler)

    @app.post("/api/interviews", status_code=status.HTTP_201_CREATED)
    async def create_interview(body: CreateInterviewRequest, backend: BackendDep) -> dict[str, Any]:
        backend.record("POST", "/api/interviews", body.model_dump())
        if body.question_id not in backend.questions:
            raise BackendError("Question not found", status.HTTP_404_NOT_FOUND)
        interview = backend.add_interview(
            body.question_id,
            language=body.language,
            time_limit_seconds=body.time_limit_seconds,
        )
        logger.info("Created interview %s for %s", interview["id"], body.question_id)
        return {"success": True, "interview": interview}

    @app.get("/api/interviews/{interview_id}")
    async def get_interview(interview_id: str, backend: BackendDep) -> dict[str, Any]:
        backend.record("GET", f"/api/interviews/{interview_id}")
        return {"success": True, "interview": _get_interview(backend, interview_id)}

    @app.patch("/api/interviews/{interview_id}")
    async def update_interview(
        interview_id: str,
        body: UpdateInterviewRequest,
        backend: BackendDep,
    ) -> dict[str, Any]:
        payload = body.model_dump(exclude_none=True)
        backend.record("PATCH", f"/api/interviews/{interview_id}", payload)
        interview = _get_interview(backend, interview_id)
        if backend.fail_updates > 0:
            backend.fail_updates -= 1
            raise BackendError("Failed to update interview")
        if not payload:
            raise BackendError("No updates provided", status.HTTP_400_BAD_REQUEST)

        if body.code is not None:
            interview["final_code"] = body.code
        if body.language is not None:
            interview["language"] = body.language
        if body.time_spent_seconds is not None:
            interview["time_spent_seconds"] = body.time_spent_seconds
        if body.increment_run_count:
            interview["run_count"] = (interview.get("run_count") or 0) + 1
        if body.transcript_entry is not None:
            interview["transcript"] = [*interview.get("transcript", []), body.transcript_entry.model_dump()]
        if body.drawing_data is not None:
            interview["drawing_data"] = body.drawing_data.model_dump()
        if body.notes is not None:
            interview["notes"] = body.notes
        return {"success": True, "interview": interview}

    @app.post("/api/interviews/{interview_id}/end")
    async def end_interview(
        interview_id: str,
        body: EndInterviewRequest,
        backend: BackendDep,
    ) -> dict[str, Any]:
        backend.record("POST", f"/api/interviews/{interview_id}/end", body.model_dump(exclude_none=True))
        interview = _get_interview(backend, interview_id)
        if backend.fail_ends > 0:
            backend.fail_ends -= 1
            raise BackendError("Failed to end interview")

        interview["status"] = "completed" if body.reason == "submit" else "abandoned"
        interview["time_spent_seconds"] = body.time_spent_seconds
        interview["ended_at"] = _utc_now()
        if body.final_code is not None:
            interview["final_code"] = body.final_code
        logger.info("Interview %s ended (%s)", interview_id, body.reason)
        return {"success": True, "interview": interview}

    @app.post("/api/execute")
    async def execute(body: ExecuteRequest, backend: BackendDep) -> dict[str, Any]:
        backend.record("POST", "/api/execute", body.model_dump())
        if not backend.execution_available:
            raise BackendError("Code execution service not configured", status.HTTP_503_SERVICE_UNAVAILABLE)

        results = [
            {
                "test_case_index": index,
                "status": backend.execution_verdict,
                "actual_output": case.expected_output if backend.execution_verdict == "Accepted" else "",
                "expected_output": case.expected_output,
                "execution_time_ms": 12.5,
                "error": None,
            }
            for index, case in enumerate(body.test_cases)
        ]
        passed = sum(1 for r in results if r["status"] == "Accepted")
        return {
            "success": True,
            "results": results,
            "summary": {"passed": passed, "total": len(results), "all_passed": passed == len(results)},
        }

    @app.post("/api/evaluations")
    async def create_evaluation(body: EvaluationRequest, backend: BackendDep) -> dict[str, Any]:
        backend.record("POST", "/api/evaluations", body.model_dump())
        _get_interview(backend, body.interview_id)
        if backend.fail_evaluations > 0:
            backend.fail_evaluations -= 1
            raise BackendError("Failed to create evaluation")

        existing = backend.evaluations.get(body.interview_id)
        if existing is not None:
            return {"success": True, "evaluation": existing, "existing": True}
        evaluation = {
            "id": f"ev_{uuid.uuid4().hex[:12]}",
            "interview_id": body.interview_id,
            "status": "pending",
            "created_at": _utc_now(),
        }
        backend.evaluations[body.interview_id] = evaluation
        return {"success": True, "evaluation": evaluation}

    @app.post("/api/voice/introduce")
    async def introduce(body: IntroduceRequest, backend: BackendDep) -> dict[str, Any]:
        backend.record("POST", "/api/voice/introduce", body.model_dump())
        if not body.current_question:
            raise BackendError("Current question is required", status.HTTP_400_BAD_REQUEST)
        response: dict[str, Any] = {"success": True, "text": INTRO_TEXT}
        if body.include_audio and backend.intro_audio:
            response["audio"] = backend.intro_audio
        return response

    @app.get("/health")
    async def health(backend: BackendDep) -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": f"{PLATFORM_NAME} mock backend",
            "interviews": len(backend.interviews),
            "timestamp": _utc_now(),
        }

    @app.websocket("/ws/interview")
    async def interviewer_socket(websocket: WebSocket) -> None:
        await run_interviewer_socket(websocket, state)

    return app


app = create_app()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the in-memory mock interview backend.")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    parser.add_argument("--port", type=int, default=3001, help="Bind port")
    parser.add_argument(
        "--seed-interview",
        action="store_true",
        help="Create one coding interview at startup and log its id",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    backend = BackendState()
    if args.seed_interview:
        interview = backend.add_interview(TWO_SUM_QUESTION["id"])
        logger.info("Seeded interview %s", interview["id"])
    uvicorn.run(create_app(backend), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
