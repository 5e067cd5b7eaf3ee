"""Voice introduction adapter (``POST /api/voice/introduce``)."""

from __future__ import annotations

from mock_interview.errors import RpcError
from mock_interview.models import IntroPayload

from interview_platform.clients.http import ApiHttpClient


class HttpIntroductionSource:
    """Fetch the interviewer's opening introduction for a question."""

    def __init__(self, http: ApiHttpClient) -> None:
        self._http = http

    async def introduce(self, question_context: str, include_audio: bool = True) -> IntroPayload:
        body = await self._http.request(
            "POST",
            "/api/voice/introduce",
            json={"current_question": question_context, "include_audio": include_audio},
        )
        if not body.get("success") or not body.get("text"):
            raise RpcError("Introduction response has no text")
        return IntroPayload(text=str(body["text"]), audio=body.get("audio"))
