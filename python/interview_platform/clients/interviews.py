"""Interviews API adapter (``/api/interviews``)."""

from __future__ import annotations

from typing import Any, Optional

from mock_interview.errors import RpcError

from interview_platform.clients.http import ApiHttpClient


class HttpInterviewsApi:
    """Get, update and end interview sessions over HTTP."""

    def __init__(self, http: ApiHttpClient) -> None:
        self._http = http

    async def create(
        self,
        question_id: str,
        *,
        language: str = "python",
        time_limit_seconds: int = 3600,
    ) -> dict[str, Any]:
        body = await self._http.request(
            "POST",
            "/api/interviews",
            json={
                "question_id": question_id,
                "language": language,
                "time_limit_seconds": time_limit_seconds,
            },
        )
        return _interview(body)

    async def get(self, session_id: str) -> dict[str, Any]:
        return _interview(await self._http.request("GET", f"/api/interviews/{session_id}"))

    async def update(self, session_id: str, partial: dict[str, Any]) -> dict[str, Any]:
        return _interview(
            await self._http.request("PATCH", f"/api/interviews/{session_id}", json=partial)
        )

    async def end(
        self,
        session_id: str,
        reason: str,
        time_spent_seconds: int,
        final_code: Optional[str] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reason": reason,
            "time_spent_seconds": time_spent_seconds,
        }
        if final_code is not None:
            payload["final_code"] = final_code
        return _interview(
            await self._http.request("POST", f"/api/interviews/{session_id}/end", json=payload)
        )


def _interview(body: dict[str, Any]) -> dict[str, Any]:
    interview = body.get("interview")
    if not isinstance(interview, dict):
        raise RpcError("Response is missing the 'interview' object")
    return interview
