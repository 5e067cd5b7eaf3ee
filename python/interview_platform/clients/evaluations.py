"""Evaluations adapter (``POST /api/evaluations``)."""

from __future__ import annotations

import logging

from mock_interview.errors import RpcError

from interview_platform.clients.http import ApiHttpClient

logger = logging.getLogger(__name__)


class HttpEvaluationRequester:
    """Request grading for an ended interview. Grading completes asynchronously."""

    def __init__(self, http: ApiHttpClient) -> None:
        self._http = http

    async def create(self, interview_id: str) -> str:
        """
        Request an evaluation and return its id.

        An evaluation that already exists for the interview is reused.
        """
        body = await self._http.request(
            "POST", "/api/evaluations", json={"interview_id": interview_id}
        )
        evaluation = body.get("evaluation")
        if not isinstance(evaluation, dict) or not evaluation.get("id"):
            raise RpcError("Response is missing the evaluation id")
        if body.get("existing"):
            logger.info("Reusing existing evaluation for %s", interview_id)
        return str(evaluation["id"])
