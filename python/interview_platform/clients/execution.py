"""Code execution adapter (``POST /api/execute``)."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from mock_interview.errors import RpcError
from mock_interview.models import (
    CodeTestCase,
    CodeTestResult,
    ExecutionReport,
    ExecutionSummary,
    ExecutionType,
)

from interview_platform.clients.http import ApiHttpClient

logger = logging.getLogger(__name__)


class HttpExecutionClient:
    """Run code against test cases in the remote sandbox."""

    def __init__(self, http: ApiHttpClient) -> None:
        self._http = http

    async def execute(
        self,
        *,
        code: str,
        language: str,
        test_cases: list[CodeTestCase],
        execution_type: ExecutionType,
        interview_id: Optional[str] = None,
    ) -> ExecutionReport:
        """
        Execute ``code`` once per test case.

        An empty test case list short-circuits to an empty report; the
        sandbox rejects such requests.

        Raises:
            RpcError: If the call fails or the response is malformed.
        """
        if not test_cases:
            return ExecutionReport.from_results([])

        payload: dict[str, object] = {
            "code": code,
            "language": language,
            "test_cases": [case.model_dump() for case in test_cases],
            "execution_type": execution_type.value,
        }
        if interview_id:
            payload["interview_id"] = interview_id

        body = await self._http.request("POST", "/api/execute", json=payload)
        try:
            results = [CodeTestResult.model_validate(r) for r in body.get("results") or []]
        except ValidationError as exc:
            raise RpcError("Execution response has malformed results", cause=exc) from exc

        summary = body.get("summary")
        if isinstance(summary, dict):
            report = ExecutionReport(
                results=results,
                summary=ExecutionSummary.model_validate(summary),
            )
        else:
            report = ExecutionReport.from_results(results)
        logger.debug(
            "Executed %s: %d/%d passed",
            execution_type.value,
            report.summary.passed,
            report.summary.total,
        )
        return report
