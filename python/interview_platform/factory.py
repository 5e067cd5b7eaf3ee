"""
Wiring of the backend adapters from a ClientConfig.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from interview_platform.clients import (
    ApiHttpClient,
    HttpEvaluationRequester,
    HttpExecutionClient,
    HttpInterviewsApi,
    HttpIntroductionSource,
)
from interview_platform.config import ClientConfig
from interview_platform.realtime import WebSocketVoiceTransport


@dataclass
class ApiClients:
    """Every external collaborator the session controller needs."""

    http: ApiHttpClient
    interviews: HttpInterviewsApi
    execution: HttpExecutionClient
    evaluations: HttpEvaluationRequester
    introductions: HttpIntroductionSource
    voice_url: str
    auth_token: Optional[str] = None

    def voice_transport(self) -> WebSocketVoiceTransport:
        """Fresh transport for one voice connection attempt."""
        return WebSocketVoiceTransport(self.voice_url, auth_token=self.auth_token)

    async def aclose(self) -> None:
        await self.http.aclose()


def build_api_clients(
    config: ClientConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ApiClients:
    """Build all adapters over one shared HTTP client."""
    http = ApiHttpClient(
        config.api_url,
        auth_token=config.auth_token,
        timeout_seconds=config.http_timeout_seconds,
        transport=transport,
    )
    return ApiClients(
        http=http,
        interviews=HttpInterviewsApi(http),
        execution=HttpExecutionClient(http),
        evaluations=HttpEvaluationRequester(http),
        introductions=HttpIntroductionSource(http),
        voice_url=config.voice_url,
        auth_token=config.auth_token,
    )
