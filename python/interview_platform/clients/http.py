"""
Shared HTTP plumbing for the backend adapters.

Every adapter goes through ``ApiHttpClient.request``, which turns HTTP
errors and transport failures into ``RpcError``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from mock_interview.errors import RpcError

logger = logging.getLogger(__name__)


class ApiHttpClient:
    """
    Thin JSON wrapper around one ``httpx.AsyncClient``.

    Args:
        base_url: Backend base URL (``/api/...`` paths are appended).
        auth_token: Sent as ``Authorization: Bearer <token>`` when set.
        timeout_seconds: Per-request timeout.
        transport: Optional httpx transport (``httpx.ASGITransport`` in tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_token: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Send one request and return the decoded JSON body.

        Raises:
            RpcError: On HTTP >= 400 (detail from the body's ``error``
                field) or when no response was received.
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise RpcError(f"{method} {path} failed: {exc}", cause=exc) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            raise RpcError(
                f"{method} {path} returned HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RpcError(
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
                cause=exc,
            ) from exc
        if not isinstance(body, dict):
            raise RpcError(f"{method} {path} returned a non-object body", status_code=response.status_code)
        return body

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:160]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text[:160]
