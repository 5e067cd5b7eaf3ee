"""
Realtime voice transport over a websocket.

One instance is one connection attempt: the VoiceChannel asks its factory
for a fresh transport every time it reconnects.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import websockets

logger = logging.getLogger(__name__)


class WebSocketVoiceTransport:
    """
    JSON-message websocket connection to the realtime voice service.

    Args:
        url: Full websocket URL (e.g. ``ws://localhost:3001/ws/interview``).
        auth_token: Sent as a Bearer ``Authorization`` header when set.
        open_timeout: Seconds to wait for the handshake.
    """

    def __init__(
        self,
        url: str,
        *,
        auth_token: Optional[str] = None,
        open_timeout: float = 20.0,
    ) -> None:
        self.url = url
        self._auth_token = auth_token
        self._open_timeout = open_timeout
        self._ws: Any = None

    async def open(self) -> None:
        headers = {"Authorization": f"Bearer {self._auth_token}"} if self._auth_token else None
        self._ws = await websockets.connect(
            self.url,
            additional_headers=headers,
            open_timeout=self._open_timeout,
            max_size=2**22,
        )
        logger.debug("Voice websocket open: %s", self.url)

    async def send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            raise ConnectionError("Voice websocket is not open")
        await self._ws.send(json.dumps(message))

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded messages until the server closes the connection."""
        if self._ws is None:
            raise ConnectionError("Voice websocket is not open")
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except (TypeError, ValueError):
                    logger.debug("Dropping non-JSON voice frame")
                    continue
                if isinstance(message, dict):
                    yield message
        except websockets.ConnectionClosed as exc:
            raise ConnectionError(f"Voice websocket closed: {exc}") from exc

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()
