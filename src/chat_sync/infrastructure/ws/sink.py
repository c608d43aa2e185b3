"""WebSocket-backed delivery sink."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from chat_sync.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class WebSocketSink:
    """Implements application.ports.transport.DeliverySink for one socket.

    Sends are serialised per socket: the engine may push to the same
    connection from several conversations concurrently.
    """

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._ws.application_state == WebSocketState.DISCONNECTED

    async def send(self, event_type: str, data: dict[str, Any]) -> None:
        if self.closed:
            raise ConnectionError("WebSocket is closed")
        raw = WsOutbound(type=event_type, data=data).model_dump_json()
        async with self._send_lock:
            await self._ws.send_text(raw)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._ws.close(code=code, reason=reason)
        except RuntimeError:
            logger.debug("WebSocket already closed")
